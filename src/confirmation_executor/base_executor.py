"""
Base Confirmation Executor

Provides the workflow shared by confirmation methods:
- Re-validation of the link before any side effect
- Dry-run mode support
- Timing of each run
- Conversion of unexpected exceptions into typed failure results

Subclasses implement only the method-specific execution step.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import replace

from src.email_processor.household.exceptions import ConfirmationError
from src.email_processor.household.logging import EventLogger
from src.email_processor.household.types import ConfirmationResult, ExtractedLink, FailureKind
from src.email_processor.household.validators import ConfirmationLinkValidator


class BaseConfirmationExecutor(ABC):
    """
    Abstract base class for confirmation executors.

    execute() never raises: every outcome is returned as a
    ConfirmationResult and logged once, here.
    """

    def __init__(self, dry_run: bool = False):
        """
        Initialize base executor.

        Args:
            dry_run: If True, validate and report without executing
        """
        self.dry_run = dry_run
        self.validator = ConfirmationLinkValidator()
        self.logger = EventLogger("executor")

    @property
    @abstractmethod
    def method_name(self) -> str:
        """Return the method name (e.g. browser)."""
        pass

    def execute(self, link: ExtractedLink) -> ConfirmationResult:
        """
        Execute the confirmation (template method).

        Workflow:
        1. Re-validate the link
        2. Short-circuit in dry-run mode
        3. Perform method-specific execution
        4. Convert failures into a typed result

        Args:
            link: Extracted confirmation link

        Returns:
            ConfirmationResult with success status and failure kind
        """
        if not self.validator.is_valid(link.url):
            self.logger.error('Invalid confirmation link', f"Refusing to open {link.url}")
            return ConfirmationResult.failed(FailureKind.INVALID_LINK, f"Invalid confirmation link: {link.url}")

        if self.dry_run:
            self.logger.info('Dry run', f"Would confirm via {self.method_name} | Token: {link.token_preview}")
            return ConfirmationResult.succeeded(attempts=0, dry_run=True)

        start_time = time.monotonic()
        try:
            result = self._perform_execution(link)
        except ConfirmationError as e:
            self.logger.error('Confirmation automation failed', str(e))
            result = ConfirmationResult.failed(e.kind, str(e), attempts=getattr(e, 'attempts', 0))
        except Exception as e:
            self.logger.log_exception('Confirmation automation failed', e)
            result = ConfirmationResult.failed(FailureKind.UNEXPECTED_ERROR, f"Unexpected error: {e}")

        return replace(result, duration_seconds=round(time.monotonic() - start_time, 2))

    @abstractmethod
    def _perform_execution(self, link: ExtractedLink) -> ConfirmationResult:
        """
        Perform method-specific confirmation.

        Raise a ConfirmationError subclass for expected failures; any other
        exception is reported as an unexpected error.
        """
        pass
