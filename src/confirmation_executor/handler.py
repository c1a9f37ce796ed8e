"""
Confirmation handler invoked by the mail watcher for each qualifying email.
"""

import time

from src.email_processor.household.logging import EventLogger
from src.email_processor.household.types import ConfirmationResult, ExtractedLink
from .base_executor import BaseConfirmationExecutor


class ConfirmationHandler:
    """Run an executor for one extracted link and report the outcome."""

    def __init__(self, executor: BaseConfirmationExecutor):
        self.executor = executor
        self.logger = EventLogger("handler")

    def __call__(self, link: ExtractedLink) -> ConfirmationResult:
        self.logger.info('Processing confirmation email', f"Token: {link.token_preview}")
        start_time = time.monotonic()

        result = self.executor.execute(link)

        duration = time.monotonic() - start_time
        if result.success:
            self.logger.info('Confirmation successful', f"Completed in {duration:.2f}s")
        else:
            self.logger.error('Confirmation failed', f"Failed after {duration:.2f}s: {result.error}")
        return result
