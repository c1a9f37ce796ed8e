"""
Type-safe dataclasses for household confirmation processing.

This module provides structured, immutable dataclasses passed between
the extractor, the mail watcher and the confirmation executors.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from .constants import TOKEN_PREVIEW_LENGTH


@dataclass(frozen=True)
class ExtractedLink:
    """Confirmation link found in a message body."""

    url: str
    token: str

    @property
    def token_preview(self) -> str:
        """Shortened token for log lines."""
        return f"{self.token[:TOKEN_PREVIEW_LENGTH]}..."


@dataclass(frozen=True)
class MessageHeaderSnapshot:
    """Header fields of one candidate message, valid for a single scan."""

    uid: int
    sender: str = 'Unknown'
    subject: str = 'Unknown'
    sent_at: Optional[datetime] = None

    def age_minutes(self, now: Optional[datetime] = None) -> Optional[float]:
        """Return the message age in minutes, or None if the date is unknown."""
        if self.sent_at is None:
            return None

        now = now or datetime.now(timezone.utc)
        sent_at = self.sent_at
        if sent_at.tzinfo is None:
            sent_at = sent_at.replace(tzinfo=timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        return (now - sent_at).total_seconds() / 60


class FailureKind(str, Enum):
    """Why a confirmation did not succeed."""

    EXPIRED_LINK = 'expired_link'
    CONTROL_NOT_FOUND = 'control_not_found'
    RETRIES_EXHAUSTED = 'retries_exhausted'
    INVALID_LINK = 'invalid_link'
    UNEXPECTED_ERROR = 'unexpected_error'


@dataclass(frozen=True)
class ConfirmationResult:
    """Outcome of one confirmation run."""

    success: bool
    attempts: int = 0
    failure: Optional[FailureKind] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0
    dry_run: bool = False

    @classmethod
    def succeeded(cls, attempts: int, dry_run: bool = False) -> 'ConfirmationResult':
        return cls(success=True, attempts=attempts, dry_run=dry_run)

    @classmethod
    def failed(cls, failure: FailureKind, error: str, attempts: int = 0) -> 'ConfirmationResult':
        return cls(success=False, attempts=attempts, failure=failure, error=error)


@dataclass
class ScanSummary:
    """Counters for a single mailbox scan."""

    matched: int = 0
    confirmed: int = 0
    skipped_old: int = 0
    skipped_unextractable: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'matched': self.matched,
            'confirmed': self.confirmed,
            'skipped_old': self.skipped_old,
            'skipped_unextractable': self.skipped_unextractable,
            'failed': self.failed,
        }
