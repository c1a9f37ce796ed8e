"""
Configuration settings for the household confirmation watcher.

Settings are read from the environment once at startup and passed to each
component explicitly; nothing reads the environment after that.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from dotenv import load_dotenv

from src.email_processor.household.constants import DEFAULT_SUBJECT
from src.email_processor.household.exceptions import ConfigurationError
from src.email_processor.household.logging import parse_log_level

REQUIRED_ENV_VARS: Tuple[str, ...] = ('IMAP_USER', 'IMAP_PASSWORD', 'IMAP_HOST')


@dataclass(frozen=True)
class MailboxSettings:
    """IMAP connection and message filter settings."""

    host: str
    user: str
    password: str = field(repr=False)
    port: int = 993
    verify_ssl: bool = True
    timeout_seconds: int = 30
    folder: str = 'INBOX'
    sender_filters: Tuple[str, ...] = ()
    subject_filter: str = DEFAULT_SUBJECT
    max_age_minutes: float = 3
    poll_interval_ms: int = 30000


@dataclass(frozen=True)
class BrowserSettings:
    """Confirmation page automation settings."""

    page_load_timeout_ms: int = 3000
    click_timeout_ms: int = 5000
    success_timeout_ms: int = 5000
    retry_attempts: int = 2
    backoff_seconds: float = 1.0
    storage_state_path: Path = Path('tmp') / 'storageState.json'
    headless: bool = True


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, immutable after startup."""

    mailbox: MailboxSettings
    browser: BrowserSettings = field(default_factory=BrowserSettings)
    log_level: str = 'info'

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        """
        Build settings from environment variables.

        Raises:
            ConfigurationError: required variables are missing (all missing
                names are listed) or a value cannot be parsed.
        """
        env = os.environ if environ is None else environ

        missing = [name for name in REQUIRED_ENV_VARS if not env.get(name, '').strip()]
        if missing:
            raise ConfigurationError.for_missing(missing)

        senders = env.get('TARGET_EMAIL_ADDRESSES') or env.get('TARGET_EMAIL_ADDRESS') or ''

        mailbox = MailboxSettings(
            host=env['IMAP_HOST'].strip(),
            user=env['IMAP_USER'].strip(),
            password=env['IMAP_PASSWORD'],
            port=_int(env, 'IMAP_PORT', 993),
            verify_ssl=_bool(env, 'IMAP_VERIFY_SSL', True),
            timeout_seconds=_int(env, 'IMAP_TIMEOUT', 30),
            sender_filters=tuple(parse_sender_filters(senders)),
            subject_filter=env.get('TARGET_EMAIL_SUBJECT', DEFAULT_SUBJECT).strip(),
            max_age_minutes=_float(env, 'MAX_EMAIL_AGE_MINUTES', 3),
            poll_interval_ms=_int(env, 'POLL_INTERVAL', 30000),
        )

        browser = BrowserSettings(
            page_load_timeout_ms=_int(env, 'PAGE_LOAD_TIMEOUT', 3000),
            click_timeout_ms=_int(env, 'CLICK_TIMEOUT', 5000),
            success_timeout_ms=_int(env, 'SUCCESS_TIMEOUT', 5000),
            retry_attempts=_int(env, 'RETRY_ATTEMPTS', 2),
            storage_state_path=Path(env.get('STORAGE_STATE_PATH', '').strip() or BrowserSettings.storage_state_path),
        )

        log_level = env.get('LOG_LEVEL', '').strip().lower() or 'info'
        try:
            parse_log_level(log_level)
        except ValueError as e:
            raise ConfigurationError(str(e))

        return cls(mailbox=mailbox, browser=browser, log_level=log_level)

    def with_browser(self, **changes) -> 'Settings':
        """Return a copy with browser settings replaced."""
        return replace(self, browser=replace(self.browser, **changes))

    def describe(self) -> Dict[str, str]:
        """Effective settings for display, password masked."""
        return {
            'IMAP server': f"{self.mailbox.host}:{self.mailbox.port}",
            'IMAP user': self.mailbox.user,
            'IMAP password': '***',
            'Verify SSL': str(self.mailbox.verify_ssl),
            'Senders': ', '.join(self.mailbox.sender_filters) or '(any)',
            'Subject': self.mailbox.subject_filter or '(any)',
            'Max email age': f"{self.mailbox.max_age_minutes:g} minutes",
            'Poll interval': f"{self.mailbox.poll_interval_ms / 1000:g}s ({self.mailbox.poll_interval_ms}ms)",
            'Page load timeout': f"{self.browser.page_load_timeout_ms}ms",
            'Click timeout': f"{self.browser.click_timeout_ms}ms",
            'Success timeout': f"{self.browser.success_timeout_ms}ms",
            'Retry attempts': str(self.browser.retry_attempts),
            'Storage state': str(self.browser.storage_state_path),
            'Log level': self.log_level,
        }


def parse_sender_filters(value: str) -> List[str]:
    """Split a comma-separated sender list, dropping blanks."""
    return [addr.strip() for addr in value.split(',') if addr.strip()]


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, '').strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, '').strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name, '').strip().lower()
    if not raw:
        return default
    if raw in ('true', '1', 'yes'):
        return True
    if raw in ('false', '0', 'no'):
        return False
    raise ConfigurationError(f"{name} must be true or false, got {raw!r}")


def load_config_from_env_file(env_file: str = '.env'):
    """Load environment variables from a .env file if it exists."""
    env_path = Path(env_file)
    if env_path.exists():
        load_dotenv(env_path)
