"""
Common utilities for CLI commands.

Shared helper functions used across multiple command modules.
"""

import click

from src.config.settings import Settings
from src.confirmation_executor import BrowserConfirmationExecutor, SessionStateStore
from src.email_processor.household.exceptions import ConfigurationError
from src.email_processor.household.logging import configure_logging


def load_settings() -> Settings:
    """
    Load settings from the environment and configure logging.

    Aborts the command with the list of missing variables when the
    configuration is incomplete.
    """
    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        click.secho(f"✗ Configuration error: {e}", fg='red', err=True)
        raise click.Abort()

    configure_logging(settings.log_level)
    return settings


def build_executor(settings: Settings, dry_run: bool = False) -> BrowserConfirmationExecutor:
    """Create the browser executor with its session state store."""
    return BrowserConfirmationExecutor(
        settings.browser,
        state_store=SessionStateStore(settings.browser.storage_state_path),
        dry_run=dry_run,
    )


def read_body(source) -> str:
    """Read a raw message body from an open click file."""
    data = source.read()
    if isinstance(data, bytes):
        return data.decode('utf-8', errors='replace')
    return data
