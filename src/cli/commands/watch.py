"""
Watch command for Household Auto-Confirm.

Runs the mailbox watcher until a termination signal arrives.
"""

import signal

import click

from src.confirmation_executor import ConfirmationHandler
from src.email_processor.household.exceptions import MailboxConnectionError
from src.email_processor.household.logging import EventLogger
from src.email_processor.watcher import MailWatcher, WatcherState
from ..utils import build_executor, load_settings


def install_signal_handlers(watcher: MailWatcher, logger: EventLogger):
    """Stop the watcher on SIGINT and SIGTERM."""
    def _handle(signum, frame):
        logger.info('Shutting down', f"Received {signal.Signals(signum).name} signal")
        watcher.stop()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


@click.command('watch')
@click.option('--dry-run', is_flag=True, help='Extract and validate links without opening a browser')
def watch(dry_run):
    """
    Watch the inbox and confirm household emails as they arrive.

    Exits 0 after SIGINT/SIGTERM, 1 on configuration or mailbox errors.

    Example:
        python main.py watch
    """
    settings = load_settings()
    logger = EventLogger("main")
    logger.info('Household Auto-Confirm starting', 'Initializing IMAP monitor...')

    handler = ConfirmationHandler(build_executor(settings, dry_run=dry_run))
    watcher = MailWatcher(settings.mailbox, handler)
    install_signal_handlers(watcher, logger)

    try:
        state = watcher.run()
    except MailboxConnectionError as e:
        logger.error('IMAP connection failed', str(e))
        raise click.Abort()

    if state == WatcherState.ENDED:
        logger.error('Watcher ended', 'Mailbox connection closed by server')
        raise click.Abort()
