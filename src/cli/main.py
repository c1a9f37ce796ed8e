"""
Main CLI group for Household Auto-Confirm.

Integrates all commands into a single CLI application.
"""

import click
from .commands.watch import watch
from .commands.diagnostics import extract, confirm, check_config


@click.group()
@click.version_option(version='1.0.0', prog_name='Household Auto-Confirm')
def cli():
    """
    Household Auto-Confirm - Watch an inbox and confirm household emails.

    Polls an IMAP mailbox for the household update email, extracts the
    time-limited confirmation link and clicks it in a headless browser.
    """
    pass


cli.add_command(watch, name='watch')
cli.add_command(extract, name='extract')
cli.add_command(confirm, name='confirm')
cli.add_command(check_config, name='check-config')


if __name__ == '__main__':
    cli()
