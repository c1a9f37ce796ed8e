"""
One-shot diagnostic commands for Household Auto-Confirm.

Handles link extraction from a saved message, a single confirmation run,
and configuration checks.
"""

import urllib.parse

import click

from src.email_processor.household import (
    ExtractedLink, extract_confirmation_link, is_valid_confirmation_url
)
from src.email_processor.household.constants import TOKEN_PARAM
from ..utils import build_executor, load_settings, read_body


@click.command('extract')
@click.argument('source', type=click.File('rb'))
def extract(source):
    """
    Extract the confirmation link from a raw message body.

    SOURCE is a file path, or - for standard input.

    Example:
        python main.py extract message.eml
    """
    link = extract_confirmation_link(read_body(source))
    if not link:
        click.secho("✗ No confirmation link found", fg='red')
        raise click.Abort()

    if not is_valid_confirmation_url(link.url):
        click.secho(f"✗ Extracted URL is not a valid confirmation link: {link.url}", fg='red')
        raise click.Abort()

    click.secho("✓ Confirmation link found", fg='green')
    click.echo(f"  URL: {link.url}")
    click.echo(f"  Token: {link.token}")


@click.command('confirm')
@click.argument('url')
@click.option('--dry-run', is_flag=True, help='Validate the link without opening a browser')
def confirm(url, dry_run):
    """
    Run the browser confirmation once for URL.

    Example:
        python main.py confirm "https://www.netflix.com/account/update-primary-location?nftoken=..."
    """
    if not is_valid_confirmation_url(url):
        click.secho(f"✗ Not a valid confirmation link: {url}", fg='red')
        raise click.Abort()

    settings = load_settings()
    token = urllib.parse.parse_qs(urllib.parse.urlsplit(url).query)[TOKEN_PARAM][0]
    result = build_executor(settings, dry_run=dry_run).execute(ExtractedLink(url=url, token=token))

    if result.dry_run:
        click.echo("[DRY RUN] Link is valid; browser not started")
    elif result.success:
        click.secho(f"✓ Confirmed on attempt {result.attempts} in {result.duration_seconds:.2f}s", fg='green')
    else:
        click.secho(f"✗ Confirmation failed ({result.failure.value}): {result.error}", fg='red')
        raise click.Abort()


@click.command('check-config')
def check_config():
    """
    Validate the environment configuration and print it.

    Example:
        python main.py check-config
    """
    settings = load_settings()

    click.secho("✓ Configuration is valid", fg='green')
    for name, value in settings.describe().items():
        click.echo(f"  {name}: {value}")
