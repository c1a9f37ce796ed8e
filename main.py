#!/usr/bin/env python3
"""
Command-line entry point for Household Auto-Confirm.

Loads a .env file when present, then hands over to the click CLI.
Without arguments the watcher is started.
"""

import sys

from src.config import load_config_from_env_file
from src.cli import cli


def main():
    """Main CLI entry point."""
    load_config_from_env_file()

    if len(sys.argv) < 2:
        sys.argv.append('watch')

    cli()


if __name__ == '__main__':
    main()
