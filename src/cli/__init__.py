"""
CLI module for Household Auto-Confirm.

Provides click-based command-line interface with subcommands.
"""

from .main import cli

__all__ = ['cli']
