"""
Configuration module.
"""

from .settings import (
    Settings, MailboxSettings, BrowserSettings, load_config_from_env_file, parse_sender_filters
)

__all__ = [
    'Settings', 'MailboxSettings', 'BrowserSettings',
    'load_config_from_env_file', 'parse_sender_filters'
]
