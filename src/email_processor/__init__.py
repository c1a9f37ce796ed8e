"""
Email processing modules.
"""

from .imap_client import IMAPConnection
from .watcher import MailWatcher, WatcherState, build_search_criteria

__all__ = ['IMAPConnection', 'MailWatcher', 'WatcherState', 'build_search_criteria']
