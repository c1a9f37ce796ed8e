"""
Confirmation Executor Module

This module performs the household confirmation for an extracted link.
It knows nothing about the mailbox; the watcher only sees the handler.
"""

from .base_executor import BaseConfirmationExecutor
from .browser_executor import BrowserConfirmationExecutor
from .handler import ConfirmationHandler
from .session_state import SessionStateStore

__all__ = [
    'BaseConfirmationExecutor', 'BrowserConfirmationExecutor',
    'ConfirmationHandler', 'SessionStateStore'
]
