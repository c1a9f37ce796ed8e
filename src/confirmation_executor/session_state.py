"""
Browser session state storage.

The state file holds the cookies and local storage captured after a
successful confirmation, so the confirmation site recognizes later runs as
the same device. It is only written after success and always written
atomically.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from src.email_processor.household.logging import EventLogger


class SessionStateStore:
    """Manages the persisted browser session snapshot."""

    def __init__(self, store_path: Path):
        """
        Initialize session state store.

        Args:
            store_path: Path to the JSON storage-state file. The file does
                not need to exist; absence is the normal first-run state.
        """
        self.store_path = Path(store_path)
        self.logger = EventLogger("session_state")

    def exists(self) -> bool:
        return self.store_path.is_file()

    def load(self) -> Optional[Dict[str, Any]]:
        """
        Load the saved session state.

        Returns:
            The storage-state mapping, or None when there is no usable file.
        """
        if not self.exists():
            return None

        try:
            with open(self.store_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            # If file is corrupted or unreadable, start a fresh session
            self.logger.warning('Session state unreadable', f"{self.store_path}: {e} - starting fresh session")
            return None

        if not isinstance(data, dict):
            self.logger.warning('Session state unreadable', f"{self.store_path}: unexpected structure - starting fresh session")
            return None

        return data

    def save(self, state: Dict[str, Any]):
        """Write the session state, replacing any previous file in one step."""
        self.store_path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            dir=self.store_path.parent, prefix=f".{self.store_path.name}.", suffix='.tmp'
        )
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(state, f, indent=2)
            # Cookies are credentials: owner read/write only
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.store_path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
