"""
IMAP connection, message retrieval and IDLE notifications.
"""

import ssl
from datetime import datetime, timezone
from email.errors import HeaderParseError
from email.header import decode_header, make_header
from email.parser import BytesHeaderParser
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from imapclient import IMAPClient, SEEN
from imapclient.exceptions import IMAPClientError

from .household.constants import NEW_MAIL_RESPONSES
from .household.exceptions import MailboxConnectionError
from .household.logging import EventLogger
from .household.types import MessageHeaderSnapshot

HEADER_FIELDS = 'BODY.PEEK[HEADER.FIELDS (FROM SUBJECT DATE)]'
BODY_TEXT = 'BODY.PEEK[TEXT]'


class IMAPConnection:
    """Manages the IMAP connection used by the mail watcher."""

    def __init__(
        self,
        server: str,
        port: int = 993,
        verify_ssl: bool = True,
        timeout: int = 30,
        client_factory: Callable[..., Any] = IMAPClient
    ):
        self.server = server
        self.port = port
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.client_factory = client_factory
        self.connection = None
        self.idling = False
        self.logger = EventLogger("imap")

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self.verify_ssl:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def connect(self, username: str, password: str):
        """
        Connect to the IMAP server and authenticate.

        Raises:
            MailboxConnectionError: the server is unreachable or login failed
        """
        try:
            self.connection = self.client_factory(
                self.server,
                port=self.port,
                ssl=True,
                ssl_context=self._ssl_context(),
                timeout=self.timeout,
            )
            self.connection.login(username, password)
        except (IMAPClientError, OSError) as e:
            self.connection = None
            raise MailboxConnectionError(
                f"IMAP connection error. Make sure IMAP is enabled and credentials are correct: {e}",
                host=self.server, port=self.port
            ) from e

    def disconnect(self):
        """Leave IDLE if needed and close the IMAP connection."""
        if not self.connection:
            return

        try:
            if self.idling:
                self.idle_done()
            self.connection.logout()
        except (IMAPClientError, OSError) as e:
            self.logger.warning('IMAP logout failed', str(e))
        finally:
            self.connection = None
            self.idling = False

    def select_folder(self, folder: str = 'INBOX'):
        """
        Select a folder in read/write mode (needed to set the Seen flag).

        Raises:
            MailboxConnectionError: the folder cannot be opened
        """
        try:
            self.connection.select_folder(folder, readonly=False)
        except (IMAPClientError, OSError) as e:
            raise MailboxConnectionError(f"Failed to open {folder}: {e}", host=self.server, port=self.port) from e

    def search_messages(self, criteria: Sequence[str]) -> List[int]:
        """Search for message UIDs matching criteria."""
        charset = None if all(str(c).isascii() for c in criteria) else 'UTF-8'
        return sorted(self.connection.search(list(criteria), charset=charset))

    def fetch_headers(self, uids: Sequence[int]) -> Dict[int, MessageHeaderSnapshot]:
        """Fetch From, Subject and Date without marking messages read."""
        response = self.connection.fetch(list(uids), [HEADER_FIELDS])
        parser = BytesHeaderParser()

        snapshots = {}
        for uid, data in response.items():
            raw = _body_section(data)
            headers = parser.parsebytes(raw or b'')
            snapshots[uid] = MessageHeaderSnapshot(
                uid=uid,
                sender=_decode_header_value(headers.get('From')),
                subject=_decode_header_value(headers.get('Subject')),
                sent_at=_parse_date(headers.get('Date')),
            )
        return snapshots

    def fetch_bodies(self, uids: Sequence[int]) -> Dict[int, str]:
        """Fetch raw body text without marking messages read."""
        response = self.connection.fetch(list(uids), [BODY_TEXT])
        return {
            uid: (_body_section(data) or b'').decode('utf-8', errors='replace')
            for uid, data in response.items()
        }

    def mark_seen(self, uid: int):
        """Set the Seen flag on one message."""
        self.connection.add_flags([uid], [SEEN])

    def idle_start(self):
        self.connection.idle()
        self.idling = True

    def idle_wait(self, timeout: float) -> bool:
        """Wait up to timeout seconds in IDLE; True if the server announced new mail."""
        responses = self.connection.idle_check(timeout=timeout)
        return any(
            isinstance(item, tuple) and len(item) >= 2 and item[1] in NEW_MAIL_RESPONSES
            for item in responses
        )

    def idle_done(self):
        self.idling = False
        self.connection.idle_done()


def _body_section(data: Dict[bytes, Any]) -> Optional[bytes]:
    """Return the first BODY[...] section of a FETCH response."""
    for key, value in data.items():
        if isinstance(key, bytes) and key.startswith(b'BODY['):
            return value
    return None


def _decode_header_value(value: Optional[str]) -> str:
    if not value:
        return 'Unknown'
    try:
        return str(make_header(decode_header(value))).strip()
    except (HeaderParseError, LookupError, UnicodeDecodeError):
        return value.strip()


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    """Parse a Date header into an aware UTC datetime, None if unparseable."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
