"""
Mailbox watcher for household confirmation emails.

Listens on the inbox with IMAP IDLE and falls back to a fixed-interval
poll. Both sources trigger the same scan, which is serialized: a message
is only marked read after the confirmation handler reports success, so a
failed message is naturally picked up again by the next scan.
"""

import threading
import time
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence

from imapclient.exceptions import IMAPClientAbortError, IMAPClientError

from .imap_client import IMAPConnection
from .household.exceptions import MailboxConnectionError
from .household.extractors import ConfirmationLinkExtractor
from .household.logging import EventLogger
from .household.types import ConfirmationResult, ExtractedLink, MessageHeaderSnapshot, ScanSummary
from .household.validators import ConfirmationLinkValidator

if TYPE_CHECKING:
    from src.config.settings import MailboxSettings

ConfirmationCallback = Callable[[ExtractedLink], ConfirmationResult]


class WatcherState(str, Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    READY = 'ready'
    LISTENING = 'listening'
    ERROR = 'error'
    ENDED = 'ended'


def build_search_criteria(senders: Sequence[str], subject: Optional[str]) -> List[str]:
    """
    Build IMAP SEARCH criteria for unread matching messages.

    Several senders are OR-combined. IMAP OR takes exactly two keys, so
    n senders need n-1 prefix ORs: OR OR FROM a FROM b FROM c.
    """
    criteria = ['UNSEEN']
    if senders:
        criteria.extend(['OR'] * (len(senders) - 1))
        for sender in senders:
            criteria.extend(['FROM', sender])
    if subject:
        criteria.extend(['SUBJECT', subject])
    return criteria


class MailWatcher:
    """Watch the inbox and hand qualifying emails to the confirmation handler."""

    # IDLE is waited on in short slices so stop() takes effect promptly
    IDLE_SLICE_SECONDS = 1.0
    # Servers may drop IDLE after 30 minutes; re-issue well before that
    IDLE_RENEW_SECONDS = 300

    def __init__(
        self,
        settings: 'MailboxSettings',
        handler: ConfirmationCallback,
        connection: Optional[IMAPConnection] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.settings = settings
        self.handler = handler
        self.connection = connection or IMAPConnection(
            settings.host, settings.port, settings.verify_ssl, settings.timeout_seconds
        )
        self.clock = clock
        self.extractor = ConfirmationLinkExtractor()
        self.validator = ConfirmationLinkValidator()
        self.logger = EventLogger("watcher")
        self.state = WatcherState.DISCONNECTED

        self._stop_requested = threading.Event()
        self._scan_lock = threading.Lock()

        self.logger.info(
            'Email filter configured',
            f"From: {', '.join(settings.sender_filters) or '(any)'} | Subject: {settings.subject_filter or '(any)'}"
        )
        self.logger.info(
            'Polling interval configured',
            f"{settings.poll_interval_ms / 1000:g}s ({settings.poll_interval_ms}ms)"
        )
        self.logger.info(
            'Email age filter configured',
            f"Max age: {settings.max_age_minutes:g} minutes (only process emails newer than this)"
        )

    @property
    def poll_interval_seconds(self) -> float:
        return self.settings.poll_interval_ms / 1000

    def connect(self):
        """
        Log in and open the folder read/write.

        Raises:
            MailboxConnectionError: connection or login failed (fatal)
        """
        self.state = WatcherState.CONNECTING
        self.logger.info('Connecting to IMAP server', f"{self.settings.host}:{self.settings.port}")
        try:
            self.connection.connect(self.settings.user, self.settings.password)
            self.connection.select_folder(self.settings.folder)
        except MailboxConnectionError:
            self.state = WatcherState.ERROR
            raise

        self.state = WatcherState.READY
        self.logger.info('IMAP connection ready', f"Start listening for emails on {self.settings.folder}")

    def run(self) -> WatcherState:
        """
        Connect if needed, scan once, then listen until stopped or disconnected.

        Returns:
            DISCONNECTED after stop(), ENDED after a server-side disconnect.

        Raises:
            MailboxConnectionError: the initial connection failed
        """
        if self.state != WatcherState.READY:
            self.connect()

        self.state = WatcherState.LISTENING
        try:
            # Mail may already be waiting at startup
            self.scan()
            self._listen()
        except (IMAPClientError, OSError) as e:
            if not self.stop_requested:
                self.logger.warning('IMAP connection ended', str(e) or type(e).__name__)
                self.connection.disconnect()
                self.state = WatcherState.ENDED
                return self.state

        self.connection.disconnect()
        self.state = WatcherState.DISCONNECTED
        self.logger.info('Watcher stopped', 'Mailbox connection closed')
        return self.state

    def stop(self):
        """Request the listen loop to exit; safe to call from a signal handler."""
        self._stop_requested.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested.is_set()

    def _listen(self):
        self.logger.info('Polling started', f"Will check every {self.poll_interval_seconds:g} seconds")
        last_scan = self.clock()

        while not self.stop_requested:
            new_mail = self._wait_in_idle(last_scan)

            if self.stop_requested:
                break

            if new_mail:
                self.logger.info('New email event received', 'Checking for matching emails...')
                self.scan()
                last_scan = self.clock()
            elif self.clock() - last_scan >= self.poll_interval_seconds:
                self.logger.info('Periodic poll', f"Checking for emails (every {self.poll_interval_seconds:g}s)")
                self.scan()
                last_scan = self.clock()

    def _wait_in_idle(self, last_scan: float) -> bool:
        """Stay in IDLE until new mail, poll time, IDLE renewal or stop."""
        idle_started = self.clock()
        new_mail = False

        self.connection.idle_start()
        while not new_mail and not self.stop_requested:
            now = self.clock()
            if now - last_scan >= self.poll_interval_seconds or now - idle_started >= self.IDLE_RENEW_SECONDS:
                break
            new_mail = self.connection.idle_wait(self.IDLE_SLICE_SECONDS)
        self.connection.idle_done()

        return new_mail

    def scan(self, now: Optional[datetime] = None) -> ScanSummary:
        """
        Process unread matching messages once.

        Only one scan runs at a time; a call made while another scan is in
        flight returns an empty summary.
        """
        if not self._scan_lock.acquire(blocking=False):
            self.logger.info('Scan skipped', 'Previous scan still in progress')
            return ScanSummary()

        try:
            return self._scan(now)
        finally:
            self._scan_lock.release()

    def _scan(self, now: Optional[datetime]) -> ScanSummary:
        summary = ScanSummary()
        senders = self.settings.sender_filters
        subject = self.settings.subject_filter
        criteria = build_search_criteria(senders, subject)

        self.logger.info('Checking for emails', f"Filter: From ({', '.join(senders) or 'any'}) + Subject ({subject or 'any'})")

        try:
            uids = self.connection.search_messages(criteria)
        except IMAPClientAbortError:
            raise
        except IMAPClientError as e:
            self.logger.error('Email search failed', str(e))
            return summary

        if not uids:
            self.logger.info('No emails found', 'No unread emails matching filter criteria')
            return summary

        summary.matched = len(uids)
        self.logger.info('Email detected', f"Found {len(uids)} unread email(s) matching filter criteria")

        try:
            headers = self.connection.fetch_headers(uids)
        except IMAPClientAbortError:
            raise
        except IMAPClientError as e:
            self.logger.error('Header fetch error', str(e))
            return summary

        fresh = []
        for uid in uids:
            header = headers.get(uid) or MessageHeaderSnapshot(uid=uid)
            if self._is_too_old(header, now):
                summary.skipped_old += 1
            else:
                fresh.append(header)

        if not fresh:
            return summary

        try:
            bodies = self.connection.fetch_bodies([header.uid for header in fresh])
        except IMAPClientAbortError:
            raise
        except IMAPClientError as e:
            self.logger.error('Fetching error', str(e))
            return summary

        for header in fresh:
            self._process_message(header, bodies.get(header.uid, ''), summary, now)

        self.logger.info('Scan complete', ', '.join(f"{k}={v}" for k, v in summary.to_dict().items()))
        return summary

    def _is_too_old(self, header: MessageHeaderSnapshot, now: Optional[datetime]) -> bool:
        age = header.age_minutes(now)
        if age is None or age <= self.settings.max_age_minutes:
            return False

        self.logger.warning(
            'Email too old',
            f"Email is {age:.1f} minutes old (max: {self.settings.max_age_minutes:g} minutes) "
            f"- skipping to avoid expired links"
        )
        return True

    def _process_message(
        self,
        header: MessageHeaderSnapshot,
        body: str,
        summary: ScanSummary,
        now: Optional[datetime]
    ):
        age = header.age_minutes(now)
        if age is None:
            self.logger.info(
                'Processing email',
                f"From: {header.sender} | Subject: {header.subject} | Date: Unknown (processing anyway)"
            )
        else:
            self.logger.info(
                'Processing email',
                f"From: {header.sender} | Subject: {header.subject} | Age: {age:.1f} minutes"
            )

        link = self.extractor.extract(body)
        if not link:
            self.logger.warning(
                'URL extraction failed', 'No confirmation link found in email - email will remain unread'
            )
            summary.skipped_unextractable += 1
            return

        if not self.validator.is_valid(link.url):
            self.logger.warning(
                'Invalid URL', 'Extracted URL is not a valid confirmation link - email will remain unread'
            )
            summary.skipped_unextractable += 1
            return

        self.logger.info('URL extracted', f"Token: {link.token_preview}")

        try:
            result = self.handler(link)
        except Exception as e:
            self.logger.log_exception('Email handler failed', e)
            summary.failed += 1
            return

        if not result.success:
            self.logger.error('Email handler failed', f"{result.error} - email will remain unread for retry")
            summary.failed += 1
            return

        if result.dry_run:
            self.logger.info('Dry run: email left unread', f"Token: {link.token_preview}")
            return

        summary.confirmed += 1
        self.logger.info('Marking email as read', 'Confirmation successful')
        try:
            self.connection.mark_seen(header.uid)
        except IMAPClientAbortError:
            raise
        except IMAPClientError as e:
            self.logger.warning('Failed to mark email as read', str(e))
            return

        self.logger.info('Email marked as read', 'Successfully processed')
