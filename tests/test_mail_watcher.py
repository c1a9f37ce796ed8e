"""
Tests for the mailbox watcher: search criteria, age filter, read marking,
scan serialization and the IDLE / poll listen loop.
"""

import itertools
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
from imapclient.exceptions import IMAPClientAbortError, IMAPClientError

from src.config.settings import BrowserSettings, MailboxSettings
from src.confirmation_executor import BrowserConfirmationExecutor
from src.email_processor import MailWatcher, WatcherState, build_search_criteria
from src.email_processor.household.exceptions import MailboxConnectionError
from src.email_processor.household.types import (
    ConfirmationResult, ExtractedLink, FailureKind, MessageHeaderSnapshot
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
CONFIRM_URL = "https://www.netflix.com/account/update-primary-location?nftoken=abc123"
BODY = f'<a href="{CONFIRM_URL}">Yes, This Was Me</a>'
SUBJECT = "Important: How to update your Netflix Household"


def make_settings(**overrides):
    values = dict(
        host='imap.example.com',
        user='me@example.com',
        password='secret',
        sender_filters=('info@account.netflix.com',),
        max_age_minutes=3,
        poll_interval_ms=30000,
    )
    values.update(overrides)
    return MailboxSettings(**values)


def header(uid, minutes_old=1.0):
    sent_at = None if minutes_old is None else NOW - timedelta(minutes=minutes_old)
    return MessageHeaderSnapshot(uid=uid, sender='Netflix <info@account.netflix.com>', subject=SUBJECT, sent_at=sent_at)


def make_connection(headers=(), bodies=None):
    connection = Mock()
    connection.search_messages.return_value = [h.uid for h in headers]
    connection.fetch_headers.return_value = {h.uid: h for h in headers}
    connection.fetch_bodies.return_value = bodies if bodies is not None else {h.uid: BODY for h in headers}
    connection.idle_wait.return_value = False
    return connection


def make_watcher(connection, handler=None, clock=None, **settings):
    handler = handler or Mock(return_value=ConfirmationResult.succeeded(attempts=1))
    watcher = MailWatcher(
        make_settings(**settings), handler, connection=connection, clock=clock or (lambda: 0.0)
    )
    watcher.logger = Mock()
    return watcher, handler


def logged_events(logger, level='info'):
    return [c.args[0] for c in getattr(logger, level).call_args_list]


class TestBuildSearchCriteria:

    def test_single_sender_and_subject(self):
        assert build_search_criteria(['a@x.com'], 'Hi') == ['UNSEEN', 'FROM', 'a@x.com', 'SUBJECT', 'Hi']

    def test_multiple_senders_are_or_combined(self):
        criteria = build_search_criteria(['a@x.com', 'b@x.com', 'c@x.com'], 'Hi')

        assert criteria == [
            'UNSEEN', 'OR', 'OR', 'FROM', 'a@x.com', 'FROM', 'b@x.com', 'FROM', 'c@x.com', 'SUBJECT', 'Hi'
        ]

    def test_no_filters(self):
        assert build_search_criteria([], '') == ['UNSEEN']


class TestMailWatcherScan:
    """Test a single scan over matching messages."""

    def test_confirms_and_marks_read(self):
        connection = make_connection([header(7)])
        watcher, handler = make_watcher(connection)

        summary = watcher.scan(now=NOW)

        handler.assert_called_once_with(ExtractedLink(url=CONFIRM_URL, token='abc123'))
        connection.mark_seen.assert_called_once_with(7)
        assert summary.matched == 1
        assert summary.confirmed == 1
        assert 'Email marked as read' in logged_events(watcher.logger)

    def test_search_uses_configured_filters(self):
        connection = make_connection()
        watcher, _ = make_watcher(connection)

        watcher.scan(now=NOW)

        connection.search_messages.assert_called_once_with(
            ['UNSEEN', 'FROM', 'info@account.netflix.com', 'SUBJECT', SUBJECT]
        )
        assert 'No emails found' in logged_events(watcher.logger)

    def test_old_email_never_reaches_handler(self):
        connection = make_connection([header(7, minutes_old=10)])
        watcher, handler = make_watcher(connection)

        summary = watcher.scan(now=NOW)

        handler.assert_not_called()
        connection.fetch_bodies.assert_not_called()
        connection.mark_seen.assert_not_called()
        assert summary.skipped_old == 1
        warning = watcher.logger.warning.call_args
        assert warning.args[0] == 'Email too old'
        assert "Email is 10.0 minutes old (max: 3 minutes)" in warning.args[1]

    def test_only_fresh_bodies_are_fetched(self):
        connection = make_connection([header(3, minutes_old=30), header(9, minutes_old=0.5)])
        watcher, handler = make_watcher(connection)

        summary = watcher.scan(now=NOW)

        connection.fetch_bodies.assert_called_once_with([9])
        handler.assert_called_once()
        connection.mark_seen.assert_called_once_with(9)
        assert summary.to_dict() == {
            'matched': 2, 'confirmed': 1, 'skipped_old': 1, 'skipped_unextractable': 0, 'failed': 0
        }

    def test_unknown_date_is_processed(self):
        connection = make_connection([header(7, minutes_old=None)])
        watcher, handler = make_watcher(connection)

        watcher.scan(now=NOW)

        handler.assert_called_once()
        details = [c.args[1] for c in watcher.logger.info.call_args_list if c.args[0] == 'Processing email']
        assert details and details[0].endswith("Date: Unknown (processing anyway)")

    def test_failed_confirmation_leaves_email_unread(self):
        connection = make_connection([header(7)])
        failure = ConfirmationResult.failed(FailureKind.EXPIRED_LINK, "Confirmation link has expired")
        watcher, _ = make_watcher(connection, handler=Mock(return_value=failure))

        summary = watcher.scan(now=NOW)

        connection.mark_seen.assert_not_called()
        assert summary.failed == 1
        assert 'Email handler failed' in logged_events(watcher.logger, 'error')

    def test_dry_run_leaves_email_unread(self):
        connection = make_connection([header(7)])
        dry_run = ConfirmationResult.succeeded(attempts=0, dry_run=True)
        watcher, handler = make_watcher(connection, handler=Mock(return_value=dry_run))

        summary = watcher.scan(now=NOW)

        handler.assert_called_once()
        connection.mark_seen.assert_not_called()
        assert summary.confirmed == 0
        assert 'Dry run: email left unread' in logged_events(watcher.logger)

    def test_dry_run_executor_never_marks_read(self):
        connection = make_connection([header(7)])
        browser = Mock()
        executor = BrowserConfirmationExecutor(BrowserSettings(), playwright_factory=browser, dry_run=True)
        executor.logger = Mock()
        watcher, _ = make_watcher(connection, handler=executor.execute)

        watcher.scan(now=NOW)

        browser.assert_not_called()
        connection.mark_seen.assert_not_called()

    def test_handler_exception_leaves_email_unread(self):
        connection = make_connection([header(7)])
        watcher, _ = make_watcher(connection, handler=Mock(side_effect=RuntimeError("browser crashed")))

        summary = watcher.scan(now=NOW)

        connection.mark_seen.assert_not_called()
        assert summary.failed == 1
        watcher.logger.log_exception.assert_called_once()

    def test_failed_email_is_retried_on_next_scan(self):
        connection = make_connection([header(7)])
        handler = Mock(side_effect=[
            ConfirmationResult.failed(FailureKind.RETRIES_EXHAUSTED, "Confirmation failed after 2 attempts: x"),
            ConfirmationResult.succeeded(attempts=1),
        ])
        watcher, _ = make_watcher(connection, handler=handler)

        watcher.scan(now=NOW)
        watcher.scan(now=NOW)

        assert handler.call_count == 2
        connection.mark_seen.assert_called_once_with(7)

    def test_body_without_link_is_skipped(self):
        connection = make_connection([header(7)], bodies={7: "Your account was updated."})
        watcher, handler = make_watcher(connection)

        summary = watcher.scan(now=NOW)

        handler.assert_not_called()
        connection.mark_seen.assert_not_called()
        assert summary.skipped_unextractable == 1
        assert 'URL extraction failed' in logged_events(watcher.logger, 'warning')

    def test_link_without_token_is_skipped(self):
        body = '"https://www.netflix.com/account/update-primary-location?g=1"'
        connection = make_connection([header(7)], bodies={7: body})
        watcher, handler = make_watcher(connection)

        summary = watcher.scan(now=NOW)

        handler.assert_not_called()
        assert summary.skipped_unextractable == 1

    def test_search_error_is_logged(self):
        connection = make_connection()
        connection.search_messages.side_effect = IMAPClientError("SEARCH failed")
        watcher, handler = make_watcher(connection)

        summary = watcher.scan(now=NOW)

        assert summary.matched == 0
        handler.assert_not_called()
        assert 'Email search failed' in logged_events(watcher.logger, 'error')

    def test_connection_abort_propagates(self):
        connection = make_connection()
        connection.search_messages.side_effect = IMAPClientAbortError("socket error: EOF")
        watcher, _ = make_watcher(connection)

        with pytest.raises(IMAPClientAbortError):
            watcher.scan(now=NOW)

    def test_mark_read_failure_is_a_warning(self):
        connection = make_connection([header(7)])
        connection.mark_seen.side_effect = IMAPClientError("STORE failed")
        watcher, _ = make_watcher(connection)

        summary = watcher.scan(now=NOW)

        assert summary.confirmed == 1
        assert 'Failed to mark email as read' in logged_events(watcher.logger, 'warning')
        assert 'Email marked as read' not in logged_events(watcher.logger)

    def test_overlapping_scan_is_skipped(self):
        connection = make_connection([header(7)])
        watcher, handler = make_watcher(connection)

        watcher._scan_lock.acquire()
        try:
            summary = watcher.scan(now=NOW)
        finally:
            watcher._scan_lock.release()

        assert summary.matched == 0
        connection.search_messages.assert_not_called()
        handler.assert_not_called()
        assert 'Scan skipped' in logged_events(watcher.logger)

    def test_handler_runs_one_message_at_a_time(self):
        connection = make_connection([header(1), header(2)])
        watcher, _ = make_watcher(connection)
        nested = []

        def handler(link):
            nested.append(watcher.scan(now=NOW).matched)
            return ConfirmationResult.succeeded(attempts=1)

        watcher.handler = handler
        watcher.scan(now=NOW)

        assert nested == [0, 0]
        assert connection.search_messages.call_count == 1


class TestMailWatcherLifecycle:
    """Test connection states and the listen loop."""

    def test_connect(self):
        connection = make_connection()
        watcher, _ = make_watcher(connection)

        watcher.connect()

        connection.connect.assert_called_once_with('me@example.com', 'secret')
        connection.select_folder.assert_called_once_with('INBOX')
        assert watcher.state == WatcherState.READY

    def test_connect_failure_sets_error_state(self):
        connection = make_connection()
        connection.connect.side_effect = MailboxConnectionError("IMAP connection error", host='imap.example.com', port=993)
        watcher, _ = make_watcher(connection)

        with pytest.raises(MailboxConnectionError):
            watcher.run()

        assert watcher.state == WatcherState.ERROR
        connection.idle_start.assert_not_called()

    def test_stop_ends_run(self):
        connection = make_connection()
        watcher, _ = make_watcher(connection)
        connection.idle_start.side_effect = lambda: watcher.stop()

        state = watcher.run()

        assert state == WatcherState.DISCONNECTED
        assert watcher.state == WatcherState.DISCONNECTED
        assert watcher.stop_requested is True
        # Startup scan
        connection.search_messages.assert_called_once()
        connection.idle_done.assert_called_once()
        connection.disconnect.assert_called_once()
        assert 'Watcher stopped' in logged_events(watcher.logger)

    def test_server_disconnect_ends_run(self):
        connection = make_connection()
        connection.idle_wait.side_effect = IMAPClientAbortError("socket error: EOF")
        watcher, _ = make_watcher(connection)

        state = watcher.run()

        assert state == WatcherState.ENDED
        connection.disconnect.assert_called_once()
        assert 'IMAP connection ended' in logged_events(watcher.logger, 'warning')

    def test_new_mail_triggers_scan(self):
        connection = make_connection()
        connection.idle_wait.side_effect = [False, True]
        watcher, _ = make_watcher(connection)
        watcher.scan = Mock(side_effect=lambda: watcher.stop())

        watcher._listen()

        watcher.scan.assert_called_once_with()
        assert 'New email event received' in logged_events(watcher.logger)
        assert connection.idle_wait.call_count == 2
        connection.idle_wait.assert_called_with(MailWatcher.IDLE_SLICE_SECONDS)

    def test_poll_interval_triggers_scan(self):
        connection = make_connection()
        ticks = itertools.count(0.0, 1.0)
        watcher, _ = make_watcher(connection, clock=lambda: next(ticks), poll_interval_ms=2000)
        scans = []

        def scan():
            scans.append(True)
            if len(scans) == 2:
                watcher.stop()

        watcher.scan = Mock(side_effect=scan)

        watcher._listen()

        assert len(scans) == 2
        assert logged_events(watcher.logger).count('Periodic poll') == 2
        assert connection.idle_start.call_count == connection.idle_done.call_count

    def test_idle_is_renewed(self):
        connection = make_connection()
        ticks = itertools.count(0.0, 100.0)
        watcher, _ = make_watcher(connection, clock=lambda: next(ticks), poll_interval_ms=10_000_000)
        watcher.scan = Mock()

        def idle_start():
            if connection.idle_start.call_count == 2:
                watcher.stop()

        connection.idle_start.side_effect = idle_start

        watcher._listen()

        assert connection.idle_start.call_count == 2
        assert connection.idle_done.call_count == 2
        watcher.scan.assert_not_called()
