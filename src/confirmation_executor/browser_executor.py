"""
Browser Confirmation Executor

Completes the household confirmation in a headless Chromium session:
- Restores the saved session state so the site sees a known device
- Detects expired links before touching the page
- Clicks the confirmation button with bounded retries and linear backoff
- Saves the session state only after a confirmed success
"""

import time
from typing import Callable, Optional

from playwright.sync_api import sync_playwright

from src.config.settings import BrowserSettings
from src.email_processor.household.constants import (
    BROWSER_ARGS, CONFIRM_BUTTON_SELECTOR, EXPIRED_LINK_SELECTOR, EXPIRED_LINK_TEXT, SUCCESS_SELECTOR
)
from src.email_processor.household.exceptions import (
    ControlNotFoundError, ExpiredLinkError, RetriesExhaustedError
)
from src.email_processor.household.types import ConfirmationResult, ExtractedLink
from .base_executor import BaseConfirmationExecutor
from .session_state import SessionStateStore


class BrowserConfirmationExecutor(BaseConfirmationExecutor):
    """Execute household confirmations by driving a headless browser."""

    def __init__(
        self,
        settings: BrowserSettings,
        state_store: Optional[SessionStateStore] = None,
        playwright_factory: Callable = sync_playwright,
        sleep: Callable[[float], None] = time.sleep,
        dry_run: bool = False
    ):
        """
        Initialize browser executor.

        Args:
            settings: Timeouts, retry budget and storage-state location
            state_store: Session state storage (defaults to settings path)
            playwright_factory: Returns a Playwright context manager
            sleep: Backoff sleep function
            dry_run: If True, simulate without opening a browser
        """
        super().__init__(dry_run)
        self.settings = settings
        self.state_store = state_store or SessionStateStore(settings.storage_state_path)
        self.playwright_factory = playwright_factory
        self.sleep = sleep

    @property
    def method_name(self) -> str:
        return 'browser'

    def _perform_execution(self, link: ExtractedLink) -> ConfirmationResult:
        """
        Run one confirmation in a fresh browser.

        The browser is closed on every exit path, and session state is
        written only when the success indicator was seen.
        """
        with self.playwright_factory() as playwright:
            self.logger.info('Browser opened', 'Launching headless browser')
            browser = playwright.chromium.launch(headless=self.settings.headless, args=BROWSER_ARGS)
            try:
                context = browser.new_context(storage_state=self.state_store.load())
                page = context.new_page()

                attempts = self._confirm_on_page(page, link)

                self.state_store.save(context.storage_state())
                self.logger.info('Storage state saved', 'Session persisted for future runs')
                return ConfirmationResult.succeeded(attempts=attempts)
            finally:
                browser.close()
                self.logger.info('Browser closed', 'Automation completed')

    def _confirm_on_page(self, page, link: ExtractedLink) -> int:
        """Navigate and click until confirmed; returns the successful attempt number."""
        self.logger.info('Navigating to confirmation URL', f"URL: {link.url[:50]}...")
        page.goto(link.url, wait_until='domcontentloaded', timeout=self.settings.page_load_timeout_ms)
        self.logger.info('Page loaded', 'Waiting for confirmation button')

        if page.locator(EXPIRED_LINK_SELECTOR).count() > 0:
            raise ExpiredLinkError("Confirmation link has expired", {'token': link.token_preview})

        confirm_button = page.locator(CONFIRM_BUTTON_SELECTOR)
        if confirm_button.count() == 0:
            page_content = page.text_content('body') or ''
            if EXPIRED_LINK_TEXT in page_content:
                raise ExpiredLinkError("Confirmation link has expired", {'token': link.token_preview})
            raise ControlNotFoundError(
                "Confirmation button not found on page. Link may be expired or invalid",
                {'token': link.token_preview}
            )

        max_attempts = self.settings.retry_attempts
        last_error: Optional[BaseException] = None

        for attempt in range(1, max_attempts + 1):
            try:
                self.logger.info('Attempting button click', f"Attempt {attempt}/{max_attempts}")
                confirm_button.click(force=True, timeout=self.settings.click_timeout_ms)
                self.logger.info('Button clicked', f"Attempt {attempt}/{max_attempts}")

                success_indicator = page.locator(SUCCESS_SELECTOR)
                success_indicator.wait_for(state='attached', timeout=self.settings.success_timeout_ms)
                if success_indicator.count() > 0:
                    if attempt > 1:
                        self.logger.info(
                            'Confirmation succeeded on retry',
                            f"Succeeded on attempt {attempt}/{max_attempts} | Token: {link.token_preview}"
                        )
                    else:
                        self.logger.info(
                            'Confirmation completed',
                            f"Succeeded on first attempt | Token: {link.token_preview}"
                        )
                    return attempt

                self.logger.warning(f"Button click attempt {attempt} failed", 'Success indicator not found')
            except Exception as e:
                last_error = e
                self.logger.warning(f"Button click attempt {attempt} failed", str(e) or type(e).__name__)

            if attempt < max_attempts:
                delay = attempt * self.settings.backoff_seconds
                self.logger.info('Retrying', f"Waiting {delay:g} second(s) before retry...")
                self.sleep(delay)

        raise RetriesExhaustedError(max_attempts, last_error)
