"""
Confirmation URL structure validation.

Validation is independent of extraction so a URL obtained from any
source (command line, another extractor) can be checked the same way.
"""

import urllib.parse

from .constants import CONFIRMATION_HOST, CONFIRMATION_PATH, TOKEN_PARAM


class ConfirmationLinkValidator:
    """Validate that a URL points at the household confirmation page."""

    def __init__(self):
        self.expected_host = CONFIRMATION_HOST
        self.expected_path = CONFIRMATION_PATH
        self.token_param = TOKEN_PARAM

    def is_valid(self, url: str) -> bool:
        """True iff hostname, path and a non-empty token parameter all match."""
        if not url:
            return False

        try:
            parsed = urllib.parse.urlsplit(url)
            query = urllib.parse.parse_qs(parsed.query)
            return (
                parsed.hostname == self.expected_host
                and parsed.path == self.expected_path
                and bool(query.get(self.token_param, [''])[0])
            )
        except (ValueError, TypeError):
            return False


def is_valid_confirmation_url(url: str) -> bool:
    return ConfirmationLinkValidator().is_valid(url)
