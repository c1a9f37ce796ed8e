"""
Confirmation link extraction from raw email body content.

The body arrives as fetched from the server, so transport encoding
(quoted-printable soft line breaks and hex escapes) is reversed before
the link pattern is applied.
"""

import html
import urllib.parse
from typing import Optional

from .constants import (
    CONFIRMATION_LINK_PATTERN, QP_HEX_ESCAPE_PATTERN, QP_MARKER_PATTERN, QP_SOFT_BREAK_PATTERN, TOKEN_PARAM
)
from .types import ExtractedLink


class ConfirmationLinkExtractor:
    """Extract the household confirmation link from an email body."""

    def __init__(self):
        self.link_pattern = CONFIRMATION_LINK_PATTERN

    def _unwrap_quoted_printable(self, text: str) -> str:
        """
        Reverse quoted-printable encoding applied by mail transport.

        A line ending with '=' is a soft line break: the line continues on
        the next one without a separator. '=XX' escapes encode single bytes,
        most commonly '=3D' for '=' inside URLs. Text without soft breaks or
        '=3D' is not quoted-printable and is returned unchanged, so a plain
        'nftoken=abc123' keeps its value.

        Example:
            "https://www.netflix.com/account/update-primary-location?nftoken=3D=\nabc"
            becomes "https://www.netflix.com/account/update-primary-location?nftoken=abc"
        """
        if not QP_MARKER_PATTERN.search(text):
            return text

        text = QP_SOFT_BREAK_PATTERN.sub('', text)
        return QP_HEX_ESCAPE_PATTERN.sub(lambda m: chr(int(m.group(1), 16)), text)

    def extract(self, body: Optional[str]) -> Optional[ExtractedLink]:
        """
        Find the first quoted confirmation link and its token.

        Returns None when the body has no link, the link cannot be parsed,
        or the token parameter is missing or empty. Never raises for
        malformed input.
        """
        if not body:
            return None

        try:
            decoded = self._unwrap_quoted_printable(body)
            match = self.link_pattern.search(decoded)
            if not match:
                return None

            url = html.unescape(match.group(1))
            query = urllib.parse.parse_qs(urllib.parse.urlsplit(url).query)
            token = query.get(TOKEN_PARAM, [''])[0]
            if not token:
                return None

            return ExtractedLink(url=url, token=token)
        except (ValueError, TypeError):
            return None


_default_extractor = ConfirmationLinkExtractor()


def extract_confirmation_link(body: Optional[str]) -> Optional[ExtractedLink]:
    """Module-level shortcut for ConfirmationLinkExtractor().extract()."""
    return _default_extractor.extract(body)
