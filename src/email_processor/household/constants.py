"""
Constants and shared patterns for household confirmation processing.

This module contains the link patterns, page selectors and defaults
used across the extraction, watching and confirmation pipeline.
"""

import re
from typing import List, Pattern

# Confirmation link structure
CONFIRMATION_HOST: str = 'www.netflix.com'
CONFIRMATION_PATH: str = '/account/update-primary-location'
TOKEN_PARAM: str = 'nftoken'

# The link always appears quoted (href attribute or plain-text quotes)
CONFIRMATION_LINK_PATTERN: Pattern = re.compile(
    r'"(https://www\.netflix\.com/account/update-primary-location[^"]*)"'
)

# Quoted-printable transport artifacts
QP_SOFT_BREAK_PATTERN: Pattern = re.compile(r'=(\r?\n|$)')
QP_HEX_ESCAPE_PATTERN: Pattern = re.compile(r'=([a-f0-9]{2})', re.IGNORECASE)
# Soft line breaks or an encoded "=" mark a body as quoted-printable
QP_MARKER_PATTERN: Pattern = re.compile(r"=(\r?\n|$)|=3D", re.IGNORECASE)

# Default mail filters
DEFAULT_SUBJECT: str = 'Important: How to update your Netflix Household'

# Confirmation page selectors
EXPIRED_LINK_SELECTOR: str = 'text="This link is no longer valid"'
EXPIRED_LINK_TEXT: str = 'no longer valid'
CONFIRM_BUTTON_SELECTOR: str = "button[data-uia='set-primary-location-action']"
SUCCESS_SELECTOR: str = 'div[data-uia="upl-success"]'

# Browser launch arguments (no GPU drawing in headless mode)
BROWSER_ARGS: List[str] = ['--disable-gl-drawing-for-tests']

# Number of token characters shown in log lines
TOKEN_PREVIEW_LENGTH: int = 10

# IMAP server push responses that announce new mail
NEW_MAIL_RESPONSES = (b'EXISTS', b'RECENT')
