"""
Household confirmation link handling.

This module provides:
- Link extraction from raw (transport-encoded) email bodies
- Structural validation of confirmation URLs
- Shared types, exceptions and event logging for the pipeline
"""

from .extractors import ConfirmationLinkExtractor, extract_confirmation_link
from .validators import ConfirmationLinkValidator, is_valid_confirmation_url
from .types import (
    ExtractedLink, MessageHeaderSnapshot, ConfirmationResult, FailureKind, ScanSummary
)

__all__ = [
    'ConfirmationLinkExtractor',
    'extract_confirmation_link',
    'ConfirmationLinkValidator',
    'is_valid_confirmation_url',
    'ExtractedLink',
    'MessageHeaderSnapshot',
    'ConfirmationResult',
    'FailureKind',
    'ScanSummary',
]
