"""
Utility functions for the character sheet generator.

Provides common functionality for:
- Prompt sanitization
- Base64 / data-URI decoding of uploaded images
- Text truncation for upstream error messages
"""
from __future__ import annotations

import base64
import binascii
import re
import unicodedata

from app.config import get_logger

logger = get_logger("utils")


# =============================================================================
# Input Sanitization
# =============================================================================

_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]')
_EXCESSIVE_WHITESPACE = re.compile(r'\s{10,}')
_NULL_BYTES = re.compile(r'\x00')


def sanitize_text(text: str, max_length: int | None = None) -> str:
    """
    Sanitize user input text for safe processing.

    - Removes control characters
    - Normalizes Unicode (NFC form)
    - Removes null bytes
    - Collapses excessive whitespace
    - Strips leading/trailing whitespace
    - Optionally truncates to max_length

    Args:
        text: Input text to sanitize
        max_length: Maximum allowed length (None for no limit)

    Returns:
        Sanitized text string
    """
    if not text:
        return ""

    text = unicodedata.normalize("NFC", text)
    text = _NULL_BYTES.sub("", text)
    text = _CONTROL_CHARS.sub("", text)
    text = _EXCESSIVE_WHITESPACE.sub(" ", text)
    text = text.strip()

    if max_length and len(text) > max_length:
        text = text[:max_length]
        logger.debug("Text truncated to %d characters", max_length)

    return text


# =============================================================================
# Base64 / Data URI
# =============================================================================

_DATA_URI = re.compile(r'^data:(?P<mime>[\w.+\-]+/[\w.+\-]+)?(?:;[\w\-]+=[\w\-]+)*;base64,(?P<data>.*)$', re.S)
_WHITESPACE = re.compile(r'\s+')


def split_data_uri(value: str) -> tuple[str | None, str]:
    """
    Split an optional ``data:<mime>;base64,`` prefix from a base64 payload.

    Returns:
        (mime_type or None, bare base64 string)
    """
    match = _DATA_URI.match(value.strip())
    if match:
        return match.group("mime"), match.group("data")
    return None, value


def decode_base64(value: str) -> bytes:
    """
    Decode a base64 string (bare or data URI) strictly.

    Raises:
        ValueError: If the payload is empty or not valid base64
    """
    _, payload = split_data_uri(value)
    payload = _WHITESPACE.sub("", payload)
    if not payload:
        raise ValueError("Empty base64 payload")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e


# =============================================================================
# Text Processing Utilities
# =============================================================================

def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate text to max_length, adding suffix if truncated.

    Attempts to truncate at word boundaries when possible.
    """
    if len(text) <= max_length:
        return text

    target_length = max_length - len(suffix)
    if target_length <= 0:
        return suffix[:max_length]

    truncated = text[:target_length]
    last_space = truncated.rfind(" ")

    if last_space > target_length * 0.7:
        truncated = truncated[:last_space]

    return truncated.rstrip() + suffix
