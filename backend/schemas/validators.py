"""Shared Pydantic validators.

Keep these small and dependency-free so schema modules can reuse them without
introducing import cycles.
"""

import re
import unicodedata
from typing import Any

# bcrypt only looks at the first 72 bytes of its input
MAX_PASSWORD_BYTES = 72

SCRIPT_BLOCK_PATTERN = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
IFRAME_BLOCK_PATTERN = re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE)


def strip_unsafe_markup(text: str) -> str:
    """Remove <script> and <iframe> blocks and trim the result."""
    if not isinstance(text, str):
        return text
    text = SCRIPT_BLOCK_PATTERN.sub("", text)
    text = IFRAME_BLOCK_PATTERN.sub("", text)
    return text.strip()


def strip_invisible_edges(value: str) -> str:
    """
    Strip leading/trailing whitespace and Unicode format characters (Cf).

    Keeps "\\u200bann@example.com" and "ann@example.com" from registering as two
    different accounts.
    """
    if not isinstance(value, str):
        return value
    start = 0
    end = len(value)
    while start < end and (
        value[start].isspace() or unicodedata.category(value[start]) == "Cf"
    ):
        start += 1
    while end > start and (
        value[end - 1].isspace() or unicodedata.category(value[end - 1]) == "Cf"
    ):
        end -= 1
    return value[start:end]


def ensure_utf8_encodable(value: str) -> str:
    """
    Reject strings that cannot be encoded to UTF-8 (e.g., unpaired surrogates).

    Unpaired surrogates can enter the system via JSON escape sequences like
    "\\uD800" and later crash JSON serialization.
    """
    if not isinstance(value, str):
        return value
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise ValueError("Text contains invalid Unicode characters")
    return value


def normalize_optional_text(value: Any, *, strip_invisible: bool = False) -> Any:
    """Normalize optional text fields: trim, blank->None, enforce UTF-8."""
    if value is None or not isinstance(value, str):
        return value
    text = strip_invisible_edges(value) if strip_invisible else value.strip()
    if not text:
        return None
    return ensure_utf8_encodable(text)


def ensure_password_fits(value: Any) -> Any:
    """Passwords are hashed with bcrypt, which ignores bytes past the 72nd."""
    if value is None or not isinstance(value, str):
        return value
    ensure_utf8_encodable(value)
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value
