"""
utils/validation_utils.py

Purpose: Input validation

- Bot token and API key shape checks
- Integer and price parsing for console wizards
- Input sanitization
"""

import re
from typing import Optional

OPENAI_KEY_PREFIX = "sk-"

# Telegram bot tokens look like 123456789:AA...; the console only insists on the colon
BOT_TOKEN_SEPARATOR = ":"

TENANT_EMAIL_PATTERN = re.compile(r"tenant_(\d+)@")
EXTERNAL_ID_PREFIX = "SUB_"


def sanitize_input(text: Optional[str], max_length: int = 4000) -> str:
    """
    Sanitizes user input.

    - Strips surrounding whitespace
    - Removes control characters except newlines and tabs
    - Limits length

    Args:
        text: Input text
        max_length: Maximum allowed length

    Returns:
        Sanitized text (empty string for None)
    """
    if not text:
        return ""
    text = "".join(ch for ch in text if ch in "\n\t" or ord(ch) >= 32)
    return text.strip()[:max_length]


def is_valid_openai_key(key: str) -> bool:
    return bool(key) and key.startswith(OPENAI_KEY_PREFIX)


def is_valid_bot_token(token: str) -> bool:
    return bool(token) and BOT_TOKEN_SEPARATOR in token


def parse_int(text: str) -> Optional[int]:
    """
    Parses a whole number the way an operator types it.

    "50" -> 50, " 30 " -> 30, "abc" -> None, "1.5" -> None
    """
    try:
        return int(text.strip())
    except (AttributeError, ValueError):
        return None


def parse_price(text: str) -> Optional[float]:
    """
    Parses a decimal amount accepting ',' or '.' as separator.

    "99,90" -> 99.9, "129.90" -> 129.9, "free" -> None
    """
    if not text:
        return None
    try:
        value = float(text.strip().replace(",", ".", 1))
    except ValueError:
        return None
    if value != value or value in (float("inf"), float("-inf")):
        return None
    return value


def extract_tenant_id_from_email(email: Optional[str]) -> Optional[int]:
    """
    Finds the tenant id in a charge e-mail.

    "tenant_42@botfleet.app" -> 42
    """
    if not email or not isinstance(email, str):
        return None
    match = TENANT_EMAIL_PATTERN.search(email)
    return int(match.group(1)) if match else None


def extract_tenant_id_from_external_id(external_id: Optional[str]) -> Optional[int]:
    """
    "SUB_42" -> 42; anything else -> None
    """
    if not external_id or not isinstance(external_id, str):
        return None
    if not external_id.startswith(EXTERNAL_ID_PREFIX):
        return None
    suffix = external_id[len(EXTERNAL_ID_PREFIX):]
    return int(suffix) if suffix.isdecimal() else None
