"""Log sanitizer - keeps credentials and device identifiers out of log files.

Gateway error bodies and subscription events can echo API keys, push device
tokens and user emails back at us; everything logged from those paths goes
through here first.
"""

import re
from typing import Optional, Union

# Patterns to detect and redact sensitive data
SENSITIVE_PATTERNS = [
    # Email addresses (external user ids are sometimes emails)
    (r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b', '[EMAIL]'),

    # Authorization headers
    (r'(Bearer|Basic)\s+[A-Za-z0-9\-_\.=+/]+', r'\1 [REDACTED]'),

    # Keys and tokens in key=value / JSON form
    (r'(rest_api_key|api_key|apikey|app_key|token|secret|password)(["\']?\s*[:=]\s*["\']?)[^\s,}"\']{6,}',
     r'\1\2[REDACTED]'),

    # JWT tokens (three base64 segments separated by dots)
    (r'eyJ[A-Za-z0-9\-_]+\.eyJ[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+', '[JWT_TOKEN]'),

    # FCM registration tokens (<instance id>:<long token>)
    (r'\b[A-Za-z0-9\-_]{11,}:[A-Za-z0-9\-_]{100,}\b', '[PUSH_TOKEN]'),

    # Generic long alphanumeric strings that look like keys (40+ chars)
    (r'\b[A-Za-z0-9]{40,}\b', '[LONG_TOKEN]'),
]

# Compiled patterns for efficiency
_COMPILED_PATTERNS = [(re.compile(p, re.IGNORECASE), r) for p, r in SENSITIVE_PATTERNS]


def sanitize_log(text: str) -> str:
    """Remove sensitive data from text for safe logging.

    Args:
        text: The text to sanitize

    Returns:
        Sanitized text with sensitive data replaced by placeholders
    """
    if not text:
        return text

    result = text
    for pattern, replacement in _COMPILED_PATTERNS:
        result = pattern.sub(replacement, result)

    return result


def sanitize_for_log(value: Union[str, bytes, None], max_length: int = 200) -> str:
    """Sanitize and truncate a value (e.g. an HTTP response body) for logging."""
    if value is None:
        return "<None>"

    if isinstance(value, bytes):
        text = value.decode("utf-8", errors="replace")
    else:
        text = str(value)

    sanitized = sanitize_log(text)

    if len(sanitized) > max_length:
        return sanitized[:max_length] + f"... [{len(text)} chars total]"

    return sanitized


def mask_token(token: Optional[str], visible: int = 4) -> str:
    """Mask a device token or subscription id, keeping only the tail.

    "3f2b9c1e-0000-4a1b-9c3d-5e6f7a8b9c0d" -> "…9c0d"
    """
    if not token:
        return "<none>"
    if len(token) <= visible:
        return "…" + "*" * len(token)
    return "…" + token[-visible:]
