"""Redaction utilities for logs and error messages.

Deterministic, non-mutating redaction. Never stores or prints the actual
secret; it only indicates that redaction occurred. Email addresses are masked
down to their first character and domain so log lines stay correlatable
without carrying the full address.
"""

from __future__ import annotations

import json
import re
from typing import Any

# ── Constants ────────────────────────────────────────────────────

SENSITIVE_KEYWORDS = [
    "api_key", "apikey", "token", "secret", "password",
    "bearer", "authorization", "credential",
]

REDACTED = "***REDACTED***"

# Keys whose values are user content and never belong in log payloads
_CONTENT_KEYS = {"text", "snapshot_text", "prompt_text", "body"}

# Max payload size for safe_log_json (8 KB)
_MAX_LOG_BYTES = 8192

# Max string length before truncation in redact_dict
_MAX_STRING_LEN = 240

# Max recursion depth for redact_dict
_MAX_DEPTH = 10

# ── Patterns ─────────────────────────────────────────────────────

_BEARER_RE = re.compile(r"(Bearer\s+)\S+", re.IGNORECASE)
_URL_RE = re.compile(r"https?://[^\s\"'>]+")
_EMAIL_RE = re.compile(r"\b([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+)\b")


def _is_sensitive_key(key: str) -> bool:
    """Check if a key name matches any sensitive keyword (case-insensitive)."""
    lower = key.lower()
    return any(kw in lower for kw in SENSITIVE_KEYWORDS)


# ── Public API ───────────────────────────────────────────────────


def mask_email(email: str) -> str:
    """``alice@example.com`` -> ``a***@example.com``."""
    return _EMAIL_RE.sub(r"\1***@\2", email or "")


def redact_urls(text: str) -> str:
    """Redact URLs from error messages."""
    return _URL_RE.sub("[REDACTED_URL]", text or "")


def redact_text(text: str) -> str:
    """Redact bearer tokens and mask email addresses in a text string."""
    if not text:
        return text
    result = _BEARER_RE.sub(r"\1" + REDACTED, text)
    return mask_email(result)


def redact_dict(obj: Any, *, _depth: int = 0) -> Any:
    """Recursively redact sensitive values from a data structure.

    - Keys matching SENSITIVE_KEYWORDS have their values replaced
    - Strings are email-masked and truncated past 240 chars
    - Never mutates the input object
    """
    if _depth > _MAX_DEPTH:
        return "[max_depth_exceeded]"

    if isinstance(obj, dict):
        result = {}
        for k, v in obj.items():
            if isinstance(k, str) and _is_sensitive_key(k):
                result[k] = REDACTED
            else:
                result[k] = redact_dict(v, _depth=_depth + 1)
        return result

    if isinstance(obj, (list, tuple)):
        return [redact_dict(item, _depth=_depth + 1) for item in obj]

    if isinstance(obj, str):
        masked = mask_email(obj)
        if len(masked) > _MAX_STRING_LEN:
            return masked[:60] + "..." + masked[-60:]
        return masked

    return obj


def safe_log_json(event: dict) -> dict:
    """Prepare a dict for safe JSON logging.

    1. Removes user-content keys (prompt text, comment bodies)
    2. Applies redact_dict
    3. Enforces max payload size (8 KB)
    """
    cleaned = {k: v for k, v in event.items() if k not in _CONTENT_KEYS}
    redacted = redact_dict(cleaned)

    serialized = json.dumps(redacted, separators=(",", ":"), default=str)
    if len(serialized) <= _MAX_LOG_BYTES:
        return redacted
    return _truncate_to_fit(redacted)


def _truncate_to_fit(obj: Any) -> Any:
    """Truncate long string values so the payload fits the log budget."""
    if isinstance(obj, dict):
        return {k: _truncate_to_fit(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_truncate_to_fit(item) for item in obj]
    if isinstance(obj, str) and len(obj) > 100:
        return obj[:40] + "...[truncated]..." + obj[-40:]
    return obj
