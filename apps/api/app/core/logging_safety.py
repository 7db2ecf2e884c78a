"""Utilities for safe structured logging fields."""

from __future__ import annotations

import hashlib
from typing import Any

_MAX_LOG_TEXT = 200


def safe_log_identifier(value: Any, *, prefix: str) -> str:
    """Return a deterministic non-reversible token for log correlation fields."""
    text = str(value or "").strip()
    if not text:
        return f"{prefix}-missing"

    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return f"{prefix}-{digest}"


def safe_log_text(value: Any, *, limit: int = _MAX_LOG_TEXT) -> str:
    """Flatten backend-supplied text to one bounded line for log output."""
    text = " ".join(str(value or "").split())
    if len(text) <= limit:
        return text
    return f"{text[: limit - 3]}..."
