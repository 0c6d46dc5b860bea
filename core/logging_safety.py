"""
core/logging_safety.py -- Helpers for keeping identifiers out of log lines.

Auth logs need to correlate events for the same subject without writing the
raw provider subject, email, or user id to disk. safe_log_identifier() maps a
value to a short, deterministic, non-reversible token.
"""

from __future__ import annotations

import hashlib
from typing import Any


def safe_log_identifier(value: Any, *, prefix: str) -> str:
    """Return a deterministic non-reversible token for log correlation fields."""
    text = str(value or "").strip()
    if not text:
        return f"{prefix}-missing"

    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return f"{prefix}-{digest}"
