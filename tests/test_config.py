"""
tests/test_config.py -- Settings validation.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings


def test_production_requires_secret_key() -> None:
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(debug=False, secret_key="")


def test_short_secret_key_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(debug=True, secret_key="too-short")


def test_debug_generates_secret_key() -> None:
    settings = Settings(debug=True, secret_key="")
    assert len(settings.secret_key) >= 32


def test_defaults() -> None:
    settings = Settings(debug=True)
    assert settings.session_ttl_seconds == 7 * 24 * 60 * 60
    assert settings.max_upload_bytes == 5 * 1024 * 1024


@pytest.mark.parametrize("ttl", [0, 59, -1])
def test_session_ttl_lower_bound(ttl: int) -> None:
    with pytest.raises(ValidationError):
        Settings(debug=True, session_ttl_seconds=ttl)


def test_upload_limit_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Settings(debug=True, max_upload_bytes=0)
