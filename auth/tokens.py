"""
auth/tokens.py -- Local session tokens: issuance and validation.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry the
       local user id and an absolute expiry (SESSION_TTL_SECONDS, 7 days by
       default). Nothing else about the user travels in the token: role and
       profile are re-read from the store on every request, so a promotion or
       demotion takes effect immediately.

  Validation runs three checks in a fixed order and stops at the first failure:
       (a) signature and shape   -> Unauthenticated
       (b) absolute expiry       -> SessionExpired
       (c) user still exists     -> UserNotFound
       Expiry is compared against an injectable clock (`now`) rather than
       python-jose's internal utcnow(), which keeps (a) and (b) distinct and
       makes the 7-day window testable.

  SECRET_KEY: sourced from core.config.get_settings() once at import. Rotating
       it invalidates every outstanding session; there is no revocation list.

Layer rule: no imports from api/ or forum/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import JWTError, jwt

from auth.errors import SessionExpired, Unauthenticated, UserNotFound
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("agora.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Issuance
# ---------------------------------------------------------------------------


def create_session_token(user: User, now: datetime | None = None) -> str:
    """Encode a signed session token for user, valid SESSION_TTL_SECONDS from now."""
    issued_at = now or _utcnow()
    expires_at = issued_at + timedelta(seconds=_settings.session_ttl_seconds)
    payload = {
        "sub": str(user.id),
        "uid": user.id,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def decode_session_token(token: str, now: datetime | None = None) -> dict:
    """Verify signature and expiry and return the payload.

    Raises Unauthenticated for anything malformed or forged, SessionExpired
    for a genuine token whose exp has passed.
    """
    try:
        payload = jwt.decode(
            token,
            _settings.secret_key,
            algorithms=[_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError as exc:
        raise Unauthenticated("Invalid session token.") from exc

    uid = payload.get("uid")
    exp = payload.get("exp")
    if not isinstance(uid, int) or isinstance(uid, bool) or not isinstance(exp, (int, float)):
        raise Unauthenticated("Invalid session token.")

    current = now or _utcnow()
    if current.timestamp() >= exp:
        raise SessionExpired()
    return payload


def validate_session_token(store: UserStore, token: str, now: datetime | None = None) -> User:
    """Resolve a session token to the live User record.

    Pure read-and-verify: the only I/O is a single point lookup by id.
    """
    payload = decode_session_token(token, now=now)
    user = store.get_by_id(payload["uid"])
    if user is None:
        raise UserNotFound()
    return user


def session_expires_in() -> int:
    """Seconds a freshly issued session token stays valid."""
    return _settings.session_ttl_seconds
