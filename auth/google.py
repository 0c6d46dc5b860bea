"""
auth/google.py -- Google ID token verification.

The browser signs in with Google Identity Services and posts the resulting ID
token (a JWT signed by Google) to POST /api/v1/auth/google. This module decides
whether that token can be trusted.

Two libraries split the work:
  authlib   -- OAuth/OIDC provider registry. The "google" client is registered
               from Google's discovery document; its fetch_jwk_set() resolves
               jwks_uri and caches Google's current signing keys.
  python-jose -- RS256 signature check plus exp/iss/aud claim validation.

Security notes:
  Every check must pass: signature (key chosen by kid), expiry, issuer in
  GOOGLE_ISSUERS, audience equal to GOOGLE_CLIENT_ID. Any failure raises
  InvalidCredential; a token is never partially trusted.

  [H1] Email verification is mandatory. The email is the join key for
       pre-created accounts, so an unverified address could hijack one.

  Key rotation: an unknown kid triggers exactly one forced refresh of the key
  set before the token is rejected. Network failures while fetching keys raise
  ProviderUnavailable and are not retried.

Layer rule: no imports from api/ or forum/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

import httpx
from authlib.integrations.starlette_client import OAuth
from jose import JWTError, jwt

from auth.errors import InvalidCredential, ProviderUnavailable
from auth.models import VerifiedIdentity
from core.config import Settings, get_settings
from core.logging_safety import safe_log_identifier

logger = logging.getLogger("agora.auth.google")

GOOGLE_ISSUERS: tuple[str, ...] = ("accounts.google.com", "https://accounts.google.com")

_ALGORITHMS = ["RS256"]

_DECODE_OPTIONS = {
    "require_aud": True,
    "require_iss": True,
    "require_exp": True,
    "require_sub": True,
    # Sign-In credentials are not paired with an access token.
    "verify_at_hash": False,
}

# force=True bypasses any cached key set.
KeySetFetcher = Callable[[bool], Awaitable[dict]]

# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------

oauth = OAuth()


def _register_google(cfg: Settings):
    client = oauth.register(
        name="google",
        client_id=cfg.google_client_id,
        server_metadata_url=cfg.google_discovery_url,
        client_kwargs={"scope": "openid email profile"},
    )
    logger.info("Google identity provider registered")
    return client


_cfg = get_settings()

if _cfg.google_client_id:
    _register_google(_cfg)


# ---------------------------------------------------------------------------
# Verifier
# ---------------------------------------------------------------------------


class GoogleCredentialVerifier:
    """Verifies Google ID tokens for one OAuth client id.

    fetch_key_set is injected so tests can serve a local key set instead of
    Google's; production uses the authlib client (see build_google_verifier).
    """

    def __init__(
        self,
        client_id: str,
        fetch_key_set: KeySetFetcher,
        issuers: tuple[str, ...] = GOOGLE_ISSUERS,
    ) -> None:
        if not client_id:
            raise ValueError("client_id is required")
        self._client_id = client_id
        self._fetch_key_set = fetch_key_set
        self._issuers = issuers

    async def verify(self, token: str) -> VerifiedIdentity:
        """Return the identity asserted by token, or raise InvalidCredential."""
        if not token:
            raise InvalidCredential("Identity token is missing.")
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise InvalidCredential("Identity token is malformed.") from exc

        kid = header.get("kid")
        key = _find_key(await self._load_key_set(force=False), kid)
        if key is None:
            logger.info("Unknown signing key id, refreshing Google key set")
            key = _find_key(await self._load_key_set(force=True), kid)
        if key is None:
            raise InvalidCredential("Identity token is signed with an unknown key.")

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=_ALGORITHMS,
                audience=self._client_id,
                issuer=self._issuers,
                options=_DECODE_OPTIONS,
            )
        except JWTError as exc:
            logger.info("Google ID token rejected: %s", exc.__class__.__name__)
            raise InvalidCredential() from exc

        identity = _identity_from_claims(claims)
        logger.info("Google ID token verified subject=%s", safe_log_identifier(identity.subject, prefix="sub"))
        return identity

    async def _load_key_set(self, force: bool) -> dict:
        try:
            return await self._fetch_key_set(force)
        except (httpx.HTTPError, RuntimeError, ValueError) as exc:
            logger.warning("Google key set fetch failed: %s", exc)
            raise ProviderUnavailable() from exc


def _find_key(key_set: dict, kid: str | None) -> dict | None:
    if not kid:
        return None
    for key in key_set.get("keys", []):
        if key.get("kid") == kid:
            return key
    return None


def _identity_from_claims(claims: dict) -> VerifiedIdentity:
    """Normalize verified claims into a VerifiedIdentity [H1]."""
    email = (claims.get("email") or "").strip().lower()
    if not email:
        raise InvalidCredential("Identity token carries no email address.")
    # Google sends a JSON boolean; some older tokens used the string "true".
    if claims.get("email_verified") not in (True, "true"):
        raise InvalidCredential("Email address is not verified by the identity provider.")

    name = (claims.get("name") or "").strip() or email.split("@", 1)[0]
    return VerifiedIdentity(
        subject=str(claims["sub"]),
        email=email,
        name=name,
        avatar=claims.get("picture") or None,
    )


def build_google_verifier(settings: Settings | None = None) -> GoogleCredentialVerifier | None:
    """Wire a verifier to the registered authlib client.

    Returns None when GOOGLE_CLIENT_ID is not configured; the login route then
    answers 503 instead of accepting tokens for an unknown audience.
    """
    cfg = settings or get_settings()
    if not cfg.google_client_id:
        logger.warning("GOOGLE_CLIENT_ID is not set -- Google sign-in is disabled")
        return None
    client = oauth.create_client("google") or _register_google(cfg)

    async def fetch_key_set(force: bool) -> dict:
        return await client.fetch_jwk_set(force=force)

    return GoogleCredentialVerifier(client_id=cfg.google_client_id, fetch_key_set=fetch_key_set)
