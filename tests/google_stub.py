"""
tests/google_stub.py -- A local stand-in for Google's ID token issuer.

A throwaway RSA key pair signs Google-shaped ID tokens (make_id_token) and
FakeKeySet serves the public half the way the authlib client's
fetch_jwk_set(force=...) would. Nothing here touches the network.
"""

from __future__ import annotations

import time

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk, jwt

TEST_CLIENT_ID = "agora-test.apps.googleusercontent.com"
TEST_KID = "test-key-1"


def _generate_private_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


GOOGLE_PRIVATE_PEM = _generate_private_pem()
OTHER_PRIVATE_PEM = _generate_private_pem()


def public_jwk(private_pem: str = GOOGLE_PRIVATE_PEM, kid: str = TEST_KID) -> dict:
    """Public half of private_pem as a JWK, as Google's jwks_uri would serve it."""
    data = jwk.construct(private_pem, "RS256").to_dict()
    data.update({"kid": kid, "use": "sig"})
    return data


def make_id_token(
    *,
    private_pem: str = GOOGLE_PRIVATE_PEM,
    kid: str = TEST_KID,
    **overrides,
) -> str:
    """Mint a Google-shaped ID token.

    Keyword overrides replace default claims; an override of None removes the
    claim entirely.
    """
    now = int(time.time())
    claims = {
        "iss": "https://accounts.google.com",
        "aud": TEST_CLIENT_ID,
        "sub": "google-sub-alice",
        "email": "alice@example.com",
        "email_verified": True,
        "name": "Alice Example",
        "picture": "https://lh3.googleusercontent.com/a/alice",
        "iat": now,
        "exp": now + 3600,
    }
    for name, value in overrides.items():
        if value is None:
            claims.pop(name, None)
        else:
            claims[name] = value
    return jwt.encode(claims, private_pem, algorithm="RS256", headers={"kid": kid})


class FakeKeySet:
    """Async stand-in for fetch_jwk_set(force=...).

    Serves `keys` on a normal fetch and `refreshed_keys` (when given) on a
    forced one. Set `error` to make every fetch raise it. Each call's force
    flag is recorded in `calls`.
    """

    def __init__(self, keys: list[dict], refreshed_keys: list[dict] | None = None) -> None:
        self.keys = keys
        self.refreshed_keys = refreshed_keys
        self.error: Exception | None = None
        self.calls: list[bool] = []

    async def __call__(self, force: bool) -> dict:
        self.calls.append(force)
        if self.error is not None:
            raise self.error
        if force and self.refreshed_keys is not None:
            return {"keys": list(self.refreshed_keys)}
        return {"keys": list(self.keys)}
