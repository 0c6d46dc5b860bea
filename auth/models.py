"""
auth/models.py -- Domain dataclasses for identity entities.

Pattern: Data class (pure data container, zero logic). Mirrors forum/models.py
-- dataclasses own domain shape; stores and routes do the work.

Layer rule: no imports from api/ or forum/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    user = "user"
    admin = "admin"


@dataclass(frozen=True)
class VerifiedIdentity:
    """Claims extracted from a Google ID token after every check has passed.

    Nothing constructs this from an unverified token. subject is Google's
    stable "sub" claim; email is already lowercased.
    """

    subject: str
    email: str
    name: str
    avatar: str | None = None


@dataclass
class User:
    """A local account.

    google_id is None for accounts pre-created by an operator (email only).
    The first Google login with a matching email links the subject to the row.

    role is only ever changed by the operator CLI. Logins never touch it.
    """

    email: str
    name: str
    role: str = Role.user.value
    id: int | None = None
    google_id: str | None = None
    avatar: str | None = None
    created_at: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin.value
