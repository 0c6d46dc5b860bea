"""
auth/store.py -- SQLAlchemy Core persistence layer for local accounts.

Pattern: Repository + Data Mapper (same as forum/store.py).
UserStore is the repository; _row_to_user is the mapper. Route and dependency
code never touches SQL directly.

upsert_identity() is the only write path the login flow uses. It runs as a
single transaction (engine.begin()): the lookup and the insert/update commit
together or not at all, so a request abandoned mid-login never leaves a
half-linked account behind. Concurrency control is the database's own; this
module holds no locks and no in-process registries.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Roles are never derived from the identity provider. New accounts start as
  "user"; existing roles are left exactly as they are.

Layer rule: no imports from api/ or forum/. core/ is allowed.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select, text
from sqlalchemy.engine import Engine

from auth.models import Role, User, VerifiedIdentity
from core.config import get_settings
from core.database import create_db_engine, now_iso, users
from core.logging_safety import safe_log_identifier

logger = logging.getLogger("agora.auth.store")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        user = store.upsert_identity(identity)
        same = store.get_by_id(user.id)
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = create_db_engine(db_url or get_settings().database_url)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int) -> User | None:
        """Point lookup by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by id. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(users.select().order_by(users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users)).scalar()
        return result or 0

    def ping(self) -> bool:
        """Run a trivial query to verify the database is reachable."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("Database ping failed")
            return False

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Used by the operator CLI to pre-create email-only accounts. Raises
        sqlalchemy.exc.IntegrityError if the email or google_id already exists.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                users.insert().values(
                    google_id=user.google_id,
                    email=normalize_email(user.email),
                    name=user.name,
                    avatar=user.avatar,
                    role=user.role,
                    created_at=now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def upsert_identity(self, identity: VerifiedIdentity) -> User:
        """Map a verified Google identity to exactly one local account.

        Lookup order: google_id first, then email, so an account that was
        pre-created by email (or whose provider subject changed) is re-linked
        instead of duplicated.

          no match -> insert with role "user"
          match    -> refresh name and avatar, link google_id; id, email and
                      role are never modified

        Calling this twice with the same identity returns the same id and
        writes no second row. A concurrent first login for the same identity
        surfaces as sqlalchemy.exc.IntegrityError from the unique constraints.
        """
        email = normalize_email(identity.email)
        with self.engine.begin() as conn:
            row = conn.execute(users.select().where(users.c.google_id == identity.subject)).fetchone()
            if row is None:
                row = conn.execute(users.select().where(users.c.email == email)).fetchone()

            if row is None:
                result = conn.execute(
                    users.insert().values(
                        google_id=identity.subject,
                        email=email,
                        name=identity.name,
                        avatar=identity.avatar,
                        role=Role.user.value,
                        created_at=now_iso(),
                    )
                )
                user_id = result.inserted_primary_key[0]
                action = "created"
            else:
                user_id = row.id
                conn.execute(
                    users.update()
                    .where(users.c.id == user_id)
                    .values(name=identity.name, avatar=identity.avatar, google_id=identity.subject)
                )
                action = "linked" if row.google_id != identity.subject else "updated"

            row = conn.execute(users.select().where(users.c.id == user_id)).one()

        logger.info(
            "identity.upsert action=%s user=%s subject=%s",
            action,
            safe_log_identifier(user_id, prefix="uid"),
            safe_log_identifier(identity.subject, prefix="sub"),
        )
        return _row_to_user(row)

    def set_role(self, user_id: int, role: Role) -> bool:
        """Change a user's role. Operator CLI only.

        Returns True if a row was updated, False if user_id was not found.
        """
        with self.engine.begin() as conn:
            result = conn.execute(users.update().where(users.c.id == user_id).values(role=Role(role).value))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        google_id=row.google_id,
        email=row.email,
        name=row.name,
        avatar=row.avatar,
        role=row.role,
        created_at=row.created_at,
    )
