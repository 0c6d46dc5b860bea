"""
core/database.py -- Relational schema and engine factory shared by all stores.

Uses SQLAlchemy Core (not ORM) so the dataclasses in auth/models.py and
forum/models.py stay the authoritative domain representation. Swapping SQLite
for PostgreSQL is a DATABASE_URL change, not a rewrite.

All four tables live on one MetaData because posts and comments carry foreign
keys to users. UserStore and ForumStore each call metadata.create_all(), which
is idempotent.

Constraints:
  users.google_id is UNIQUE but nullable. Pre-created (email-only) accounts
  have no provider subject yet; SQLite and PostgreSQL both treat NULLs as
  distinct, so any number of unlinked rows may coexist.

  comments.post_id cascades on post deletion. SQLite only honours ON DELETE
  when PRAGMA foreign_keys is enabled, which _set_sqlite_pragmas() does on
  every new connection.

Layer rule: core/ is the kernel. No imports from api/, auth/, or forum/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

metadata = MetaData()

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("google_id", String(255), unique=True),  # NULL until first Google login
    Column("email", String(320), nullable=False, unique=True),  # stored lowercase
    Column("name", String(255), nullable=False),
    Column("avatar", Text),
    Column("role", String(16), nullable=False, server_default="user"),
    Column("created_at", String(32), nullable=False),
)

categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("description", Text, nullable=False, server_default=""),
    Column("icon", String(64)),
    Column("created_by", Integer, ForeignKey("users.id")),
    Column("created_at", String(32), nullable=False),
)

posts = Table(
    "posts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(200), nullable=False),
    Column("content", Text, nullable=False),  # sanitized HTML, never raw markup
    Column("category_id", Integer, ForeignKey("categories.id"), nullable=False),
    Column("author_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("file_path", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

comments = Table(
    "comments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("content", Text, nullable=False),  # sanitized HTML, never raw markup
    Column("post_id", Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
    Column("author_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(db_url: str) -> Engine:
    """Create an Engine for db_url and make sure the schema exists."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    metadata.create_all(engine)
    return engine


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
