"""
forum/store.py -- SQLAlchemy-backed persistence for categories, posts and comments.

Pattern: Repository + Data Mapper. ForumStore is the repository (one clean
interface per entity). The _row_to_* functions are the mappers. Route handlers
never touch SQL directly.

This store persists whatever content string it is given. Sanitizing is the
route layer's job (core.sanitizer.render) and happens before any call here;
the store never sees raw markup.

Comments are removed with their post by the ON DELETE CASCADE on
comments.post_id (see core/database.py for the SQLite pragma).

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = ForumStore()                               # DATABASE_URL from settings
    store = ForumStore("postgresql://user:pw@host/db")
    cat_id = store.create_category(Category(name="General", created_by=admin.id))
    post_id = store.create_post(post)
    store.close()
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from core.config import get_settings
from core.database import categories, comments, create_db_engine, now_iso, posts, users
from forum.models import Category, Comment, Post

SORT_ORDERS = ("newest", "oldest")


def _post_count():
    return (
        select(func.count(posts.c.id))
        .where(posts.c.category_id == categories.c.id)
        .scalar_subquery()
        .label("post_count")
    )


def _comment_count():
    return (
        select(func.count(comments.c.id))
        .where(comments.c.post_id == posts.c.id)
        .scalar_subquery()
        .label("comment_count")
    )


def _post_select():
    """SELECT posts joined with category name, author name and comment count."""
    return (
        select(
            posts,
            categories.c.name.label("category_name"),
            users.c.name.label("author_name"),
            _comment_count(),
        )
        .join_from(posts, categories, posts.c.category_id == categories.c.id)
        .join(users, posts.c.author_id == users.c.id)
    )


class ForumStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        self.engine: Engine = create_db_engine(db_url or get_settings().database_url)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def create_category(self, category: Category) -> int:
        """Insert a category and return its id.

        Raises sqlalchemy.exc.IntegrityError if the name is already taken.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                categories.insert().values(
                    name=category.name,
                    description=category.description,
                    icon=category.icon,
                    created_by=category.created_by,
                    created_at=now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def get_category(self, category_id: int) -> Optional[Category]:
        with self.engine.connect() as conn:
            row = conn.execute(select(categories, _post_count()).where(categories.c.id == category_id)).fetchone()
        return _row_to_category(row) if row is not None else None

    def list_categories(self) -> list[Category]:
        """Return all categories ordered by name, each with its post count."""
        with self.engine.connect() as conn:
            rows = conn.execute(select(categories, _post_count()).order_by(categories.c.name)).fetchall()
        return [_row_to_category(r) for r in rows]

    def delete_category(self, category_id: int) -> bool:
        """Delete a category. Raises IntegrityError while posts still reference it."""
        with self.engine.begin() as conn:
            result = conn.execute(categories.delete().where(categories.c.id == category_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    def create_post(self, post: Post) -> int:
        now = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                posts.insert().values(
                    title=post.title,
                    content=post.content,
                    category_id=post.category_id,
                    author_id=post.author_id,
                    file_path=post.file_path,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def get_post(self, post_id: int) -> Optional[Post]:
        """Return one post with its comments (oldest first), or None."""
        with self.engine.connect() as conn:
            row = conn.execute(_post_select().where(posts.c.id == post_id)).fetchone()
            if row is None:
                return None
            post = _row_to_post(row)
            comment_rows = conn.execute(
                select(comments, users.c.name.label("author_name"))
                .join_from(comments, users, comments.c.author_id == users.c.id)
                .where(comments.c.post_id == post_id)
                .order_by(comments.c.created_at, comments.c.id)
            ).fetchall()
        post.comments = [_row_to_comment(r) for r in comment_rows]
        return post

    def list_posts(self, sort: str = "newest", limit: int = 10, category_id: Optional[int] = None) -> list[Post]:
        """Return post summaries. sort is "newest" or "oldest"."""
        if sort not in SORT_ORDERS:
            raise ValueError(f"Unknown sort order: {sort!r}")
        stmt = _post_select()
        if category_id is not None:
            stmt = stmt.where(posts.c.category_id == category_id)
        if sort == "newest":
            stmt = stmt.order_by(posts.c.created_at.desc(), posts.c.id.desc())
        else:
            stmt = stmt.order_by(posts.c.created_at, posts.c.id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt.limit(limit)).fetchall()
        return [_row_to_post(r) for r in rows]

    def delete_post(self, post_id: int) -> bool:
        """Delete a post; its comments go with it (ON DELETE CASCADE)."""
        with self.engine.begin() as conn:
            result = conn.execute(posts.delete().where(posts.c.id == post_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def create_comment(self, comment: Comment) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(
                comments.insert().values(
                    content=comment.content,
                    post_id=comment.post_id,
                    author_id=comment.author_id,
                    created_at=now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def get_comment(self, comment_id: int) -> Optional[Comment]:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(comments, users.c.name.label("author_name"))
                .join_from(comments, users, comments.c.author_id == users.c.id)
                .where(comments.c.id == comment_id)
            ).fetchone()
        return _row_to_comment(row) if row is not None else None

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_category(row) -> Category:
    return Category(
        id=row.id,
        name=row.name,
        description=row.description,
        icon=row.icon,
        created_by=row.created_by,
        created_at=row.created_at,
        post_count=row.post_count or 0,
    )


def _row_to_post(row) -> Post:
    return Post(
        id=row.id,
        title=row.title,
        content=row.content,
        category_id=row.category_id,
        author_id=row.author_id,
        file_path=row.file_path,
        created_at=row.created_at,
        updated_at=row.updated_at,
        category_name=row.category_name,
        author_name=row.author_name,
        comment_count=row.comment_count or 0,
    )


def _row_to_comment(row) -> Comment:
    return Comment(
        id=row.id,
        post_id=row.post_id,
        author_id=row.author_id,
        content=row.content,
        created_at=row.created_at,
        author_name=row.author_name,
    )
