"""
forum/models.py -- Domain dataclasses for forum content.

Pure data containers with zero logic. Queries and invariants live in
forum/store.py.

content on Post and Comment is always sanitized HTML (core.sanitizer.render
output). Raw user markup is never stored.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Category:
    """A topic area. Created by admins; referenced by posts.

    post_count is filled in by read queries and is not a stored column.
    """

    name: str
    description: str = ""
    icon: Optional[str] = None  # icon identifier, e.g. "fa-folder"
    created_by: Optional[int] = None
    id: Optional[int] = None
    created_at: str = ""
    post_count: int = 0


@dataclass
class Comment:
    post_id: int
    author_id: int
    content: str
    id: Optional[int] = None
    created_at: str = ""
    author_name: str = ""


@dataclass
class Post:
    """A post in a category.

    file_path is the storage path returned by forum.uploads, or None.
    category_name, author_name and comment_count are denormalized by reads.
    """

    title: str
    content: str
    category_id: int
    author_id: int
    file_path: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""
    category_name: str = ""
    author_name: str = ""
    comment_count: int = 0
    comments: list[Comment] = field(default_factory=list)
