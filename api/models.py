"""
API request and response models for the Agora REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
forum/models.py, which own the internal domain representation. Route handlers
map between the two.

Separation of concerns: auth/ and forum/ models = domain truth; api/ models = API contract.
"""

from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from auth.models import User
from forum.models import Category, Comment, Post

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class SortEnum(str, Enum):
    newest = "newest"
    oldest = "oldest"


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class GoogleLoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/google.

    The Google Identity Services button hands the browser a "credential"; older
    clients post it as external_token / externalToken. All three are accepted.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    token: str = Field(
        min_length=1,
        max_length=8192,
        validation_alias=AliasChoices("token", "external_token", "externalToken", "credential"),
    )


class UserResponse(BaseModel):
    """Public shape of a local account."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: str
    avatar: Optional[str] = None
    role: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(id=user.id, email=user.email, name=user.name, avatar=user.avatar, role=user.role)


class LoginResponse(BaseModel):
    """Response for a successful POST /api/v1/auth/google."""

    model_config = ConfigDict(frozen=True)

    session_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class VerifyResponse(BaseModel):
    """Response for GET /api/v1/auth/verify."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse


class AdminUserRow(BaseModel):
    """One row in GET /api/v1/admin/users."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: str
    avatar: Optional[str] = None
    role: str
    linked: bool
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "AdminUserRow":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            avatar=user.avatar,
            role=user.role,
            linked=user.google_id is not None,
            created_at=user.created_at or "",
        )


# ---------------------------------------------------------------------------
# Forum -- categories
# ---------------------------------------------------------------------------


class CategoryCreate(BaseModel):
    """Request body for POST /api/v1/categories."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=1000)
    icon: Optional[str] = Field(default=None, max_length=64)


class CategoryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str
    icon: Optional[str]
    created_by: Optional[int]
    created_at: str
    post_count: int

    @classmethod
    def from_category(cls, category: Category) -> "CategoryResponse":
        return cls(
            id=category.id,
            name=category.name,
            description=category.description,
            icon=category.icon,
            created_by=category.created_by,
            created_at=category.created_at,
            post_count=category.post_count,
        )


# ---------------------------------------------------------------------------
# Forum -- posts and comments
# ---------------------------------------------------------------------------


class CommentCreate(BaseModel):
    """Request body for POST /api/v1/posts/{post_id}/comments."""

    content: str = Field(min_length=1, max_length=20000)


class CommentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    post_id: int
    author_id: int
    author_name: str
    content: str
    created_at: str

    @classmethod
    def from_comment(cls, comment: Comment) -> "CommentResponse":
        return cls(
            id=comment.id,
            post_id=comment.post_id,
            author_id=comment.author_id,
            author_name=comment.author_name,
            content=comment.content,
            created_at=comment.created_at,
        )


class PostSummary(BaseModel):
    """One row in GET /api/v1/posts -- no comment bodies."""

    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    content: str
    category_id: int
    category_name: str
    author_id: int
    author_name: str
    file_path: Optional[str]
    comment_count: int
    created_at: str
    updated_at: str

    @classmethod
    def from_post(cls, post: Post) -> "PostSummary":
        return cls(
            id=post.id,
            title=post.title,
            content=post.content,
            category_id=post.category_id,
            category_name=post.category_name,
            author_id=post.author_id,
            author_name=post.author_name,
            file_path=post.file_path,
            comment_count=post.comment_count,
            created_at=post.created_at,
            updated_at=post.updated_at,
        )


class PostDetail(PostSummary):
    """Full post including its comments, oldest first."""

    comments: list[CommentResponse] = Field(default_factory=list)

    @classmethod
    def from_post(cls, post: Post) -> "PostDetail":
        summary = PostSummary.from_post(post).model_dump()
        return cls(**summary, comments=[CommentResponse.from_comment(c) for c in post.comments])
