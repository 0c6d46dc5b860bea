"""
api/routes/v1/posts.py -- Post and comment routes for the Agora REST API.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /posts                       -- post summaries (public)
  POST   /posts                       -- create post, multipart (authenticated)
  GET    /posts/{post_id}             -- post detail with comments (public)
  DELETE /posts/{post_id}             -- delete post and its comments (admin only)
  GET    /posts/{post_id}/attachment  -- download the post's attachment (public)
  POST   /posts/{post_id}/comments    -- add a comment (authenticated)

Sanitize-on-write:
  Post and comment bodies pass through core.sanitizer.render() before they
  reach the store. Only the rendered HTML is persisted; the raw markup is
  dropped. Posts cannot be edited, so stored HTML is never rendered twice.

File uploads:
  POST /posts accepts multipart/form-data with an optional "file" part. The
  bytes go to AttachmentStorage (app.state.attachments), which caps the size
  at MAX_UPLOAD_BYTES (413 above that) and returns the stored name. If the
  post insert then fails, the stored file is discarded again.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, Response, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter, write_rate_limit
from api.models import CommentCreate, CommentResponse, ErrorDetail, PostDetail, PostSummary, SortEnum
from auth.dependencies import get_current_user, require_admin
from auth.models import User
from core.sanitizer import render
from forum.models import Comment, Post
from forum.store import ForumStore
from forum.uploads import AttachmentStorage, PayloadTooLarge

logger = logging.getLogger("agora.forum")

router = APIRouter()


def _post_not_found() -> HTTPException:
    return HTTPException(
        status_code=404,
        detail=ErrorDetail(code="not_found", message="Post not found.").model_dump(),
    )


def _category_not_found() -> HTTPException:
    return HTTPException(
        status_code=404,
        detail=ErrorDetail(code="not_found", message="Category not found.").model_dump(),
    )


# ---------------------------------------------------------------------------
# GET /posts -- list post summaries
# ---------------------------------------------------------------------------


@router.get("/posts", response_model=list[PostSummary])
def list_posts(
    request: Request,
    sort: SortEnum = SortEnum.newest,
    limit: int = Query(default=10, ge=1, le=100),
    category_id: Optional[int] = None,
) -> list[PostSummary]:
    """Return posts newest (default) or oldest first, optionally for one category."""
    forum: ForumStore = request.app.state.forum
    posts = forum.list_posts(sort=sort.value, limit=limit, category_id=category_id)
    return [PostSummary.from_post(p) for p in posts]


# ---------------------------------------------------------------------------
# POST /posts -- create a post (multipart)
# ---------------------------------------------------------------------------


@router.post("/posts", response_model=PostDetail, status_code=201)
@limiter.limit(write_rate_limit)
def create_post(
    request: Request,
    title: str = Form(min_length=1, max_length=200),
    category_id: int = Form(),
    content: str = Form(min_length=1, max_length=50000),
    file: Optional[UploadFile] = File(default=None),
    current_user: User = Depends(get_current_user),
) -> PostDetail:
    """Create a post in an existing category.

    The title is stored stripped and must not be blank. The category is
    checked before anything is written; if it disappears before the insert,
    the attachment already stored is discarded and the answer is still 404.
    """
    title = title.strip()
    if not title:
        raise HTTPException(
            status_code=422,
            detail=ErrorDetail(code="validation_error", message="Title must not be blank.").model_dump(),
        )

    forum: ForumStore = request.app.state.forum
    if forum.get_category(category_id) is None:
        raise _category_not_found()

    safe_html = render(content)

    storage: AttachmentStorage = request.app.state.attachments
    file_path: Optional[str] = None
    if file is not None and file.filename:
        try:
            file_path = storage.save(file.file, file.filename)
        except PayloadTooLarge as exc:
            raise HTTPException(
                status_code=413,
                detail=ErrorDetail(
                    code="payload_too_large",
                    message=f"Attachment must be {exc.max_bytes} bytes or smaller.",
                ).model_dump(),
            ) from exc

    try:
        post_id = forum.create_post(
            Post(
                title=title,
                content=safe_html,
                category_id=category_id,
                author_id=current_user.id,
                file_path=file_path,
            )
        )
    except IntegrityError as exc:
        if file_path is not None:
            storage.discard(file_path)
        raise _category_not_found() from exc
    except Exception:
        if file_path is not None:
            storage.discard(file_path)
        raise
    logger.info("Post %d created in category %d", post_id, category_id)
    return PostDetail.from_post(forum.get_post(post_id))


# ---------------------------------------------------------------------------
# GET /posts/{post_id} -- post detail
# ---------------------------------------------------------------------------


@router.get("/posts/{post_id}", response_model=PostDetail)
def get_post(request: Request, post_id: int) -> PostDetail:
    forum: ForumStore = request.app.state.forum
    post = forum.get_post(post_id)
    if post is None:
        raise _post_not_found()
    return PostDetail.from_post(post)


# ---------------------------------------------------------------------------
# DELETE /posts/{post_id} -- moderation
# ---------------------------------------------------------------------------


@router.delete("/posts/{post_id}", status_code=204)
def delete_post(
    request: Request,
    post_id: int,
    current_user: User = Depends(require_admin),
) -> Response:
    """Delete a post. Its comments are removed by the database cascade."""
    forum: ForumStore = request.app.state.forum
    if not forum.delete_post(post_id):
        raise _post_not_found()
    logger.info("Post %d deleted by admin", post_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# GET /posts/{post_id}/attachment
# ---------------------------------------------------------------------------


@router.get("/posts/{post_id}/attachment")
def get_attachment(request: Request, post_id: int) -> FileResponse:
    """Stream the file attached to a post. 404 when the post has none."""
    forum: ForumStore = request.app.state.forum
    post = forum.get_post(post_id)
    if post is None:
        raise _post_not_found()
    storage: AttachmentStorage = request.app.state.attachments
    try:
        path = storage.resolve(post.file_path) if post.file_path else None
    except ValueError:
        logger.warning("Post %d has an attachment path outside the upload root", post_id)
        path = None
    if path is None or not path.is_file():
        raise HTTPException(
            status_code=404,
            detail=ErrorDetail(code="not_found", message="Post has no attachment.").model_dump(),
        )
    # Stored names are "<hex>_<basename>"; offer the basename for download.
    return FileResponse(path, filename=post.file_path.split("_", 1)[-1])


# ---------------------------------------------------------------------------
# POST /posts/{post_id}/comments
# ---------------------------------------------------------------------------


@router.post("/posts/{post_id}/comments", response_model=CommentResponse, status_code=201)
@limiter.limit(write_rate_limit)
def create_comment(
    request: Request,
    post_id: int,
    body: CommentCreate,
    current_user: User = Depends(get_current_user),
) -> CommentResponse:
    forum: ForumStore = request.app.state.forum
    if forum.get_post(post_id) is None:
        raise _post_not_found()

    comment_id = forum.create_comment(
        Comment(post_id=post_id, author_id=current_user.id, content=render(body.content))
    )
    return CommentResponse.from_comment(forum.get_comment(comment_id))
