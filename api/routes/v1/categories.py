"""
api/routes/v1/categories.py -- Category routes for the Agora REST API.

Routes:
  GET    /categories                -- list categories with post counts (public)
  GET    /categories/{category_id}  -- one category (public)
  POST   /categories                -- create category (admin only)
  DELETE /categories/{category_id}  -- delete an empty category (admin only)

The admin check is the require_admin dependency, which runs authentication
first. No handler here inspects user.role itself.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter, write_rate_limit
from api.models import CategoryCreate, CategoryResponse, ErrorDetail
from auth.dependencies import require_admin
from auth.models import User
from forum.models import Category
from forum.store import ForumStore

router = APIRouter()


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=404,
        detail=ErrorDetail(code="not_found", message="Category not found.").model_dump(),
    )


@router.get("/categories", response_model=list[CategoryResponse])
def list_categories(request: Request) -> list[CategoryResponse]:
    forum: ForumStore = request.app.state.forum
    return [CategoryResponse.from_category(c) for c in forum.list_categories()]


@router.get("/categories/{category_id}", response_model=CategoryResponse)
def get_category(request: Request, category_id: int) -> CategoryResponse:
    forum: ForumStore = request.app.state.forum
    category = forum.get_category(category_id)
    if category is None:
        raise _not_found()
    return CategoryResponse.from_category(category)


@router.post("/categories", response_model=CategoryResponse, status_code=201)
@limiter.limit(write_rate_limit)
def create_category(
    request: Request,
    body: CategoryCreate,
    current_user: User = Depends(require_admin),
) -> CategoryResponse:
    """Create a category. Names are unique; a duplicate returns 409."""
    forum: ForumStore = request.app.state.forum
    try:
        category_id = forum.create_category(
            Category(
                name=body.name,
                description=body.description,
                icon=body.icon,
                created_by=current_user.id,
            )
        )
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail=ErrorDetail(code="conflict", message="A category with that name already exists.").model_dump(),
        ) from exc
    return CategoryResponse.from_category(forum.get_category(category_id))


def _category_has_posts(detail: Optional[str] = None) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail=ErrorDetail(
            code="conflict",
            message="Category still has posts. Delete them first.",
            detail=detail,
        ).model_dump(),
    )


@router.delete("/categories/{category_id}", status_code=204)
def delete_category(
    request: Request,
    category_id: int,
    current_user: User = Depends(require_admin),
) -> Response:
    """Delete a category. Refused with 409 while any post still belongs to it."""
    forum: ForumStore = request.app.state.forum
    category = forum.get_category(category_id)
    if category is None:
        raise _not_found()
    if category.post_count > 0:
        raise _category_has_posts(f"post_count={category.post_count}")
    try:
        forum.delete_category(category_id)
    except IntegrityError as exc:
        # A post arrived between the count and the delete; posts.category_id blocks it.
        raise _category_has_posts() from exc
    return Response(status_code=204)
