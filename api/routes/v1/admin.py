"""
api/routes/v1/admin.py -- Administrator-only account views.

Routes:
  GET /api/v1/admin/users  -- list all local accounts (admin only)

Role changes are deliberately absent from the HTTP surface. They are made with
the operator CLI (python main.py promote|demote EMAIL).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import AdminUserRow
from auth.dependencies import require_admin
from auth.models import User
from auth.store import UserStore

router = APIRouter()


@router.get("/admin/users", response_model=list[AdminUserRow])
def list_users(request: Request, current_user: User = Depends(require_admin)) -> list[AdminUserRow]:
    user_store: UserStore = request.app.state.user_store
    return [AdminUserRow.from_user(u) for u in user_store.list_users()]
