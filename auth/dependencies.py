"""
auth/dependencies.py -- FastAPI Depends() helpers: the access control gate.

Two layers, always composed in this order:

  Authentication -- get_current_user() reads "Authorization: Bearer <token>",
      validates the session token (signature -> expiry -> user exists) and
      attaches the User to request.state.user. Any failure raises an AuthError
      before the route handler runs. Cookies and API keys are not accepted.

  Authorization -- require_role(predicate) builds a dependency that itself
      depends on get_current_user, so a role predicate is never evaluated
      against an unauthenticated request. A false predicate raises Forbidden.

Per request: Unauthenticated -> Authenticating -> {Authenticated, Rejected};
Authenticated -> Authorizing -> {Permitted, Forbidden}. A failed gate fails the
request exactly once; nothing is retried.

Usage:
    @router.post("/protected")
    def route(user: User = Depends(get_current_user)): ...

    @router.post("/admin-only")
    def route(user: User = Depends(require_admin)): ...

Layer rule: no imports from api/ or forum/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth.errors import AuthError, Forbidden, Unauthenticated
from auth.models import Role, User
from auth.tokens import validate_session_token
from core.logging_safety import safe_log_identifier

logger = logging.getLogger("agora.auth.gate")

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth")


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
) -> User:
    """Require a valid session token. Raises Unauthenticated, SessionExpired or UserNotFound."""
    if credentials is None or not credentials.credentials:
        logger.warning(
            "auth.rejected method=%s path=%s reason=missing_bearer",
            request.method,
            request.url.path,
        )
        raise Unauthenticated()

    user_store = request.app.state.user_store
    try:
        user = validate_session_token(user_store, credentials.credentials)
    except AuthError as exc:
        logger.warning(
            "auth.rejected method=%s path=%s reason=%s",
            request.method,
            request.url.path,
            exc.code,
        )
        raise

    request.state.user = user
    logger.info(
        "auth.accepted method=%s path=%s user=%s role=%s",
        request.method,
        request.url.path,
        safe_log_identifier(user.id, prefix="uid"),
        user.role,
    )
    return user


def is_admin(user: User) -> bool:
    return user.role == Role.admin.value


def require_role(predicate: Callable[[User], bool], description: str) -> Callable[..., User]:
    """Build an authorization dependency for predicate.

    description names the requirement in the 403 message and in logs,
    e.g. require_role(is_admin, "admin").
    """

    def dependency(request: Request, user: User = Depends(get_current_user)) -> User:
        if not predicate(user):
            logger.warning(
                "authz.forbidden method=%s path=%s user=%s required=%s",
                request.method,
                request.url.path,
                safe_log_identifier(user.id, prefix="uid"),
                description,
            )
            raise Forbidden(f"{description.capitalize()} access required.")
        return user

    dependency.__name__ = f"require_{description}"
    return dependency


require_admin = require_role(is_admin, "admin")
