"""
api/routes/v1/auth.py -- Sign-in and session REST endpoints.

Routes:
  POST /api/v1/auth/google   -- exchange a Google ID token for a session token
  GET  /api/v1/auth/verify   -- return the user behind the bearer token

Login pipeline (each step runs only if the previous one succeeded):
  1. GoogleCredentialVerifier.verify()  -> VerifiedIdentity or InvalidCredential
  2. UserStore.upsert_identity()        -> User (one transaction, threadpool)
  3. create_session_token()             -> signed 7-day session token

Security:
  [H2] POST /auth/google is rate-limited per IP (LOGIN_RATE_LIMIT).
  [M5] Cache-Control: no-store on login responses.
  Roles are never taken from the identity provider; upsert_identity leaves
  an existing role untouched and creates new accounts as "user".
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.concurrency import run_in_threadpool

from api.limiter import limiter, login_rate_limit
from api.models import GoogleLoginRequest, LoginResponse, UserResponse, VerifyResponse
from auth.dependencies import get_current_user
from auth.errors import ProviderUnavailable
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_session_token, session_expires_in
from core.logging_safety import safe_log_identifier

logger = logging.getLogger("agora.api.auth")

# Auth policy:
# - POST /api/v1/auth/google:  public -- this is how a session is obtained
# - GET  /api/v1/auth/verify:  requires auth (get_current_user)
router = APIRouter()


@router.post("/auth/google", response_model=LoginResponse)
@limiter.limit(login_rate_limit)  # [H2] must sit BELOW @router so FastAPI registers the limited wrapper
async def google_login(request: Request, body: GoogleLoginRequest) -> JSONResponse:
    """Verify a Google ID token, upsert the local account and issue a session.

    The verifier is async (key fetches go over httpx). The upsert is blocking
    SQLAlchemy, so it is pushed to the threadpool; it is a single transaction,
    so a client that disconnects mid-request leaves either the whole upsert or
    nothing.
    """
    verifier = getattr(request.app.state, "credential_verifier", None)
    if verifier is None:
        raise ProviderUnavailable("Google sign-in is not configured.", status_code=503)

    identity = await verifier.verify(body.token)

    user_store: UserStore = request.app.state.user_store
    try:
        user = await run_in_threadpool(user_store.upsert_identity, identity)
    except IntegrityError as exc:
        # Two first logins for the same identity raced on the unique constraints.
        logger.warning(
            "identity.upsert conflict subject=%s",
            safe_log_identifier(identity.subject, prefix="sub"),
        )
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "Sign-in conflicted with another request. Try again."},
        ) from exc

    token = create_session_token(user)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            session_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=session_expires_in(),
            user=UserResponse.from_user(user),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    logger.info("auth.login user=%s role=%s", safe_log_identifier(user.id, prefix="uid"), user.role)
    return resp


@router.get("/auth/verify", response_model=VerifyResponse)
async def verify(current_user: User = Depends(get_current_user)) -> VerifyResponse:
    """Return the account the bearer token belongs to. 401 if it is not valid."""
    return VerifyResponse(user=UserResponse.from_user(current_user))
