# /api/auth/*

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
import structlog

from game_analytics.core.errors import AuthError, ClientInputError
from game_analytics.middleware.auth import (
    clear_session_cookie,
    get_auth_config,
    get_token_verifier,
    set_session_cookie,
)
from game_analytics.schemas.auth import AuthStatusResponse, LoginRequest, LoginResponse
from game_analytics.services.sessions import (
    AUTH_COOKIE_NAME,
    AuthConfig,
    TokenVerifier,
    issue_token,
    public_user,
    validate_token,
)

logger = structlog.get_logger()
router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(
        body: LoginRequest,
        response: Response,
        config: AuthConfig = Depends(get_auth_config),
        verify: TokenVerifier = Depends(get_token_verifier)
):
    """
    Exchange a Google ID token for a session cookie.

    - **credential**: the ID token returned by Google Sign-In
    """
    if not body.credential:
        raise ClientInputError("No credential provided")

    identity = await run_in_threadpool(verify, body.credential)
    if not identity:
        raise AuthError("Invalid Google token", status_code=401)

    if not config.is_email_allowed(identity.get("email")):
        logger.warning("login_denied", email=identity.get("email"))
        raise AuthError("Access denied. Your email is not authorized.", status_code=403)

    set_session_cookie(response, issue_token(config, identity), config)

    logger.info("login_succeeded", email=identity.get("email"))
    return {"user": public_user(identity)}


@router.post("/logout")
async def logout(response: Response):
    clear_session_cookie(response)
    return {"message": "Logged out successfully"}


@router.get("/check", response_model=AuthStatusResponse, response_model_exclude_none=True)
async def check(request: Request, config: AuthConfig = Depends(get_auth_config)):
    """Validate the session cookie and re-check the allow-list"""
    payload = validate_token(config, request.cookies.get(AUTH_COOKIE_NAME))
    if payload is None:
        return JSONResponse(status_code=401, content={"authenticated": False})

    if not config.is_email_allowed(payload.get("email")):
        logger.warning("session_revoked", email=payload.get("email"), path=request.url.path)
        response = JSONResponse(status_code=403, content={"authenticated": False, "error": "Access revoked"})
        clear_session_cookie(response)
        return response

    return {"authenticated": True, "user": public_user(payload)}
