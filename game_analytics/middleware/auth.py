from typing import Any, Dict

from fastapi import Depends, Request
from fastapi.responses import JSONResponse
import structlog

from game_analytics.core.errors import AuthError
from game_analytics.services.sessions import (
    AUTH_COOKIE_NAME,
    AuthConfig,
    TokenVerifier,
    validate_token,
)

logger = structlog.get_logger()


def get_auth_config(request: Request) -> AuthConfig:
    """Dependency for the auth config built at startup"""
    return request.app.state.auth_config


def get_token_verifier(request: Request) -> TokenVerifier:
    """Dependency for the Google ID token verifier"""
    return request.app.state.token_verifier


def set_session_cookie(response, token: str, config: AuthConfig):
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=config.cookie_secure,
        samesite="none" if config.cookie_secure else "lax",
        max_age=config.session_ttl_seconds,
        path="/",
    )


def clear_session_cookie(response):
    response.delete_cookie(key=AUTH_COOKIE_NAME, path="/")


async def require_session(
        request: Request,
        config: AuthConfig = Depends(get_auth_config)
) -> Dict[str, Any]:
    """
    Protect a route with the session cookie.

    - no cookie: 401
    - bad signature or expired: 403
    - email no longer allow-listed: 403 and the cookie is cleared
    """
    token = request.cookies.get(AUTH_COOKIE_NAME)
    if not token:
        raise AuthError("No authentication token provided", status_code=401)

    payload = validate_token(config, token)
    if payload is None:
        raise AuthError("Invalid or expired token", status_code=403)

    if not config.is_email_allowed(payload.get("email")):
        logger.warning("session_revoked", email=payload.get("email"), path=request.url.path)
        raise AuthError("Access denied", status_code=403, clear_cookie=True)

    return payload


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    response = JSONResponse(status_code=exc.status_code, content={"error": exc.message})
    if exc.clear_cookie:
        clear_session_cookie(response)
    return response
