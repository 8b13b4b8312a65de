"""Session tokens and Google sign-in.

Sessions are HMAC-SHA256 signed tokens (``<payload>.<signature>``, both
base64url) carried in an HTTP-only cookie. The allow-list is checked when a
token is issued and again on every request, so removing an email revokes
its existing sessions.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from game_analytics.core.config import Settings

logger = structlog.get_logger()

AUTH_COOKIE_NAME = "auth_token"
SECONDS_PER_DAY = 24 * 60 * 60

TokenVerifier = Callable[[str], Optional[dict[str, Any]]]


@dataclass(frozen=True)
class AuthConfig:
    """Process-wide auth settings, built once at startup and never mutated"""

    session_secret: str
    allowed_emails: frozenset[str]
    session_ttl_seconds: int = 7 * SECONDS_PER_DAY
    cookie_secure: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthConfig":
        return cls(
            session_secret=settings.session_secret,
            allowed_emails=settings.allowed_email_set,
            session_ttl_seconds=settings.session_ttl_days * SECONDS_PER_DAY,
            cookie_secure=settings.cookie_secure,
        )

    def is_email_allowed(self, email: Optional[str]) -> bool:
        return bool(email) and email.strip().lower() in self.allowed_emails


class GoogleTokenVerifier:
    """Verifies Google Sign-In ID tokens for one OAuth client id"""

    def __init__(self, client_id: str):
        self.client_id = client_id
        self._request = google_requests.Request()

    def __call__(self, credential: str) -> Optional[dict[str, Any]]:
        try:
            return id_token.verify_oauth2_token(credential, self._request, self.client_id)
        except ValueError as e:
            logger.warning("google_token_rejected", error=str(e))
            return None


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(payload_part: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), payload_part.encode("utf-8"), hashlib.sha256).digest()
    return _b64url_encode(digest)


def issue_token(config: AuthConfig, identity: dict[str, Any], now: Optional[int] = None) -> str:
    if not config.session_secret:
        raise RuntimeError("SESSION_SECRET is required to issue sessions")

    now = int(time.time()) if now is None else now
    payload = {
        "email": identity.get("email"),
        "name": identity.get("name"),
        "picture": identity.get("picture"),
        "sub": identity.get("sub"),
        "iat": now,
        "exp": now + config.session_ttl_seconds,
    }
    payload_part = _b64url_encode(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    return f"{payload_part}.{_sign(payload_part, config.session_secret)}"


def validate_token(config: AuthConfig, token: Optional[str], now: Optional[int] = None) -> Optional[dict[str, Any]]:
    """Decoded payload of a well-signed, unexpired token, else None"""
    token = str(token or "").strip()
    if not token or "." not in token or not config.session_secret:
        return None

    payload_part, sig_part = token.split(".", 1)
    if not hmac.compare_digest(sig_part, _sign(payload_part, config.session_secret)):
        return None

    try:
        payload = json.loads(_b64url_decode(payload_part).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(payload, dict):
        return None

    now = int(time.time()) if now is None else now
    if int(payload.get("exp", 0) or 0) <= now:
        return None
    if not payload.get("email"):
        return None

    return payload


def public_user(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "email": payload.get("email"),
        "name": payload.get("name"),
        "picture": payload.get("picture"),
    }
