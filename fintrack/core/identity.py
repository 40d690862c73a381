import logging
import uuid
from typing import Any, Dict

import requests
from jose import jwt
from sqlmodel import SQLModel

from ..config import settings


logger = logging.getLogger(__name__)

SIGN_IN_TIMEOUT_SECONDS = 10


class IdentityUser(SQLModel):
    """The only facts read from the identity service's session."""

    id: uuid.UUID
    email: str


class IdentityError(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    @property
    def invalid_credentials(self) -> bool:
        return "Invalid login credentials" in self.reason

    @property
    def email_not_confirmed(self) -> bool:
        return "Email not confirmed" in self.reason


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify a session token issued by the identity service.

    Raises jose's JWTError (or ExpiredSignatureError) on any failure.
    """
    options = {"verify_aud": bool(settings.auth_audience)}
    return jwt.decode(
        token,
        settings.auth_public_key,
        algorithms=[settings.auth_jwt_algorithm],
        audience=settings.auth_audience or None,
        options=options,
    )


def user_from_claims(claims: Dict[str, Any]) -> IdentityUser:
    sub = claims.get("sub")
    if sub is None:
        raise ValueError("missing subject")
    return IdentityUser(id=uuid.UUID(str(sub)), email=str(claims.get("email") or ""))


def sign_in_with_password(email: str, password: str) -> str:
    """Exchange credentials for an access token at the identity service."""
    if not settings.auth_url:
        raise IdentityError("Identity service is not configured")

    headers = {"Content-Type": "application/json"}
    if settings.auth_api_key:
        headers["apikey"] = settings.auth_api_key

    try:
        resp = requests.post(
            f"{settings.auth_url.rstrip('/')}/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            headers=headers,
            timeout=SIGN_IN_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        logger.error("Identity service unreachable: %s", e)
        raise IdentityError("Identity service unreachable")

    if resp.status_code != 200:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        reason = (
            body.get("error_description")
            or body.get("msg")
            or body.get("message")
            or f"HTTP {resp.status_code}"
        )
        raise IdentityError(str(reason))

    token = resp.json().get("access_token")
    if not token:
        raise IdentityError("Identity service returned no access token")
    return token
