from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose.exceptions import ExpiredSignatureError, JWTError

from .errors import Unauthenticated
from .identity import IdentityUser, decode_access_token, user_from_claims


SESSION_COOKIE = "access_token"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def _session_token(request: Request, bearer: Optional[str]) -> Optional[str]:
    # Bearer header wins; browsers send the HttpOnly cookie set at login
    return bearer or request.cookies.get(SESSION_COOKIE)


def _resolve_user(token: Optional[str]) -> IdentityUser:
    if not token:
        raise Unauthenticated()
    try:
        claims = decode_access_token(token)
    except ExpiredSignatureError:
        raise Unauthenticated("Session expired. Please sign in again.")
    except JWTError:
        raise Unauthenticated("Invalid session")

    try:
        return user_from_claims(claims)
    except ValueError:
        raise Unauthenticated("Invalid session")


def get_current_user(
    request: Request,
    bearer: Optional[str] = Depends(oauth2_scheme),
) -> IdentityUser:
    return _resolve_user(_session_token(request, bearer))


def get_optional_user(
    request: Request,
    bearer: Optional[str] = Depends(oauth2_scheme),
) -> Optional[IdentityUser]:
    try:
        return _resolve_user(_session_token(request, bearer))
    except Unauthenticated:
        return None
