import uuid

from fastapi import APIRouter, Depends, Request, Response, status
from jose import JWTError
from pydantic import EmailStr
from sqlmodel import SQLModel, Field

from ..config import settings
from ..core import rate_limit
from ..core.errors import RateLimited, ValidationError
from ..core.identity import (
    IdentityError,
    IdentityUser,
    decode_access_token,
    sign_in_with_password,
    user_from_claims,
)
from ..core.logs import log_security_event
from ..core.rate_limit import RateLimiter
from ..core.security import SESSION_COOKIE, get_current_user, get_optional_user
from ..deps import client_address, get_rate_limiter


router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)

SESSION_MAX_AGE = 60 * 60 * 24 * 7


class LoginIn(SQLModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserRead(SQLModel):
    id: uuid.UUID
    email: str


@router.post(
    "/login",
    response_model=UserRead,
    status_code=status.HTTP_200_OK,
)
def login(
    payload: LoginIn,
    request: Request,
    response: Response,
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    email = payload.email.strip().lower()
    ip = client_address(request)

    # Rate limit by email to slow down brute force
    result = limiter.check(f"login:{email}", rate_limit.LOGIN)
    if not result.allowed:
        log_security_event("auth.login.failed", email=email, ip=ip, reason="rate_limited")
        raise RateLimited(result.reset_in_ms)

    try:
        token = sign_in_with_password(email, payload.password)
        user = user_from_claims(decode_access_token(token))
    except IdentityError as e:
        reason = "invalid_credentials" if e.invalid_credentials else e.reason
        log_security_event("auth.login.failed", email=email, ip=ip, reason=reason)
        if e.invalid_credentials:
            raise ValidationError("Incorrect email or password. Please try again.")
        if e.email_not_confirmed:
            raise ValidationError("Please verify your email address to continue.")
        raise ValidationError("Unable to sign in. Please try again.")
    except (JWTError, ValueError):
        log_security_event("auth.login.failed", email=email, ip=ip, reason="invalid_token")
        raise ValidationError("Unable to sign in. Please try again.")

    log_security_event("auth.login.success", user_id=user.id, email=email, ip=ip)

    # HttpOnly cookie keeps the token away from JS; cross-site prod needs SameSite=None + Secure
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=settings.is_production,
        samesite="none" if settings.is_production else "lax",
        max_age=SESSION_MAX_AGE,
        path="/",
    )
    return UserRead(id=user.id, email=user.email)


@router.get(
    "/me",
    response_model=UserRead,
    status_code=status.HTTP_200_OK,
)
def me(current_user: IdentityUser = Depends(get_current_user)):
    return UserRead(id=current_user.id, email=current_user.email)


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
)
def logout(response: Response, current_user=Depends(get_optional_user)):
    if current_user is not None:
        log_security_event("auth.logout", user_id=current_user.id)
    response.delete_cookie(key=SESSION_COOKIE, path="/")
    return None
