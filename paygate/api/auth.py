"""Bearer-token authentication for operator endpoints.

Tokens are issued by the application's identity provider; this module only
verifies them and exposes the authenticated principal and its role.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Literal
from uuid import uuid4

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt  # type: ignore[import-untyped]
from pydantic import BaseModel, ValidationError

from paygate.core.config import Settings, get_settings

RoleName = Literal["patient", "doctor", "admin"]

security_scheme = HTTPBearer(auto_error=True)


class TokenPayload(BaseModel):
    sub: str
    role: RoleName
    type: Literal["access"]
    iat: datetime
    exp: datetime
    jti: str


@dataclass(frozen=True)
class AuthenticatedPrincipal:
    user_id: str
    role: RoleName
    token_id: str


def create_access_token(
    *,
    subject: str,
    role: RoleName,
    settings: Settings,
    expires_delta: timedelta = timedelta(minutes=15),
) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": subject,
        "role": role,
        "type": "access",
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
        "jti": uuid4().hex,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _decode_token(*, token: str, settings: Settings) -> TokenPayload:
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc
    try:
        return TokenPayload(**payload)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc


def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security_scheme),
    settings: Settings = Depends(get_settings),
) -> AuthenticatedPrincipal:
    payload = _decode_token(token=credentials.credentials, settings=settings)
    return AuthenticatedPrincipal(user_id=payload.sub, role=payload.role, token_id=payload.jti)


def require_role(*roles: RoleName) -> Callable[..., AuthenticatedPrincipal]:
    allowed_roles: set[str] = set(roles)

    def dependency(principal: AuthenticatedPrincipal = Depends(get_current_principal)) -> AuthenticatedPrincipal:
        if principal.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return principal

    return dependency


__all__ = [
    "AuthenticatedPrincipal",
    "RoleName",
    "create_access_token",
    "get_current_principal",
    "require_role",
]
