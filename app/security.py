from __future__ import annotations

import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping
from uuid import uuid4

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from passlib.exc import UnknownHashError

from app.errors import ApiError
from app.settings import get_settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)

PERMISSION_KEYS: tuple[str, ...] = ("gate", "reports", "roster")

_READ = {"read": True, "write": False}
_READ_WRITE = {"read": True, "write": True}

ROLE_PERMISSIONS: dict[str, dict[str, dict[str, bool]]] = {
    "admin": {"gate": _READ_WRITE, "reports": _READ, "roster": _READ_WRITE},
    "manager": {"gate": _READ_WRITE, "reports": _READ, "roster": _READ_WRITE},
    "mis": {"gate": _READ_WRITE, "reports": _READ, "roster": _READ_WRITE},
    "supervisor": {"gate": _READ_WRITE, "reports": _READ, "roster": _READ},
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _strip_quotes(value: str) -> str:
    # Env values pasted with surrounding quotes.
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError, UnknownHashError):
        return False


def verify_admin_credentials(username: str, password: str) -> bool:
    settings = get_settings()
    env_username = _strip_quotes((settings.admin_user or "").strip())
    env_pass_hash = _strip_quotes((settings.admin_pass_hash or "").strip())

    if not hmac.compare_digest(username, env_username):
        return False
    if not env_pass_hash:
        return False
    return verify_password(password, env_pass_hash)


def permissions_for_role(role: str | None) -> dict[str, dict[str, bool]]:
    granted = ROLE_PERMISSIONS.get((role or "").strip().lower(), {})
    return {key: dict(granted.get(key, {"read": False, "write": False})) for key in PERMISSION_KEYS}


def has_permission(claims: Mapping[str, Any], permission: str, *, write: bool = False) -> bool:
    if permission not in PERMISSION_KEYS:
        return False
    granted = permissions_for_role(str(claims.get("role") or ""))[permission]
    if write:
        return granted["write"]
    return granted["read"] or granted["write"]


def create_access_token(*, sub: str, username: str, role: str = "admin") -> tuple[str, int, dict[str, Any]]:
    if role not in ROLE_PERMISSIONS:
        raise ValueError(f"Unknown role: {role}")

    settings = get_settings()
    now = _utcnow()
    claims = {
        "sub": sub,
        "username": username,
        "role": role,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.access_token_minutes)).timestamp()),
        "jti": str(uuid4()),
        "typ": "access",
    }
    token = jwt.encode(claims, settings.jwt_secret, algorithm="HS256")
    return token, settings.access_token_minutes * 60, claims


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_iat": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token is invalid.") from exc

    if payload.get("typ") != "access":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token type is invalid.")

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token subject is invalid.")

    if payload.get("role") not in ROLE_PERMISSIONS:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")

    return payload


def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Missing bearer token.")

    payload = decode_token(credentials.credentials)

    request.state.actor = str(payload.get("role"))
    request.state.actor_id = str(payload.get("username") or payload.get("sub"))
    return payload


def require_permission(permission: str, *, write: bool = False) -> Callable[..., dict[str, Any]]:
    if permission not in PERMISSION_KEYS:
        raise ValueError(f"Unknown permission: {permission}")

    def _dependency(claims: dict[str, Any] = Depends(require_auth)) -> dict[str, Any]:
        if not has_permission(claims, permission, write=write):
            raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")
        return claims

    return _dependency
