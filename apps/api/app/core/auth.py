from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from starlette.requests import Request

from app.core.config import get_settings


STAFF_ROLES = {"admin", "manager", "employee", "technician"}


@dataclass
class AuthUser:
    sub: str
    roles: list[str]
    email: str | None = None
    name: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def role(self) -> str:
        return self.roles[0] if self.roles else "guest"

    @property
    def is_staff(self) -> bool:
        return any(role in STAFF_ROLES for role in self.roles)


def extract_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header.replace("Bearer ", "", 1).strip()
    return request.cookies.get(get_settings().auth_cookie_name, "")


def create_access_token(
    sub: str,
    *,
    email: str | None = None,
    role: str = "employee",
    name: str | None = None,
    expires_in: timedelta | None = None,
) -> str:
    settings = get_settings()
    expires_at = datetime.now(timezone.utc) + (expires_in or timedelta(minutes=settings.jwt_expires_minutes))
    payload = {
        "sub": sub,
        "email": email,
        "role": role,
        "roles": [role],
        "name": name,
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def user_from_claims(payload: dict[str, Any]) -> AuthUser:
    subject = str(payload.get("sub", "anonymous"))
    roles = payload.get("roles")
    if not isinstance(roles, list):
        role = payload.get("role")
        roles = [role] if isinstance(role, str) and role else ["guest"]
    return AuthUser(
        sub=subject,
        roles=[str(role) for role in roles],
        email=payload.get("email"),
        name=payload.get("name"),
        claims=payload,
    )


async def get_current_user(request: Request) -> AuthUser:
    token = extract_token(request)
    if not token:
        return AuthUser(sub="anonymous", roles=["guest"])

    try:
        user = user_from_claims(decode_token(token))
    except JWTError:
        return AuthUser(sub="anonymous", roles=["guest"])

    request.state.user_id = user.sub
    return user
