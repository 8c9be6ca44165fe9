from fastapi import HTTPException, status

from app.core.auth import AuthUser


def require_staff(user: AuthUser) -> None:
    if not user.is_staff:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")


def require_any_role(user: AuthUser, roles: list[str]) -> None:
    require_staff(user)
    if not any(role in user.roles for role in roles):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
