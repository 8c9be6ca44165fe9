import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, Response
from jose import JWTError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.responses import error_response
from app.business.employees.api import router as employees_router
from app.business.employees.service import employee_service
from app.business.projects.api import router as projects_router
from app.core.auth import AuthUser, decode_token, extract_token, get_current_user, user_from_claims
from app.core.config import get_settings
from app.core.database import get_db
from app.crm.api import customers_router, dashboard_router, router as consultation_requests_router
from app.forms.api import router as forms_router
from app.metrics import generate_metrics_payload, metrics_content_type

logger = logging.getLogger("app.auth")

router = APIRouter()
router.include_router(consultation_requests_router)
router.include_router(customers_router)
router.include_router(dashboard_router)
router.include_router(projects_router)
router.include_router(employees_router)
router.include_router(forms_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(user: AuthUser = Depends(get_current_user)) -> dict[str, str | list[str] | None]:
    return {
        "sub": user.sub,
        "roles": user.roles,
        "email": user.email,
        "name": user.name,
    }


@router.get("/api/auth/verify", tags=["auth"])
def verify_session(request: Request, db: Session = Depends(get_db)) -> JSONResponse:
    token = extract_token(request)
    if not token:
        return error_response(
            request,
            status_code=status.HTTP_401_UNAUTHORIZED,
            code="auth_token_missing",
            message="No authentication token provided",
        )
    try:
        claims = decode_token(token)
        user = user_from_claims(claims)
        employee = employee_service.find_for_subject(db, user.sub, user.email)
    except JWTError:
        return error_response(
            request,
            status_code=status.HTTP_401_UNAUTHORIZED,
            code="auth_token_invalid",
            message="Invalid or expired token",
        )
    except SQLAlchemyError as exc:
        logger.exception("auth.verify_failed", extra={"error": str(exc)[:500]})
        return error_response(
            request,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code="auth_verify_failed",
            message="Token verification failed",
        )

    expires = claims.get("exp")
    return JSONResponse(
        content={
            "success": True,
            "user": {
                "id": str(employee.id) if employee is not None else user.sub,
                "email": user.email,
                "role": user.role,
                "name": user.name or (employee.full_name if employee is not None else None),
                "last_login": (
                    employee.last_login.isoformat() if employee is not None and employee.last_login is not None else None
                ),
            },
            "expires": datetime.fromtimestamp(expires, tz=timezone.utc).isoformat() if isinstance(expires, (int, float)) else None,
        }
    )


@router.get("/metrics", tags=["system"])
def metrics(user: AuthUser = Depends(get_current_user)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if "system.metrics.read" not in user.roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing permission: system.metrics.read")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
