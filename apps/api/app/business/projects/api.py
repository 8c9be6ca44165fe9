from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.responses import error_response, success_response
from app.business.projects.schemas import ProjectCreate
from app.business.projects.service import project_service
from app.core.auth import AuthUser, get_current_user
from app.core.database import get_db
from app.core.rbac import require_staff


router = APIRouter(prefix="/api/projects", tags=["projects"])
logger = logging.getLogger("app.projects")


@router.post("", status_code=status.HTTP_201_CREATED)
def create_project(
    request: Request,
    dto: ProjectCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_staff(user)
        project = project_service.create_project(db, user.sub, dto)
        return success_response(project, status_code=status.HTTP_201_CREATED, message="Project created successfully")
    except HTTPException as exc:
        return error_response(
            request,
            status_code=exc.status_code,
            code="project_create_failed",
            message=str(exc.detail),
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("project.create_failed", extra={"error": str(exc)[:500]})
        return error_response(
            request,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code="project_create_failed",
            message="Failed to create project",
        )


@router.get("")
def list_projects(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=200),
    status_filter: str | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_staff(user)
        projects, pagination = project_service.list_projects(
            db,
            page=page,
            limit=limit,
            status_filter=status_filter,
            search=search,
        )
        return success_response(projects, pagination=pagination)
    except HTTPException as exc:
        return error_response(
            request,
            status_code=exc.status_code,
            code="project_list_failed",
            message=str(exc.detail),
        )
