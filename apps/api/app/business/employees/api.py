from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.responses import error_response, success_response
from app.business.employees.schemas import EmployeeCreate, EmployeeUpdate
from app.business.employees.service import employee_service
from app.core.auth import AuthUser, get_current_user
from app.core.database import get_db
from app.core.rbac import require_any_role


router = APIRouter(prefix="/api/admin/employees", tags=["admin.employees"])
logger = logging.getLogger("app.employees")

EMPLOYEE_ADMIN_ROLES = ["admin", "manager"]


def _storage_error(request: Request, db: Session, exc: SQLAlchemyError, code: str, message: str) -> JSONResponse:
    db.rollback()
    logger.exception("employee.storage_failed", extra={"action": code, "error": str(exc)[:500]})
    return error_response(request, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, code=code, message=message)


@router.get("")
def list_employees(
    request: Request,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_any_role(user, EMPLOYEE_ADMIN_ROLES)
        return success_response(employee_service.list_employees(db))
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="employee_list_failed", message=str(exc.detail))
    except SQLAlchemyError as exc:
        return _storage_error(request, db, exc, "employee_list_failed", "Failed to fetch employees")


@router.post("", status_code=status.HTTP_201_CREATED)
def create_employee(
    request: Request,
    dto: EmployeeCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_any_role(user, EMPLOYEE_ADMIN_ROLES)
        employee = employee_service.create_employee(db, user.sub, dto)
        return success_response(employee, status_code=status.HTTP_201_CREATED, message="Employee created successfully")
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="employee_create_failed", message=str(exc.detail))
    except SQLAlchemyError as exc:
        return _storage_error(request, db, exc, "employee_create_failed", "Failed to create employee record")


@router.patch("/{employee_id}")
def update_employee(
    request: Request,
    employee_id: uuid.UUID,
    dto: EmployeeUpdate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_any_role(user, EMPLOYEE_ADMIN_ROLES)
        employee = employee_service.update_employee(db, user.sub, employee_id, dto)
        return success_response(employee, message="Employee updated successfully")
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="employee_update_failed", message=str(exc.detail))
    except SQLAlchemyError as exc:
        return _storage_error(request, db, exc, "employee_update_failed", "Failed to update employee")
