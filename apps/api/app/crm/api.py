from __future__ import annotations

import logging
import uuid
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.responses import error_response, success_response
from app.core.auth import AuthUser, get_current_user
from app.core.database import get_db
from app.core.rbac import require_staff
from app.crm.conversion import IN_PROGRESS_MESSAGE, lead_conversion_workflow
from app.crm.dashboard import compute_dashboard_stats
from app.crm.schemas import ConversionResult, LeadConvertRequest, LeadCreate, LeadUpdate
from app.crm.service import customer_service, lead_service
from app.forms.config import get_lead_form_config
from app.forms.errors import ConversionInProgressError, FormValidationError, LeadAlreadyConvertedError
from app.forms.validation import validate_form_data
from app.metrics import observe_form_validation_failure


router = APIRouter(prefix="/api/consultation-requests", tags=["crm.consultation_requests"])
customers_router = APIRouter(prefix="/api/customers", tags=["crm.customers"])
dashboard_router = APIRouter(prefix="/api/dashboard", tags=["crm.dashboard"])
logger = logging.getLogger("app.crm")


def _storage_error(request: Request, db: Session, exc: SQLAlchemyError, code: str, message: str) -> JSONResponse:
    db.rollback()
    logger.exception("crm.storage_failed", extra={"action": code, "error": str(exc)[:500]})
    return error_response(request, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, code=code, message=message)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_consultation_request(
    request: Request,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    errors = validate_form_data(payload, get_lead_form_config())
    if errors:
        observe_form_validation_failure("leads")
        return error_response(
            request,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="validation_failed",
            message="Please correct the highlighted fields",
            details=errors,
        )
    try:
        dto = LeadCreate.model_validate(payload)
    except ValidationError as exc:
        observe_form_validation_failure("leads")
        return error_response(
            request,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="validation_failed",
            message="Please correct the highlighted fields",
            details={".".join(str(part) for part in item["loc"]): item["msg"] for item in exc.errors()},
        )

    try:
        actor = user.sub if user.is_staff else None
        lead = lead_service.create_lead(db, dto, actor_user_id=actor)
        return success_response(
            lead,
            status_code=status.HTTP_201_CREATED,
            message="Consultation request created successfully",
        )
    except SQLAlchemyError as exc:
        return _storage_error(request, db, exc, "consultation_request_create_failed", "Failed to create consultation request")


@router.get("")
def list_consultation_requests(
    request: Request,
    status_filter: str | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_staff(user)
        leads = lead_service.list_leads(db, status_filter=status_filter, q=search, limit=limit, offset=offset)
        return success_response(leads, count=len(leads))
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="consultation_request_list_failed", message=str(exc.detail))
    except SQLAlchemyError as exc:
        return _storage_error(request, db, exc, "consultation_request_list_failed", "Failed to fetch consultation requests")


@router.get("/{lead_id}")
def get_consultation_request(
    request: Request,
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_staff(user)
        return success_response(lead_service.get_lead(db, lead_id))
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="consultation_request_get_failed", message=str(exc.detail))


@router.get("/{lead_id}/history")
def get_consultation_request_history(
    request: Request,
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_staff(user)
        return success_response(lead_service.history(db, lead_id))
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="consultation_request_history_failed", message=str(exc.detail))


@router.patch("/{lead_id}")
def patch_consultation_request(
    request: Request,
    lead_id: uuid.UUID,
    dto: LeadUpdate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_staff(user)
        lead = lead_service.update_lead(db, user.sub, lead_id, dto)
        return success_response(lead, message="Consultation request updated successfully")
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="consultation_request_update_failed", message=str(exc.detail))
    except SQLAlchemyError as exc:
        return _storage_error(request, db, exc, "consultation_request_update_failed", "Failed to update consultation request")


@router.delete("/{lead_id}")
def delete_consultation_request(
    request: Request,
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_staff(user)
        lead_service.delete_lead(db, user.sub, lead_id)
        return success_response(None, message="Consultation request deleted successfully")
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="consultation_request_delete_failed", message=str(exc.detail))
    except SQLAlchemyError as exc:
        return _storage_error(request, db, exc, "consultation_request_delete_failed", "Failed to delete consultation request")


@router.post("/{lead_id}/convert", status_code=status.HTTP_201_CREATED)
def convert_consultation_request(
    request: Request,
    lead_id: uuid.UUID,
    dto: LeadConvertRequest | None = None,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_staff(user)
        outcome = lead_conversion_workflow.convert(db, user.sub, lead_id, dto.overrides if dto else None)
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="lead_convert_failed", message=str(exc.detail))
    except ConversionInProgressError:
        return error_response(
            request,
            status_code=status.HTTP_409_CONFLICT,
            code="conversion_in_progress",
            message=IN_PROGRESS_MESSAGE,
            details={"lead_id": str(lead_id)},
        )
    except LeadAlreadyConvertedError as exc:
        return error_response(
            request,
            status_code=status.HTTP_409_CONFLICT,
            code="lead_already_converted",
            message="Consultation request has already been converted",
            details={"lead_id": exc.lead_id, "project_id": exc.project_id},
        )
    except FormValidationError as exc:
        return error_response(
            request,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="validation_failed",
            message="Project details are incomplete",
            details=exc.errors,
        )
    except SQLAlchemyError as exc:
        return _storage_error(request, db, exc, "lead_convert_failed", "Failed to convert consultation request")

    result = ConversionResult.model_validate(asdict(outcome))
    return success_response(result, status_code=status.HTTP_201_CREATED, message=outcome.message)


@customers_router.get("")
def list_customers(
    request: Request,
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_staff(user)
        return success_response(customer_service.list_customers(db, active_only=not include_inactive))
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="customer_list_failed", message=str(exc.detail))


@dashboard_router.get("/analytics")
def dashboard_analytics(
    request: Request,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_staff(user)
        return success_response(compute_dashboard_stats(db))
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="dashboard_analytics_failed", message=str(exc.detail))
    except SQLAlchemyError as exc:
        return _storage_error(request, db, exc, "dashboard_analytics_failed", "Failed to fetch analytics data")
