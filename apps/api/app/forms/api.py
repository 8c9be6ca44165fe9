from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.responses import error_response, success_response
from app.context import get_correlation_id
from app.core.auth import AuthUser, get_current_user
from app.core.database import get_db
from app.core.rbac import require_staff
from app.forms.config import get_form_config
from app.forms.defaults import get_default_form_data
from app.forms.descriptors import FormDescriptor
from app.forms.draft import apply_field_change, build_submission
from app.forms.errors import FormValidationError, MissingReferenceError, RecordNotFoundError, UnknownModuleError
from app.forms.line_items import totals_for_record
from app.forms.manager import MODULE_LABELS, FormManager, serialize_value
from app.forms.reference import load_reference_data
from app.forms.schemas import DraftChangeRequest, DraftRead, FormRecordRequest, ValidationRead, form_read
from app.forms.validation import validate_partial, validate_submission
from app.metrics import observe_form_validation_failure
from app.notify import notifications_for


router = APIRouter(prefix="/api/forms", tags=["forms"])
logger = logging.getLogger("app.forms")


def _descriptor(db: Session, module: str) -> FormDescriptor:
    try:
        return get_form_config(module, load_reference_data(db))
    except UnknownModuleError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown form module: {exc.module}") from exc


def _validation_failed(request: Request, module: str, errors: dict[str, str]) -> JSONResponse:
    observe_form_validation_failure(module)
    return error_response(
        request,
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="validation_failed",
        message="Please correct the highlighted fields",
        details=errors,
    )


def _storage_failed(request: Request, module: str, action: str) -> JSONResponse:
    return error_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code=f"form_{action}_failed",
        message=f"Failed to {action} {MODULE_LABELS[module].lower()}",
        details={"notifications": notifications_for(get_correlation_id())},
    )


@router.get("/{module}")
def get_form(
    request: Request,
    module: str,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_staff(user)
        descriptor = _descriptor(db, module)
        return success_response(form_read(descriptor, get_default_form_data(descriptor)))
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="form_get_failed", message=str(exc.detail))


@router.post("/{module}/draft")
def change_draft(
    request: Request,
    module: str,
    dto: DraftChangeRequest,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_staff(user)
        descriptor = _descriptor(db, module)
        if not descriptor.has_field(dto.field):
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Unknown field: {dto.field}")
        draft = apply_field_change(descriptor, dto.draft, dto.field, dto.value)
        has_items = any(item.type == "line-items" for item in descriptor.iter_fields())
        result = DraftRead(
            draft=draft,
            visible_fields=[item.name for item in descriptor.visible_fields(draft)],
            submission=build_submission(descriptor, draft),
            totals={key: float(value) for key, value in totals_for_record(draft).as_dict().items()} if has_items else None,
        )
        return success_response(result)
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="form_draft_failed", message=str(exc.detail))


@router.post("/{module}/validate")
def validate_form(
    request: Request,
    module: str,
    dto: FormRecordRequest,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_staff(user)
        descriptor = _descriptor(db, module)
        errors = validate_submission(dto.data, descriptor)
        return success_response(ValidationRead(valid=not errors, errors=errors))
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="form_validate_failed", message=str(exc.detail))


@router.post("/{module}", status_code=status.HTTP_201_CREATED)
def submit_form(
    request: Request,
    module: str,
    dto: FormRecordRequest,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_staff(user)
        descriptor = _descriptor(db, module)
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="form_submit_failed", message=str(exc.detail))

    errors = validate_submission(dto.data, descriptor)
    if errors:
        return _validation_failed(request, module, errors)

    try:
        record = FormManager(module, db, actor_user_id=user.sub).create(build_submission(descriptor, dto.data))
    except MissingReferenceError as exc:
        return _validation_failed(request, module, {exc.field_name: exc.message})
    except FormValidationError as exc:
        return _validation_failed(request, module, exc.errors)
    except SQLAlchemyError:
        return _storage_failed(request, module, "create")

    return success_response(
        serialize_value(record),
        status_code=status.HTTP_201_CREATED,
        message=f"{MODULE_LABELS[module]} created successfully",
        notifications=notifications_for(get_correlation_id()),
    )


@router.patch("/{module}/{record_id}")
def update_form_record(
    request: Request,
    module: str,
    record_id: str,
    dto: FormRecordRequest,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_staff(user)
        descriptor = _descriptor(db, module)
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="form_update_failed", message=str(exc.detail))

    errors = validate_partial(dto.data, descriptor)
    if errors:
        return _validation_failed(request, module, errors)

    try:
        record = FormManager(module, db, actor_user_id=user.sub).update(record_id, dto.data)
    except RecordNotFoundError:
        return error_response(
            request,
            status_code=status.HTTP_404_NOT_FOUND,
            code="form_record_not_found",
            message=f"{MODULE_LABELS[module]} not found",
        )
    except FormValidationError as exc:
        return _validation_failed(request, module, exc.errors)
    except SQLAlchemyError:
        return _storage_failed(request, module, "update")

    return success_response(serialize_value(record), message=f"{MODULE_LABELS[module]} updated successfully")


@router.delete("/{module}/{record_id}")
def delete_form_record(
    request: Request,
    module: str,
    record_id: str,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        require_staff(user)
        manager = FormManager(module, db, actor_user_id=user.sub)
        manager.delete(record_id)
    except HTTPException as exc:
        return error_response(request, status_code=exc.status_code, code="form_delete_failed", message=str(exc.detail))
    except UnknownModuleError as exc:
        return error_response(
            request,
            status_code=status.HTTP_404_NOT_FOUND,
            code="form_delete_failed",
            message=f"Unknown form module: {exc.module}",
        )
    except RecordNotFoundError:
        return error_response(
            request,
            status_code=status.HTTP_404_NOT_FOUND,
            code="form_record_not_found",
            message=f"{MODULE_LABELS[module]} not found",
        )
    except SQLAlchemyError:
        return _storage_failed(request, module, "delete")

    return success_response(None, message=f"{MODULE_LABELS[module]} deleted successfully")
