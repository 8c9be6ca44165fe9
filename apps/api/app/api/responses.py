from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.context import get_correlation_id


@dataclass
class ErrorEnvelope:
    success: bool
    error: str
    code: str
    details: Any
    correlation_id: str | None


def success_response(
    data: Any,
    *,
    message: str | None = None,
    status_code: int = 200,
    **extra: Any,
) -> JSONResponse:
    content: dict[str, Any] = {"success": True, "data": jsonable_encoder(data)}
    if message is not None:
        content["message"] = message
    content.update(jsonable_encoder(extra))
    return JSONResponse(status_code=status_code, content=content)


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None)
    payload = ErrorEnvelope(
        success=False,
        error=message,
        code=code,
        details=jsonable_encoder(details),
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)
