from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

form_submissions_total = Counter(
    "form_submissions_total",
    "Total form submissions by module, action and outcome",
    ["module", "action", "outcome"],
)

form_validation_failures_total = Counter(
    "form_validation_failures_total",
    "Total rejected form submissions by module",
    ["module"],
)

lead_conversions_total = Counter(
    "lead_conversions_total",
    "Total lead conversions by outcome",
    ["outcome"],
)

lead_conversion_duration_seconds = Histogram(
    "lead_conversion_duration_seconds",
    "Lead conversion duration in seconds",
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub(lambda match: match.group(0) if match.group(0) == "{module}" else "{id}", path)


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_form_submission(module: str, action: str, outcome: str) -> None:
    form_submissions_total.labels(module=module, action=action, outcome=outcome).inc()


def observe_form_validation_failure(module: str) -> None:
    form_validation_failures_total.labels(module=module).inc()


def observe_lead_conversion(outcome: str, duration: float) -> None:
    lead_conversions_total.labels(outcome=outcome).inc()
    lead_conversion_duration_seconds.observe(duration)


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
