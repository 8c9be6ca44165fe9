from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from app.context import get_correlation_id

AuditAction = Literal["create", "update", "delete", "convert"]

logger = logging.getLogger("app.audit")

audit_entries: list[dict[str, Any]] = []


def record(
    actor_user_id: str | None,
    entity_type: str,
    entity_id: str,
    action: AuditAction,
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Appends an audit entry; ``actor_user_id`` falls back to ``"system"`` for unattended writes."""
    entry = {
        "id": str(uuid.uuid4()),
        "actor_user_id": actor_user_id or "system",
        "entity_type": entity_type,
        "entity_id": entity_id,
        "action": action,
        "before": before,
        "after": after,
        "correlation_id": correlation_id or get_correlation_id(),
        "occurred_at": datetime.now(timezone.utc).isoformat(),
    }
    audit_entries.append(entry)
    logger.debug("audit.recorded", extra={"action": action, "record_id": entity_id, "user_id": entry["actor_user_id"]})
    return entry


def entries_for(entity_type: str, entity_id: str | None = None) -> list[dict[str, Any]]:
    return [
        entry
        for entry in audit_entries
        if entry["entity_type"] == entity_type and (entity_id is None or entry["entity_id"] == entity_id)
    ]
