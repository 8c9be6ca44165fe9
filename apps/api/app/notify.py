from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from app.context import get_correlation_id

NotificationLevel = Literal["success", "error", "warning", "loading"]

logger = logging.getLogger("app.notify")

sent_notifications: list[dict[str, Any]] = []

_LOG_LEVELS = {
    "success": logging.INFO,
    "loading": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class Notifier:
    """Fire-and-forget user notifications.

    Callers never depend on delivery; entries are logged and kept in
    ``sent_notifications`` so the API layer can echo them back.
    """

    def send(self, level: NotificationLevel, message: str, detail: str | None = None) -> dict[str, Any]:
        entry = {
            "id": str(uuid.uuid4()),
            "level": level,
            "message": message,
            "detail": detail,
            "correlation_id": get_correlation_id(),
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }
        sent_notifications.append(entry)
        logger.log(_LOG_LEVELS[level], "notification.sent", extra={"level": level, "detail": message})
        return entry

    def success(self, message: str, detail: str | None = None) -> dict[str, Any]:
        return self.send("success", message, detail)

    def error(self, message: str, detail: str | None = None) -> dict[str, Any]:
        return self.send("error", message, detail)

    def warning(self, message: str, detail: str | None = None) -> dict[str, Any]:
        return self.send("warning", message, detail)

    def loading(self, message: str, detail: str | None = None) -> dict[str, Any]:
        return self.send("loading", message, detail)


def notifications_for(correlation_id: str | None) -> list[dict[str, Any]]:
    if correlation_id is None:
        return []
    return [item for item in sent_notifications if item.get("correlation_id") == correlation_id]


notifier = Notifier()
