from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.business.projects.models import Project
from app.core.events import InternalEvent
from app.crm.models import ConsultationRequest, Customer, PendingReconciliation
from app.forms.options import LEAD_STATUSES


logger = logging.getLogger("app.crm.dashboard")

latest_stats: dict[str, Any] = {}

SessionScope = Callable[[], AbstractContextManager[Session]]


def compute_dashboard_stats(session: Session) -> dict[str, Any]:
    rows = session.execute(
        select(ConsultationRequest.status, func.count()).group_by(ConsultationRequest.status)
    ).all()
    by_status = {status: 0 for status in sorted(LEAD_STATUSES)}
    for status, count in rows:
        by_status[status] = count

    total_leads = sum(by_status.values())
    converted = session.scalar(
        select(func.count()).select_from(ConsultationRequest).where(ConsultationRequest.converted_at.is_not(None))
    ) or 0
    return {
        "total_leads": total_leads,
        "leads_by_status": by_status,
        "converted_leads": converted,
        "conversion_rate": round(converted * 100 / total_leads, 2) if total_leads else 0.0,
        "total_customers": session.scalar(select(func.count()).select_from(Customer)) or 0,
        "total_projects": session.scalar(select(func.count()).select_from(Project)) or 0,
        "open_reconciliations": session.scalar(
            select(func.count()).select_from(PendingReconciliation).where(PendingReconciliation.status == "open")
        )
        or 0,
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }


def refresh_dashboard_stats(session: Session) -> dict[str, Any]:
    stats = compute_dashboard_stats(session)
    latest_stats.clear()
    latest_stats.update(stats)
    logger.info("dashboard.refreshed", extra={"detail": f"{stats['total_leads']} leads"})
    return stats


def session_scope_for(factory: sessionmaker[Session]) -> SessionScope:
    @contextmanager
    def scope() -> Iterator[Session]:
        session = factory()
        try:
            yield session
        finally:
            session.close()

    return scope


@dataclass(slots=True)
class DashboardRefresher:
    """Event handler for ``dashboard.refresh_requested``; opens its own session per refresh."""

    session_scope: SessionScope

    def __call__(self, event: InternalEvent) -> None:
        try:
            with self.session_scope() as session:
                refresh_dashboard_stats(session)
        except SQLAlchemyError as exc:
            logger.exception("dashboard_refresh_failed", extra={"event_name": event.name, "error": str(exc)[:500]})
