from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app.crm.service import LeadService, lead_service as default_lead_service


logger = logging.getLogger("app.crm.progression")


@dataclass(frozen=True, slots=True)
class ProgressionRule:
    action: str
    from_statuses: frozenset[str]
    to_status: str
    reason: str


@dataclass(frozen=True, slots=True)
class ProgressionResult:
    success: bool
    new_status: str | None = None
    message: str | None = None


PROGRESSION_RULES: tuple[ProgressionRule, ...] = (
    ProgressionRule("contact_attempted", frozenset({"new"}), "contacted", "Contact attempted with lead"),
    ProgressionRule("lead_responded", frozenset({"contacted"}), "qualified", "Lead responded and showed interest"),
    ProgressionRule("quotation_sent", frozenset({"contacted", "qualified"}), "proposal_sent", "Quotation sent to lead"),
    ProgressionRule("project_created", frozenset({"qualified", "proposal_sent"}), "won", "Project created from lead"),
    ProgressionRule("lead_lost", frozenset({"contacted", "qualified", "proposal_sent"}), "lost", "Lead marked as lost"),
)


class StatusProgressionService:
    """Applies automatic lead status changes triggered by business actions."""

    def __init__(self, leads: LeadService | None = None, rules: tuple[ProgressionRule, ...] = PROGRESSION_RULES) -> None:
        self.leads = leads or default_lead_service
        self.rules = rules

    def find_rule(self, current_status: str, action: str) -> ProgressionRule | None:
        for rule in self.rules:
            if rule.action == action and current_status in rule.from_statuses:
                return rule
        return None

    def progress(
        self,
        session: Session,
        lead_id: uuid.UUID,
        current_status: str,
        action: str,
        changed_by: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> ProgressionResult:
        rule = self.find_rule(current_status, action)
        if rule is None:
            return ProgressionResult(success=False, message=f"No progression rule for {action} from {current_status}")

        notes = _format_notes(data)
        if current_status == rule.to_status:
            self.leads.change_status(
                session,
                lead_id,
                rule.to_status,
                changed_by=changed_by,
                change_reason=f"{rule.reason} (status unchanged)",
                notes=notes,
            )
            return ProgressionResult(success=True, new_status=rule.to_status, message="Status already current")

        self.leads.change_status(
            session,
            lead_id,
            rule.to_status,
            changed_by=changed_by,
            change_reason=rule.reason,
            notes=notes,
        )
        logger.info(
            "lead.progressed",
            extra={"lead_id": str(lead_id), "action": action, "status": rule.to_status},
        )
        return ProgressionResult(success=True, new_status=rule.to_status, message=rule.reason)

    def on_project_created(
        self,
        session: Session,
        lead_id: uuid.UUID,
        current_status: str,
        project_id: uuid.UUID,
        changed_by: str | None = None,
    ) -> ProgressionResult:
        return self.progress(session, lead_id, current_status, "project_created", changed_by, {"project_id": str(project_id)})

    def on_quotation_sent(
        self,
        session: Session,
        lead_id: uuid.UUID,
        current_status: str,
        quotation_id: uuid.UUID,
        changed_by: str | None = None,
    ) -> ProgressionResult:
        return self.progress(session, lead_id, current_status, "quotation_sent", changed_by, {"quotation_id": str(quotation_id)})

    def on_contact_attempted(
        self,
        session: Session,
        lead_id: uuid.UUID,
        current_status: str,
        changed_by: str | None = None,
        method: str | None = None,
    ) -> ProgressionResult:
        return self.progress(session, lead_id, current_status, "contact_attempted", changed_by, {"method": method})


def _format_notes(data: dict[str, Any] | None) -> str | None:
    if not data:
        return None
    parts = [f"{key}={value}" for key, value in sorted(data.items()) if value is not None]
    return ", ".join(parts) or None


status_progression_service = StatusProgressionService()
