from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.business.billing.models import Invoice
from app.business.employees.models import Employee
from app.business.projects.models import Project
from app.crm.models import ConsultationRequest, Customer
from app.forms.config import ReferenceData

REFERENCE_LIMIT = 500


def load_reference_data(session: Session) -> ReferenceData:
    """Select-option sources for every form, newest first."""
    return ReferenceData(
        customers=tuple(
            session.scalars(
                select(Customer).where(Customer.is_active.is_(True)).order_by(Customer.name).limit(REFERENCE_LIMIT)
            ).all()
        ),
        employees=tuple(
            session.scalars(
                select(Employee).where(Employee.status == "active").order_by(Employee.full_name).limit(REFERENCE_LIMIT)
            ).all()
        ),
        projects=tuple(session.scalars(select(Project).order_by(Project.created_at.desc()).limit(REFERENCE_LIMIT)).all()),
        consultation_requests=tuple(
            session.scalars(
                select(ConsultationRequest)
                .where(ConsultationRequest.status.not_in(["won", "lost", "cancelled"]))
                .order_by(ConsultationRequest.created_at.desc())
                .limit(REFERENCE_LIMIT)
            ).all()
        ),
        invoices=tuple(
            session.scalars(
                select(Invoice).where(Invoice.status != "paid").order_by(Invoice.created_at.desc()).limit(REFERENCE_LIMIT)
            ).all()
        ),
    )
