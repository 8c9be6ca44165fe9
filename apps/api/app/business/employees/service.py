from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app import audit, events
from app.business.employees.models import Employee
from app.business.employees.schemas import EmployeeCreate, EmployeeRead, EmployeeUpdate
from app.forms.manager import next_reference_number
from app.forms.options import ROLE_OPTIONS


logger = logging.getLogger("app.employees")

VALID_ROLES = frozenset(option.value for option in ROLE_OPTIONS)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class EmployeeService:
    entity_type: str = "employees"

    def list_employees(self, session: Session) -> list[EmployeeRead]:
        rows = session.scalars(select(Employee).order_by(Employee.created_at.desc())).all()
        return [EmployeeRead.model_validate(item) for item in rows]

    def create_employee(self, session: Session, actor_user_id: str, dto: EmployeeCreate) -> EmployeeRead:
        if dto.role not in VALID_ROLES:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="invalid employee role")
        email = str(dto.email).lower()
        if session.scalar(select(Employee).where(Employee.email == email)) is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Employee with this email already exists")

        now = utcnow()
        values = dto.model_dump()
        values["email"] = email
        values["employee_id"] = dto.employee_id or next_reference_number(session, Employee.employee_id, "EMP", now)
        values["hire_date"] = dto.hire_date or now.date()
        employee = Employee(**values)
        session.add(employee)
        session.commit()
        session.refresh(employee)

        employee_read = EmployeeRead.model_validate(employee)
        audit.record(
            actor_user_id=actor_user_id,
            entity_type=self.entity_type,
            entity_id=str(employee.id),
            action="create",
            before=None,
            after=employee_read.model_dump(mode="json"),
        )
        events.publish(
            events.build_envelope(
                "employees.employee.created",
                {"employee_id": str(employee.id), "role": employee.role},
                actor_user_id=actor_user_id,
            )
        )
        logger.info("employee.created", extra={"record_id": str(employee.id)})
        return employee_read

    def update_employee(self, session: Session, actor_user_id: str, employee_id: uuid.UUID, dto: EmployeeUpdate) -> EmployeeRead:
        employee = session.get(Employee, employee_id)
        if employee is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
        payload = dto.model_dump(exclude_unset=True)
        if "role" in payload and payload["role"] not in VALID_ROLES:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="invalid employee role")

        before = EmployeeRead.model_validate(employee).model_dump(mode="json")
        for key, value in payload.items():
            setattr(employee, key, value)
        employee.updated_at = utcnow()
        session.commit()
        session.refresh(employee)

        employee_read = EmployeeRead.model_validate(employee)
        audit.record(
            actor_user_id=actor_user_id,
            entity_type=self.entity_type,
            entity_id=str(employee.id),
            action="update",
            before=before,
            after=employee_read.model_dump(mode="json"),
        )
        return employee_read

    def find_for_subject(self, session: Session, subject: str, email: str | None) -> Employee | None:
        try:
            subject_id: uuid.UUID | None = uuid.UUID(subject)
        except ValueError:
            subject_id = None

        conditions = []
        if subject_id is not None:
            conditions.append(Employee.id == subject_id)
        if email:
            conditions.append(Employee.email == email.lower())
        if not conditions:
            return None
        return session.scalar(select(Employee).where(or_(*conditions)).limit(1))


employee_service = EmployeeService()
