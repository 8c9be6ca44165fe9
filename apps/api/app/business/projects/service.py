from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import Session

from app import audit, events
from app.business.projects.models import Project, ProjectActivity
from app.business.projects.schemas import ProjectCreate, ProjectPage, ProjectRead
from app.crm.models import Customer
from app.forms.manager import next_reference_number


logger = logging.getLogger("app.projects")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ProjectService:
    number_prefix: str = "PROJ"

    def create_project(self, session: Session, actor_user_id: str, dto: ProjectCreate) -> ProjectRead:
        if session.get(Customer, dto.customer_id) is None:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="customer not found")
        if dto.estimated_start_date and dto.estimated_end_date and dto.estimated_end_date < dto.estimated_start_date:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="estimated_end_date cannot be before estimated_start_date",
            )

        project = Project(
            **dto.model_dump(),
            project_number=next_reference_number(session, Project.project_number, self.number_prefix, utcnow()),
            created_by=actor_user_id,
        )
        session.add(project)
        session.flush()
        session.add(
            ProjectActivity(
                project_id=project.id,
                activity_type="project_created",
                description=f"Project {project.project_number} created",
                performed_by=actor_user_id,
            )
        )
        session.commit()
        session.refresh(project)

        project_read = ProjectRead.model_validate(project)
        audit.record(
            actor_user_id=actor_user_id,
            entity_type="projects",
            entity_id=str(project.id),
            action="create",
            before=None,
            after=project_read.model_dump(mode="json"),
        )
        events.publish(
            events.build_envelope(
                "projects.project.created",
                {"project_id": str(project.id), "project_number": project.project_number},
                actor_user_id=actor_user_id,
            )
        )
        logger.info("project.created", extra={"project_id": str(project.id), "record_id": project.project_number})
        return project_read

    def list_projects(
        self,
        session: Session,
        *,
        page: int = 1,
        limit: int = 10,
        status_filter: str | None = None,
        search: str | None = None,
    ) -> tuple[list[ProjectRead], ProjectPage]:
        stmt: Select[tuple[Project]] = select(Project)
        if status_filter and status_filter != "all":
            stmt = stmt.where(Project.status == status_filter)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(Project.project_name.ilike(pattern), Project.project_number.ilike(pattern)))

        total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        rows = session.scalars(stmt.order_by(Project.created_at.desc()).offset((page - 1) * limit).limit(limit)).all()
        pagination = ProjectPage(page=page, limit=limit, total=total, total_pages=(total + limit - 1) // limit)
        return [ProjectRead.model_validate(item) for item in rows], pagination


project_service = ProjectService()
