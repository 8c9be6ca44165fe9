from app.business.projects.models import Project, ProjectActivity

__all__ = ["Project", "ProjectActivity"]
