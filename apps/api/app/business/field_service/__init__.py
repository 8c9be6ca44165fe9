from app.business.field_service.models import AMCContract, Installation, SiteVisit

__all__ = ["SiteVisit", "Installation", "AMCContract"]
