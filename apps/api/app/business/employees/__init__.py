from app.business.employees.models import Employee

__all__ = ["Employee"]
