from app.business.billing.models import Invoice, InvoiceItem, Payment, Quotation, QuotationItem
from app.business.employees.models import Employee
from app.business.field_service.models import AMCContract, Installation, SiteVisit
from app.business.projects.models import Project, ProjectActivity
from app.crm.models import ConsultationRequest, Customer, LeadStatusHistory, PendingReconciliation

__all__ = [
	"AMCContract",
	"ConsultationRequest",
	"Customer",
	"Employee",
	"Installation",
	"Invoice",
	"InvoiceItem",
	"LeadStatusHistory",
	"Payment",
	"PendingReconciliation",
	"Project",
	"ProjectActivity",
	"Quotation",
	"QuotationItem",
	"SiteVisit",
]
