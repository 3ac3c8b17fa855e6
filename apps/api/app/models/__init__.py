from app.models.audit import Activity
from app.accounts.models import PasswordResetToken, User, UserSession
from app.crm.models import Client, Inquiry, Lead
from app.operations.models import (
	Communication,
	Project,
	ProjectComment,
	ServiceRequest,
	Task,
	Ticket,
	TicketComment,
)
from app.business.billing.models import Invoice, Quote

__all__ = [
	"Activity",
	"User",
	"UserSession",
	"PasswordResetToken",
	"Client",
	"Lead",
	"Inquiry",
	"ServiceRequest",
	"Communication",
	"Project",
	"ProjectComment",
	"Task",
	"Ticket",
	"TicketComment",
	"Quote",
	"Invoice",
]
