from __future__ import annotations

from app.operations.models import Communication, Project, ServiceRequest, Task, Ticket, TicketComment
from app.platform.security.repository import BaseRepository


class ServiceRequestRepository(BaseRepository):
    resource = "service_request"
    model = ServiceRequest
    owner_columns = ("client_id",)


class CommunicationRepository(BaseRepository):
    resource = "communication"
    model = Communication
    owner_columns = ("from_user_id", "recipient_user_id")


class ProjectRepository(BaseRepository):
    resource = "project"
    model = Project
    client_column = "client_id"
    lead_column = "lead_id"
    assignment_columns = ("assigned_technician_id",)


class TaskRepository(BaseRepository):
    resource = "task"
    model = Task
    owner_columns = ("created_by_id",)
    assignment_columns = ("assigned_to_id",)


class TicketRepository(BaseRepository):
    resource = "ticket"
    model = Ticket
    owner_columns = ("created_by_id",)
    client_column = "client_id"
    lead_column = "lead_id"
    assignment_columns = ("assigned_to_id",)


class TicketCommentRepository(BaseRepository):
    resource = "ticket_comment"
    model = TicketComment
    owner_columns = ("user_id",)
