from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.auth import get_activity_logger, get_guard, get_request_context, require_principal
from app.core.context import RequestContext
from app.core.database import get_db
from app.core.rbac import require_capability
from app.operations.schemas import (
    ClientDashboard,
    CommunicationCreate,
    CommunicationRead,
    ProjectCommentCreate,
    ProjectCommentRead,
    ProjectCreate,
    ProjectFeedback,
    ProjectRead,
    ServiceRequestCreate,
    ServiceRequestRead,
    ShareLinkRead,
    TaskCreate,
    TaskRead,
    TaskUpdate,
    TicketCommentCreate,
    TicketCommentRead,
    TicketCreate,
    TicketRead,
    TicketUpdate,
)
from app.operations.service import (
    communication_service,
    dashboard_service,
    project_service,
    service_request_service,
    task_service,
    ticket_service,
)
from app.platform.security.context import Principal
from app.platform.security.guard import AuthorizationGuard
from app.platform.security.roles import Capability
from app.services.audit import ActivityLogger


requests_router = APIRouter(prefix="/api/service-requests", tags=["operations.requests"])
communications_router = APIRouter(prefix="/api/communications", tags=["operations.communications"])
projects_router = APIRouter(prefix="/api/projects", tags=["operations.projects"])
tasks_router = APIRouter(prefix="/api/tasks", tags=["operations.tasks"])
tickets_router = APIRouter(prefix="/api/tickets", tags=["operations.tickets"])
client_portal_router = APIRouter(prefix="/api/client", tags=["operations.client"])


@requests_router.post("", response_model=ServiceRequestRead, response_model_exclude_unset=True, status_code=status.HTTP_201_CREATED)
def create_service_request(
    dto: ServiceRequestCreate,
    principal: Principal = Depends(require_capability(Capability.CREATE_REQUESTS)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> dict[str, Any]:
    record = service_request_service.create_request(db, principal, dto)
    activity.log_activity(principal.id, "create", "service_request", record["id"], record["title"], request_context=context)
    return record


@requests_router.get("", response_model=list[ServiceRequestRead], response_model_exclude_unset=True)
def list_service_requests(
    status_filter: str | None = Query(default=None, alias="status"),
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    return service_request_service.list_requests(db, guard, principal, status_filter=status_filter)


@requests_router.get("/{request_id}", response_model=ServiceRequestRead, response_model_exclude_unset=True)
def get_service_request(
    request_id: uuid.UUID,
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return service_request_service.get_request(db, guard, principal, request_id)


@requests_router.patch("/{request_id}", response_model=ServiceRequestRead, response_model_exclude_unset=True)
def update_service_request(
    request_id: uuid.UUID,
    payload: dict[str, Any] = Body(...),
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> dict[str, Any]:
    record, fields = service_request_service.update_request(db, guard, principal, request_id, payload)
    activity.log_activity(
        principal.id,
        "update",
        "service_request",
        request_id,
        record["title"],
        details={"fields": fields},
        request_context=context,
    )
    return record


@requests_router.get("/{request_id}/messages", response_model=list[CommunicationRead])
def list_request_messages(
    request_id: uuid.UUID,
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    return communication_service.list_for_request(db, guard, principal, request_id)


@requests_router.post("/{request_id}/messages", response_model=CommunicationRead, status_code=status.HTTP_201_CREATED)
def post_request_message(
    request_id: uuid.UUID,
    dto: CommunicationCreate,
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> dict[str, Any]:
    message = communication_service.post_on_request(db, guard, principal, request_id, dto)
    activity.log_activity(
        principal.id,
        "create",
        "communication",
        message["id"],
        details={"service_request_id": str(request_id), "is_internal": dto.is_internal},
        request_context=context,
    )
    return message


@communications_router.get("", response_model=list[CommunicationRead])
def list_communications(
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    return communication_service.list_messages(db, guard, principal)


@projects_router.get("", response_model=list[ProjectRead], response_model_exclude_unset=True)
def list_projects(
    status_filter: str | None = Query(default=None, alias="status"),
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    return project_service.list_projects(db, guard, principal, status_filter=status_filter)


@projects_router.post("", response_model=ProjectRead, response_model_exclude_unset=True, status_code=status.HTTP_201_CREATED)
def create_project(
    dto: ProjectCreate,
    principal: Principal = Depends(require_capability(Capability.MANAGE_ALL_PROJECTS)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> dict[str, Any]:
    project = project_service.create_project(db, principal, dto)
    activity.log_activity(
        principal.id,
        "create",
        "project",
        project["id"],
        project["project_name"],
        details={"project_number": project["project_number"]},
        request_context=context,
    )
    return project


@projects_router.get("/{project_id}", response_model=ProjectRead, response_model_exclude_unset=True)
def get_project(
    project_id: uuid.UUID,
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return project_service.get_project(db, guard, principal, project_id)


@projects_router.patch("/{project_id}", response_model=ProjectRead, response_model_exclude_unset=True)
def update_project(
    project_id: uuid.UUID,
    payload: dict[str, Any] = Body(...),
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> dict[str, Any]:
    project, fields = project_service.update_project(db, guard, principal, project_id, payload)
    activity.log_activity(
        principal.id,
        "update",
        "project",
        project_id,
        project["project_name"],
        details={"fields": fields},
        request_context=context,
    )
    return project


@projects_router.get("/{project_id}/comments", response_model=list[ProjectCommentRead])
def list_project_comments(
    project_id: uuid.UUID,
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> list[ProjectCommentRead]:
    return project_service.list_comments(db, guard, principal, project_id)


@projects_router.post("/{project_id}/comments", response_model=ProjectCommentRead, status_code=status.HTTP_201_CREATED)
def add_project_comment(
    project_id: uuid.UUID,
    dto: ProjectCommentCreate,
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> ProjectCommentRead:
    comment = project_service.add_comment(db, guard, principal, project_id, dto)
    activity.log_activity(principal.id, "comment", "project", project_id, request_context=context)
    return comment


@projects_router.post("/{project_id}/feedback", response_model=ProjectRead, response_model_exclude_unset=True)
def submit_project_feedback(
    project_id: uuid.UUID,
    dto: ProjectFeedback,
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> dict[str, Any]:
    project = project_service.submit_feedback(db, guard, principal, project_id, dto)
    activity.log_activity(
        principal.id,
        "feedback",
        "project",
        project_id,
        project.get("project_name"),
        details={"rating": dto.client_rating},
        request_context=context,
    )
    return project


@projects_router.post("/{project_id}/share", response_model=ShareLinkRead)
def share_project(
    project_id: uuid.UUID,
    principal: Principal = Depends(require_capability(Capability.MANAGE_ALL_PROJECTS)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> ShareLinkRead:
    link = project_service.issue_share_link(db, project_id)
    activity.log_activity(principal.id, "share", "project", project_id, link.number, request_context=context)
    return link


@tasks_router.get("", response_model=list[TaskRead])
def list_tasks(
    status_filter: str | None = Query(default=None, alias="status"),
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> list[TaskRead]:
    return task_service.list_tasks(db, guard, principal, status_filter=status_filter)


@tasks_router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(
    dto: TaskCreate,
    principal: Principal = Depends(require_capability(Capability.MANAGE_ALL_TASKS)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> TaskRead:
    task = task_service.create_task(db, principal, dto)
    activity.log_activity(principal.id, "create", "task", task.id, task.title, request_context=context)
    return task


@tasks_router.get("/{task_id}", response_model=TaskRead)
def get_task(
    task_id: uuid.UUID,
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> TaskRead:
    return task_service.get_task(db, guard, principal, task_id)


@tasks_router.patch("/{task_id}", response_model=TaskRead)
def update_task(
    task_id: uuid.UUID,
    dto: TaskUpdate,
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> TaskRead:
    task = task_service.update_task(db, guard, principal, task_id, dto)
    activity.log_activity(
        principal.id,
        "update",
        "task",
        task_id,
        task.title,
        details={"fields": sorted(dto.model_dump(exclude_unset=True))},
        request_context=context,
    )
    return task


@tickets_router.post("", response_model=TicketRead, status_code=status.HTTP_201_CREATED)
def create_ticket(
    dto: TicketCreate,
    principal: Principal = Depends(require_capability(Capability.MANAGE_OWN_TICKETS, Capability.MANAGE_ALL_TICKETS)),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> TicketRead:
    ticket = ticket_service.create_ticket(db, guard, principal, dto)
    activity.log_activity(
        principal.id,
        "create",
        "ticket",
        ticket.id,
        ticket.subject,
        details={"ticket_number": ticket.ticket_number},
        request_context=context,
    )
    return ticket


@tickets_router.get("", response_model=list[TicketRead])
def list_tickets(
    status_filter: str | None = Query(default=None, alias="status"),
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> list[TicketRead]:
    return ticket_service.list_tickets(db, guard, principal, status_filter=status_filter)


@tickets_router.get("/{ticket_id}", response_model=TicketRead)
def get_ticket(
    ticket_id: uuid.UUID,
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> TicketRead:
    return ticket_service.get_ticket(db, guard, principal, ticket_id)


@tickets_router.patch("/{ticket_id}", response_model=TicketRead)
def update_ticket(
    ticket_id: uuid.UUID,
    dto: TicketUpdate,
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> TicketRead:
    ticket = ticket_service.update_ticket(db, guard, principal, ticket_id, dto)
    activity.log_activity(
        principal.id,
        "update",
        "ticket",
        ticket_id,
        ticket.subject,
        details={"fields": sorted(dto.model_dump(exclude_unset=True))},
        request_context=context,
    )
    return ticket


@tickets_router.get("/{ticket_id}/comments", response_model=list[TicketCommentRead])
def list_ticket_comments(
    ticket_id: uuid.UUID,
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    return ticket_service.list_comments(db, guard, principal, ticket_id)


@tickets_router.post("/{ticket_id}/comments", response_model=TicketCommentRead, status_code=status.HTTP_201_CREATED)
def add_ticket_comment(
    ticket_id: uuid.UUID,
    dto: TicketCommentCreate,
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> TicketCommentRead:
    comment = ticket_service.add_comment(db, guard, principal, ticket_id, dto)
    activity.log_activity(
        principal.id,
        "comment",
        "ticket",
        ticket_id,
        details={"is_internal": dto.is_internal},
        request_context=context,
    )
    return comment


@tickets_router.post("/{ticket_id}/share", response_model=ShareLinkRead)
def share_ticket(
    ticket_id: uuid.UUID,
    principal: Principal = Depends(require_capability(Capability.MANAGE_ALL_TICKETS)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> ShareLinkRead:
    link = ticket_service.issue_share_link(db, ticket_id)
    activity.log_activity(principal.id, "share", "ticket", ticket_id, link.number, request_context=context)
    return link


@client_portal_router.get("/dashboard", response_model=ClientDashboard, response_model_exclude_unset=True)
def client_dashboard(
    principal: Principal = Depends(require_principal),
    guard: AuthorizationGuard = Depends(get_guard),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return dashboard_service.client_dashboard(db, guard, principal)
