from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from datetime import timedelta
from typing import Any, TypeVar

from fastapi import HTTPException, status
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.clock import as_utc, utcnow
from app.core.config import get_settings
from app.operations.models import Communication, Project, ProjectComment, ServiceRequest, Task, Ticket, TicketComment
from app.operations.repository import (
    CommunicationRepository,
    ProjectRepository,
    ServiceRequestRepository,
    TaskRepository,
    TicketCommentRepository,
    TicketRepository,
)
from app.operations.schemas import (
    CommunicationCreate,
    CommunicationRead,
    ProjectCommentCreate,
    ProjectCommentRead,
    ProjectCreate,
    ProjectFeedback,
    ProjectProgressUpdate,
    ProjectRead,
    ProjectUpdate,
    ServiceRequestClientUpdate,
    ServiceRequestCreate,
    ServiceRequestRead,
    ServiceRequestStaffUpdate,
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
from app.platform.security import permissions as rules
from app.platform.security.context import Principal
from app.platform.security.errors import Forbidden, ResourceNotFound
from app.platform.security.guard import AccessScope, AuthorizationGuard, ResourceOwnership
from app.platform.security.permissions import has_permission
from app.platform.security.roles import Capability, Role
from app.platform.security.share_links import issue_share_token
from app.services.numbering import add_numbered


logger = logging.getLogger("app.operations")

SchemaT = TypeVar("SchemaT", bound=BaseModel)

CLOSED_REQUEST_STATUSES = ("completed", "cancelled")
ACTIVE_PROJECT_STATUSES = ("scheduled", "in_progress", "on_hold")
DASHBOARD_MESSAGE_LIMIT = 10


def validate_body(schema: type[SchemaT], payload: Mapping[str, Any]) -> SchemaT:
    """Validate a body whose schema depends on the caller's scope."""

    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False)) from exc


def share_link_payload(record: Any, number: str, public_path: str) -> ShareLinkRead:
    issued_at = as_utc(record.share_token_created_at)
    return ShareLinkRead(
        number=number,
        token=record.share_token,
        path=f"{public_path}/{number}?token={record.share_token}",
        expires_at=issued_at + timedelta(days=get_settings().share_link_validity_days),
    )


def _dump(schema: type[BaseModel], record: Any) -> dict[str, Any]:
    return schema.model_validate(record).model_dump(mode="json")


class ServiceRequestService:
    repository = ServiceRequestRepository()

    def create_request(self, session: Session, principal: Principal, dto: ServiceRequestCreate) -> dict[str, Any]:
        record = ServiceRequest(**dto.model_dump(), client_id=principal.id, status="pending")
        session.add(record)
        session.commit()
        session.refresh(record)
        return self.secured_read(record, principal.role)

    def list_requests(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        *,
        status_filter: str | None = None,
        active_only: bool = False,
    ) -> list[dict[str, Any]]:
        scope = guard.list_scope(principal, rules.REQUEST_VIEW)
        stmt = self.repository.apply_scope_query(select(ServiceRequest), scope).order_by(ServiceRequest.created_at.desc())
        if status_filter:
            stmt = stmt.where(ServiceRequest.status == status_filter)
        if active_only:
            stmt = stmt.where(ServiceRequest.status.not_in(CLOSED_REQUEST_STATUSES))
        records = [_dump(ServiceRequestRead, item) for item in session.scalars(stmt).all()]
        return self.repository.apply_read_security_many(records, principal.role)

    def get_request(self, session: Session, guard: AuthorizationGuard, principal: Principal, request_id: uuid.UUID) -> dict[str, Any]:
        return self.secured_read(self.load_authorized(session, guard, principal, request_id), principal.role)

    def load_authorized(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        request_id: uuid.UUID,
    ) -> ServiceRequest:
        return guard.authorize(
            principal,
            rules.REQUEST_VIEW,
            lambda: session.get(ServiceRequest, request_id),
            self.repository.ownership,
            resource="Service request",
        )

    def update_request(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        request_id: uuid.UUID,
        payload: Mapping[str, Any],
    ) -> tuple[dict[str, Any], list[str]]:
        """Apply an edit; staff get the full whitelist, owners only the client one.

        Owners may edit only while the request is still ``pending``.
        """

        record = guard.authorize(
            principal,
            rules.REQUEST_EDIT,
            lambda: session.get(ServiceRequest, request_id),
            self.repository.ownership,
            resource="Service request",
        )
        if guard.scope_for(principal, rules.REQUEST_EDIT) is AccessScope.ALL:
            dto: BaseModel = validate_body(ServiceRequestStaffUpdate, payload)
        else:
            dto = validate_body(ServiceRequestClientUpdate, payload)
            if record.status != "pending":
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Request can no longer be edited")

        changes = dto.model_dump(exclude_unset=True)
        for field_name, value in changes.items():
            setattr(record, field_name, value)
        session.commit()
        session.refresh(record)
        return self.secured_read(record, principal.role), sorted(changes)

    def secured_read(self, record: ServiceRequest, role: Role) -> dict[str, Any]:
        secured = self.repository.apply_read_security(_dump(ServiceRequestRead, record), role)
        return secured if secured is not None else {}


class CommunicationService:
    repository = CommunicationRepository()

    def list_messages(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        *,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        scope = guard.list_scope(principal, rules.MESSAGE_VIEW)
        stmt = self.repository.apply_scope_query(select(Communication), scope).order_by(Communication.created_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        records = [_dump(CommunicationRead, item) for item in session.scalars(stmt).all()]
        return self.repository.apply_read_security_many(records, principal.role)

    def list_for_request(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        request_id: uuid.UUID,
    ) -> list[dict[str, Any]]:
        service_request_service.load_authorized(session, guard, principal, request_id)
        stmt = (
            select(Communication)
            .where(Communication.service_request_id == request_id)
            .order_by(Communication.created_at.asc())
        )
        records = [_dump(CommunicationRead, item) for item in session.scalars(stmt).all()]
        return self.repository.apply_read_security_many(records, principal.role)

    def post_on_request(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        request_id: uuid.UUID,
        dto: CommunicationCreate,
    ) -> dict[str, Any]:
        parent = service_request_service.load_authorized(session, guard, principal, request_id)
        if dto.is_internal and not has_permission(principal.role, Capability.MANAGE_MESSAGES):
            raise Forbidden("Only staff can post internal messages")

        message = Communication(
            service_request_id=parent.id,
            from_user_id=principal.id,
            recipient_user_id=None if dto.is_internal or parent.client_id == principal.id else parent.client_id,
            message=dto.message,
            is_internal=dto.is_internal,
        )
        session.add(message)
        session.commit()
        session.refresh(message)
        return _dump(CommunicationRead, message)


class ProjectService:
    repository = ProjectRepository()

    def list_projects(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        *,
        status_filter: str | None = None,
        active_only: bool = False,
    ) -> list[dict[str, Any]]:
        scope = guard.list_scope(principal, rules.PROJECT_VIEW)
        stmt = self.repository.apply_scope_query(select(Project), scope).order_by(Project.created_at.desc())
        if status_filter:
            stmt = stmt.where(Project.status == status_filter)
        if active_only:
            stmt = stmt.where(Project.status.in_(ACTIVE_PROJECT_STATUSES))
        records = [_dump(ProjectRead, item) for item in session.scalars(stmt).all()]
        return self.repository.apply_read_security_many(records, principal.role)

    def get_project(self, session: Session, guard: AuthorizationGuard, principal: Principal, project_id: uuid.UUID) -> dict[str, Any]:
        record = self._authorize(session, guard, principal, rules.PROJECT_VIEW, project_id)
        return self.secured_read(record, principal.role)

    def create_project(self, session: Session, principal: Principal, dto: ProjectCreate) -> dict[str, Any]:
        record = Project(
            **dto.model_dump(),
            created_by_id=principal.id,
        )
        add_numbered(session, record, "project_number", "PRJ")
        session.refresh(record)
        return self.secured_read(record, principal.role)

    def update_project(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        project_id: uuid.UUID,
        payload: Mapping[str, Any],
    ) -> tuple[dict[str, Any], list[str]]:
        record = self._authorize(session, guard, principal, rules.PROJECT_MANAGE, project_id)
        if guard.scope_for(principal, rules.PROJECT_MANAGE) is AccessScope.ALL:
            dto: BaseModel = validate_body(ProjectUpdate, payload)
        else:
            dto = validate_body(ProjectProgressUpdate, payload)

        changes = dto.model_dump(exclude_unset=True)
        for field_name, value in changes.items():
            setattr(record, field_name, value)
        if changes.get("status") == "completed" and record.actual_completion_date is None:
            record.actual_completion_date = utcnow()
        session.commit()
        session.refresh(record)
        return self.secured_read(record, principal.role), sorted(changes)

    def add_comment(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        project_id: uuid.UUID,
        dto: ProjectCommentCreate,
    ) -> ProjectCommentRead:
        project = self._authorize(session, guard, principal, rules.PROJECT_COMMENT, project_id)
        comment = ProjectComment(project_id=project.id, user_id=principal.id, comment=dto.comment)
        session.add(comment)
        session.commit()
        session.refresh(comment)
        return ProjectCommentRead.model_validate(comment)

    def list_comments(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        project_id: uuid.UUID,
    ) -> list[ProjectCommentRead]:
        self._authorize(session, guard, principal, rules.PROJECT_VIEW, project_id)
        stmt = select(ProjectComment).where(ProjectComment.project_id == project_id).order_by(ProjectComment.created_at.asc())
        return [ProjectCommentRead.model_validate(item) for item in session.scalars(stmt).all()]

    def submit_feedback(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        project_id: uuid.UUID,
        dto: ProjectFeedback,
    ) -> dict[str, Any]:
        project = self._authorize(session, guard, principal, rules.PROJECT_FEEDBACK, project_id)
        project.client_rating = dto.client_rating
        project.client_feedback = dto.client_feedback
        session.commit()
        session.refresh(project)
        return self.secured_read(project, principal.role)

    def issue_share_link(self, session: Session, project_id: uuid.UUID) -> ShareLinkRead:
        project = session.get(Project, project_id)
        if project is None:
            raise ResourceNotFound("Project")
        issue_share_token(project)
        session.commit()
        logger.info("share_link_issued", extra={"entity_type": "project", "entity_id": str(project.id)})
        session.refresh(project)
        return share_link_payload(project, project.project_number, "/api/public/projects")

    def secured_read(self, record: Project, role: Role) -> dict[str, Any]:
        secured = self.repository.apply_read_security(_dump(ProjectRead, record), role)
        return secured if secured is not None else {}

    def _authorize(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        rule: rules.AccessRule,
        project_id: uuid.UUID,
    ) -> Project:
        return guard.authorize(
            principal,
            rule,
            lambda: session.get(Project, project_id),
            self.repository.ownership,
            resource="Project",
        )


class TaskService:
    repository = TaskRepository()

    def list_tasks(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        *,
        status_filter: str | None = None,
    ) -> list[TaskRead]:
        scope = guard.list_scope(principal, rules.TASK_VIEW)
        stmt = self.repository.apply_scope_query(select(Task), scope).order_by(Task.created_at.desc())
        if status_filter:
            stmt = stmt.where(Task.status == status_filter)
        return [TaskRead.model_validate(item) for item in session.scalars(stmt).all()]

    def get_task(self, session: Session, guard: AuthorizationGuard, principal: Principal, task_id: uuid.UUID) -> TaskRead:
        return TaskRead.model_validate(self._authorize(session, guard, principal, rules.TASK_VIEW, task_id))

    def create_task(self, session: Session, principal: Principal, dto: TaskCreate) -> TaskRead:
        if dto.project_id is not None and session.get(Project, dto.project_id) is None:
            raise ResourceNotFound("Project")
        task = Task(
            **dto.model_dump(),
            created_by_id=principal.id,
        )
        add_numbered(session, task, "task_number", "TSK")
        session.refresh(task)
        return TaskRead.model_validate(task)

    def update_task(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        task_id: uuid.UUID,
        dto: TaskUpdate,
    ) -> TaskRead:
        task = self._authorize(session, guard, principal, rules.TASK_MANAGE, task_id)
        changes = dto.model_dump(exclude_unset=True)
        for field_name, value in changes.items():
            setattr(task, field_name, value)
        if changes.get("status") == "completed":
            task.completed_at = utcnow()
        session.commit()
        session.refresh(task)
        return TaskRead.model_validate(task)

    def _authorize(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        rule: rules.AccessRule,
        task_id: uuid.UUID,
    ) -> Task:
        return guard.authorize(principal, rule, lambda: session.get(Task, task_id), self.repository.ownership, resource="Task")


class TicketService:
    repository = TicketRepository()
    comment_repository = TicketCommentRepository()

    def create_ticket(self, session: Session, guard: AuthorizationGuard, principal: Principal, dto: TicketCreate) -> TicketRead:
        """Open a ticket; scoped callers must own every record it points at."""

        scope = guard.scope_for(principal, rules.TICKET_MANAGE)
        if scope is AccessScope.NONE:
            raise Forbidden("Insufficient permissions")

        project = None
        if dto.project_id is not None:
            project = session.get(Project, dto.project_id)
            if project is None:
                # Scoped callers cannot tell a missing project from someone else's.
                if scope is AccessScope.ALL:
                    raise ResourceNotFound("Project")
                raise Forbidden("Insufficient permissions")

        if scope is AccessScope.OWN:
            self._ensure_owned_targets(guard, principal, dto, project)

        ticket = Ticket(
            subject=dto.subject,
            description=dto.description,
            priority=dto.priority,
            project_id=dto.project_id,
            client_id=dto.client_id if dto.client_id is not None else getattr(project, "client_id", None),
            lead_id=dto.lead_id if dto.lead_id is not None else getattr(project, "lead_id", None),
            created_by_id=principal.id,
        )
        add_numbered(session, ticket, "ticket_number", "TKT")
        session.refresh(ticket)
        return TicketRead.model_validate(ticket)

    def list_tickets(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        *,
        status_filter: str | None = None,
    ) -> list[TicketRead]:
        scope = guard.list_scope(principal, rules.TICKET_VIEW)
        stmt = self.repository.apply_scope_query(select(Ticket), scope).order_by(Ticket.created_at.desc())
        if status_filter:
            stmt = stmt.where(Ticket.status == status_filter)
        return [TicketRead.model_validate(item) for item in session.scalars(stmt).all()]

    def get_ticket(self, session: Session, guard: AuthorizationGuard, principal: Principal, ticket_id: uuid.UUID) -> TicketRead:
        return TicketRead.model_validate(self._authorize(session, guard, principal, rules.TICKET_VIEW, ticket_id))

    def update_ticket(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        ticket_id: uuid.UUID,
        dto: TicketUpdate,
    ) -> TicketRead:
        ticket = self._authorize(session, guard, principal, rules.TICKET_MANAGE, ticket_id)
        changes = dto.model_dump(exclude_unset=True)
        if "assigned_to_id" in changes and guard.scope_for(principal, rules.TICKET_MANAGE) is not AccessScope.ALL:
            raise Forbidden("Insufficient permissions")
        for field_name, value in changes.items():
            setattr(ticket, field_name, value)
        if changes.get("status") in ("resolved", "closed") and ticket.resolved_at is None:
            ticket.resolved_at = utcnow()
        session.commit()
        session.refresh(ticket)
        return TicketRead.model_validate(ticket)

    def add_comment(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        ticket_id: uuid.UUID,
        dto: TicketCommentCreate,
    ) -> TicketCommentRead:
        ticket = self._authorize(session, guard, principal, rules.TICKET_MANAGE, ticket_id)
        if dto.is_internal and principal.role is Role.CLIENT:
            raise Forbidden("Only staff can post internal comments")
        comment = TicketComment(ticket_id=ticket.id, user_id=principal.id, comment=dto.comment, is_internal=dto.is_internal)
        session.add(comment)
        session.commit()
        session.refresh(comment)
        return TicketCommentRead.model_validate(comment)

    def list_comments(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        ticket_id: uuid.UUID,
    ) -> list[dict[str, Any]]:
        self._authorize(session, guard, principal, rules.TICKET_VIEW, ticket_id)
        stmt = select(TicketComment).where(TicketComment.ticket_id == ticket_id).order_by(TicketComment.created_at.asc())
        records = [_dump(TicketCommentRead, item) for item in session.scalars(stmt).all()]
        return self.comment_repository.apply_read_security_many(records, principal.role)

    def issue_share_link(self, session: Session, ticket_id: uuid.UUID) -> ShareLinkRead:
        ticket = session.get(Ticket, ticket_id)
        if ticket is None:
            raise ResourceNotFound("Ticket")
        issue_share_token(ticket)
        session.commit()
        logger.info("share_link_issued", extra={"entity_type": "ticket", "entity_id": str(ticket.id)})
        session.refresh(ticket)
        return share_link_payload(ticket, ticket.ticket_number, "/api/public/tickets")

    def _ensure_owned_targets(
        self,
        guard: AuthorizationGuard,
        principal: Principal,
        dto: TicketCreate,
        project: Project | None,
    ) -> None:
        if project is None and dto.client_id is None and dto.lead_id is None:
            raise Forbidden("Ticket must reference a project, client or lead you own")
        if project is not None and not guard.owns(principal, project_service.repository.ownership(project)):
            raise Forbidden("Insufficient permissions")
        if dto.client_id is not None and not guard.owns(principal, ResourceOwnership(client_id=dto.client_id)):
            raise Forbidden("Insufficient permissions")
        if dto.lead_id is not None and not guard.owns(principal, ResourceOwnership(lead_id=dto.lead_id)):
            raise Forbidden("Insufficient permissions")

    def _authorize(
        self,
        session: Session,
        guard: AuthorizationGuard,
        principal: Principal,
        rule: rules.AccessRule,
        ticket_id: uuid.UUID,
    ) -> Ticket:
        return guard.authorize(principal, rule, lambda: session.get(Ticket, ticket_id), self.repository.ownership, resource="Ticket")


class DashboardService:
    def client_dashboard(self, session: Session, guard: AuthorizationGuard, principal: Principal) -> dict[str, Any]:
        return {
            "active_requests": service_request_service.list_requests(session, guard, principal, active_only=True),
            "active_projects": project_service.list_projects(session, guard, principal, active_only=True),
            "recent_communications": communication_service.list_messages(
                session, guard, principal, limit=DASHBOARD_MESSAGE_LIMIT
            ),
        }


service_request_service = ServiceRequestService()
communication_service = CommunicationService()
project_service = ProjectService()
task_service = TaskService()
ticket_service = TicketService()
dashboard_service = DashboardService()
