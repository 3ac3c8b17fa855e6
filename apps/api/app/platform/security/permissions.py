from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from app.platform.security.roles import Capability as C
from app.platform.security.roles import Role


_CLIENT = frozenset(
    {
        C.VIEW_OWN_REQUESTS,
        C.CREATE_REQUESTS,
        C.EDIT_OWN_REQUESTS,
        C.VIEW_OWN_PROJECTS,
        C.COMMENT_OWN_PROJECTS,
        C.SUBMIT_PROJECT_FEEDBACK,
        C.VIEW_OWN_MESSAGES,
        C.VIEW_OWN_QUOTES,
        C.VIEW_OWN_INVOICES,
        C.VIEW_OWN_TICKETS,
        C.MANAGE_OWN_TICKETS,
    }
)

_EMPLOYEE = frozenset(
    {
        C.VIEW_OWN_PROJECTS,
        C.MANAGE_OWN_PROJECTS,
        C.COMMENT_OWN_PROJECTS,
        C.VIEW_OWN_TASKS,
        C.MANAGE_OWN_TASKS,
        C.VIEW_OWN_REPORTS,
        C.MANAGE_OWN_REPORTS,
        C.VIEW_OWN_TICKETS,
        C.MANAGE_OWN_TICKETS,
    }
)

_PROJECT_STAFF = frozenset(
    {
        C.VIEW_OWN_PROJECTS,
        C.VIEW_ALL_PROJECTS,
        C.MANAGE_OWN_PROJECTS,
        C.MANAGE_ALL_PROJECTS,
        C.ASSIGN_PROJECTS,
        C.COMMENT_OWN_PROJECTS,
        C.VIEW_OWN_TASKS,
        C.VIEW_ALL_TASKS,
        C.MANAGE_OWN_TASKS,
        C.MANAGE_ALL_TASKS,
        C.VIEW_OWN_REPORTS,
        C.VIEW_ALL_REPORTS,
        C.MANAGE_OWN_REPORTS,
        C.MANAGE_ALL_REPORTS,
        C.VIEW_SUPPLIERS,
        C.MANAGE_SUPPLIERS,
        C.VIEW_CLIENTS,
        C.MANAGE_CLIENTS,
    }
)

_SALES = _PROJECT_STAFF | frozenset(
    {
        C.VIEW_OWN_MESSAGES,
        C.VIEW_ALL_MESSAGES,
        C.MANAGE_MESSAGES,
        C.VIEW_LEADS,
        C.MANAGE_LEADS,
        C.VIEW_VISITORS,
        C.VIEW_OWN_QUOTES,
        C.VIEW_ALL_QUOTES,
        C.MANAGE_QUOTES,
    }
)

_PROJECT_MANAGER = _PROJECT_STAFF | frozenset(
    {
        C.APPROVE_REPORTS,
        C.VIEW_INVENTORY,
        C.MANAGE_INVENTORY,
        C.VIEW_OWN_TICKETS,
        C.VIEW_ALL_TICKETS,
        C.MANAGE_OWN_TICKETS,
        C.MANAGE_ALL_TICKETS,
    }
)

_ADMIN = frozenset(C)

_MANAGER = _ADMIN - {C.MANAGE_SYSTEM}

ROLE_CAPABILITIES: Mapping[Role, frozenset[C]] = MappingProxyType(
    {
        Role.CLIENT: _CLIENT,
        Role.EMPLOYEE: _EMPLOYEE,
        Role.SALES: _SALES,
        Role.PROJECT_MANAGER: _PROJECT_MANAGER,
        Role.MANAGER: _MANAGER,
        Role.ADMIN: _ADMIN,
    }
)


def has_permission(role: Role | str | None, capability: C | str) -> bool:
    """Closed-world lookup: anything not explicitly granted is denied."""

    resolved = role if isinstance(role, Role) else Role.parse(role)
    if resolved is None:
        return False
    return capability in ROLE_CAPABILITIES.get(resolved, frozenset())


def capabilities_for(role: Role | str | None) -> frozenset[C]:
    resolved = role if isinstance(role, Role) else Role.parse(role)
    if resolved is None:
        return frozenset()
    return ROLE_CAPABILITIES.get(resolved, frozenset())


@dataclass(frozen=True, slots=True)
class AccessRule:
    """Pairs the unscoped capability of a resource class with its owner-scoped ones.

    Holding ``all`` grants the action on every record. Holding any of ``own``
    grants it only on records that resolve to the caller.
    """

    name: str
    all: C | None
    own: tuple[C, ...] = ()


REQUEST_VIEW = AccessRule("service_request.view", C.VIEW_ALL_REQUESTS, (C.VIEW_OWN_REQUESTS,))
REQUEST_EDIT = AccessRule("service_request.edit", C.EDIT_ALL_REQUESTS, (C.EDIT_OWN_REQUESTS,))
MESSAGE_VIEW = AccessRule("communication.view", C.VIEW_ALL_MESSAGES, (C.VIEW_OWN_MESSAGES,))
PROJECT_VIEW = AccessRule("project.view", C.VIEW_ALL_PROJECTS, (C.VIEW_OWN_PROJECTS,))
PROJECT_MANAGE = AccessRule("project.manage", C.MANAGE_ALL_PROJECTS, (C.MANAGE_OWN_PROJECTS,))
PROJECT_COMMENT = AccessRule(
    "project.comment",
    C.MANAGE_ALL_PROJECTS,
    (C.MANAGE_OWN_PROJECTS, C.COMMENT_OWN_PROJECTS),
)
PROJECT_FEEDBACK = AccessRule("project.feedback", None, (C.SUBMIT_PROJECT_FEEDBACK,))
TASK_VIEW = AccessRule("task.view", C.VIEW_ALL_TASKS, (C.VIEW_OWN_TASKS,))
TASK_MANAGE = AccessRule("task.manage", C.MANAGE_ALL_TASKS, (C.MANAGE_OWN_TASKS,))
TICKET_VIEW = AccessRule("ticket.view", C.VIEW_ALL_TICKETS, (C.VIEW_OWN_TICKETS,))
TICKET_MANAGE = AccessRule("ticket.manage", C.MANAGE_ALL_TICKETS, (C.MANAGE_OWN_TICKETS,))
QUOTE_VIEW = AccessRule("quote.view", C.VIEW_ALL_QUOTES, (C.VIEW_OWN_QUOTES,))
INVOICE_VIEW = AccessRule("invoice.view", C.VIEW_ALL_INVOICES, (C.VIEW_OWN_INVOICES,))
