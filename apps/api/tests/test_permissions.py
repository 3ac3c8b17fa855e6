from __future__ import annotations

import pytest

from app.platform.security.permissions import (
    PROJECT_FEEDBACK,
    ROLE_CAPABILITIES,
    TICKET_MANAGE,
    capabilities_for,
    has_permission,
)
from app.platform.security.roles import Capability, Role


def test_admin_holds_every_capability() -> None:
    assert ROLE_CAPABILITIES[Role.ADMIN] == frozenset(Capability)


def test_manager_holds_everything_except_system_management() -> None:
    assert Capability.MANAGE_SYSTEM not in ROLE_CAPABILITIES[Role.MANAGER]
    assert ROLE_CAPABILITIES[Role.MANAGER] | {Capability.MANAGE_SYSTEM} == frozenset(Capability)


@pytest.mark.parametrize(
    ("role", "capability", "expected"),
    [
        (Role.CLIENT, Capability.VIEW_OWN_PROJECTS, True),
        (Role.CLIENT, Capability.VIEW_ALL_PROJECTS, False),
        (Role.CLIENT, Capability.SUBMIT_PROJECT_FEEDBACK, True),
        (Role.EMPLOYEE, Capability.MANAGE_OWN_PROJECTS, True),
        (Role.EMPLOYEE, Capability.VIEW_CLIENTS, False),
        (Role.SALES, Capability.MANAGE_QUOTES, True),
        (Role.SALES, Capability.VIEW_ALL_TICKETS, False),
        (Role.PROJECT_MANAGER, Capability.MANAGE_ALL_TICKETS, True),
        (Role.PROJECT_MANAGER, Capability.MANAGE_LEADS, False),
        (Role.MANAGER, Capability.MANAGE_USERS, True),
    ],
)
def test_role_capability_matrix(role: Role, capability: Capability, expected: bool) -> None:
    assert has_permission(role, capability) is expected


def test_unknown_role_is_denied_everything() -> None:
    assert has_permission("superuser", Capability.VIEW_OWN_REQUESTS) is False
    assert has_permission(None, Capability.VIEW_OWN_REQUESTS) is False
    assert capabilities_for("superuser") == frozenset()


def test_unknown_capability_is_denied() -> None:
    assert has_permission(Role.ADMIN, "launch_rockets") is False


def test_role_strings_are_normalised() -> None:
    assert has_permission(" Admin ", Capability.MANAGE_SYSTEM) is True
    assert Role.parse("PROJECT_MANAGER") is Role.PROJECT_MANAGER


def test_access_rules_pair_scoped_and_unscoped_capabilities() -> None:
    assert TICKET_MANAGE.all is Capability.MANAGE_ALL_TICKETS
    assert TICKET_MANAGE.own == (Capability.MANAGE_OWN_TICKETS,)
    assert PROJECT_FEEDBACK.all is None
