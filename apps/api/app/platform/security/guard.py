from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar, assert_never

from app.metrics import observe_authz_decision
from app.otel import get_tracer
from app.platform.security.context import Principal
from app.platform.security.errors import Forbidden, ResourceNotFound, SelfActionForbidden, Unauthenticated
from app.platform.security.ownership import NO_OWNED_ENTITIES, OwnedEntityIds
from app.platform.security.permissions import AccessRule, has_permission
from app.platform.security.roles import Capability, Role


logger = logging.getLogger("app.security")
tracer = get_tracer("app.security.guard")

T = TypeVar("T")

OwnershipLookup = Callable[[uuid.UUID], OwnedEntityIds]


class AccessScope(str, Enum):
    ALL = "all"
    OWN = "own"
    NONE = "none"


class OwnershipKind(str, Enum):
    # the record names the principal directly (creator, requester, sender)
    DIRECT = "direct"
    # the record points at a Client or Lead whose user_id is the principal
    TRACE = "trace"
    # the principal is the assigned technician or assignee
    ASSIGNMENT = "assignment"


def ownership_kinds(role: Role) -> frozenset[OwnershipKind]:
    match role:
        case Role.CLIENT:
            return frozenset({OwnershipKind.DIRECT, OwnershipKind.TRACE})
        case Role.EMPLOYEE | Role.SALES | Role.PROJECT_MANAGER | Role.MANAGER | Role.ADMIN:
            return frozenset(OwnershipKind)
        case _:
            assert_never(role)


@dataclass(frozen=True, slots=True)
class ResourceOwnership:
    """Owner-bearing fields of one record, in the shape the guard compares."""

    owner_user_ids: tuple[uuid.UUID | None, ...] = ()
    client_id: uuid.UUID | None = None
    lead_id: uuid.UUID | None = None
    assigned_user_ids: tuple[uuid.UUID | None, ...] = ()


@dataclass(slots=True)
class ListScope:
    """Outcome of a list-level decision, consumed by repositories to filter SQL."""

    level: AccessScope
    principal: Principal | None = None
    kinds: frozenset[OwnershipKind] = frozenset()
    owned: OwnedEntityIds = field(default=NO_OWNED_ENTITIES)

    @property
    def is_empty(self) -> bool:
        return self.level is AccessScope.NONE


class AuthorizationGuard:
    """Answers, once per request, whether a principal may act on a record or list.

    Holds no state beyond the ownership lookup handed in at construction, so a
    fresh instance per request sees the current Client/Lead links.
    """

    def __init__(self, ownership_lookup: OwnershipLookup) -> None:
        self._ownership_lookup = ownership_lookup

    def authenticate(self, principal: Principal | None) -> Principal:
        if principal is None:
            raise Unauthenticated()
        if not principal.is_active:
            logger.info("inactive_principal_rejected", extra={"user_id": str(principal.id)})
            raise Unauthenticated("Account is deactivated")
        return principal

    def require(self, principal: Principal | None, *capabilities: Capability) -> Principal:
        """Pass when the principal holds any one of ``capabilities``."""

        resolved = self.authenticate(principal)
        rule_name = "|".join(capabilities)
        if any(has_permission(resolved.role, capability) for capability in capabilities):
            observe_authz_decision(rule_name, "allow")
            return resolved
        observe_authz_decision(rule_name, "deny")
        logger.info(
            "authz_denied",
            extra={"user_id": str(resolved.id), "role": resolved.role.value, "capability": rule_name},
        )
        raise Forbidden("Insufficient permissions")

    def scope_for(self, principal: Principal, rule: AccessRule) -> AccessScope:
        if rule.all is not None and has_permission(principal.role, rule.all):
            return AccessScope.ALL
        if any(has_permission(principal.role, capability) for capability in rule.own):
            return AccessScope.OWN
        return AccessScope.NONE

    def authorize(
        self,
        principal: Principal | None,
        rule: AccessRule,
        loader: Callable[[], T | None],
        ownership: Callable[[T], ResourceOwnership],
        *,
        resource: str = "Record",
    ) -> T:
        """Load one record and return it only if the principal may act on it.

        Capability is checked before the loader runs. A missing record is
        reported as ``ResourceNotFound`` only to callers with the unscoped
        capability; scoped callers get ``Forbidden`` either way.
        """

        resolved = self.authenticate(principal)
        with tracer.start_as_current_span("authz.authorize") as span:
            span.set_attribute("authz.rule", rule.name)
            span.set_attribute("authz.role", resolved.role.value)

            scope = self.scope_for(resolved, rule)
            span.set_attribute("authz.scope", scope.value)
            if scope is AccessScope.NONE:
                raise self._denied(resolved, rule, "capability")

            record = loader()
            if record is None:
                if scope is AccessScope.ALL:
                    observe_authz_decision(rule.name, "not_found")
                    raise ResourceNotFound(resource)
                raise self._denied(resolved, rule, "missing")

            if scope is AccessScope.OWN and not self.owns(resolved, ownership(record)):
                raise self._denied(resolved, rule, "ownership")

            observe_authz_decision(rule.name, "allow")
            return record

    def owns(self, principal: Principal, ownership: ResourceOwnership) -> bool:
        kinds = ownership_kinds(principal.role)
        if OwnershipKind.DIRECT in kinds and principal.id in ownership.owner_user_ids:
            return True
        if OwnershipKind.ASSIGNMENT in kinds and principal.id in ownership.assigned_user_ids:
            return True
        if OwnershipKind.TRACE in kinds and (ownership.client_id is not None or ownership.lead_id is not None):
            owned = self._ownership_lookup(principal.id)
            if ownership.client_id is not None and ownership.client_id in owned.client_ids:
                return True
            if ownership.lead_id is not None and ownership.lead_id in owned.lead_ids:
                return True
        return False

    def list_scope(self, principal: Principal | None, rule: AccessRule, *, degrade: bool = True) -> ListScope:
        """Decide how a list endpoint must be filtered.

        With ``degrade`` a caller holding neither capability gets an empty
        scope instead of ``Forbidden``.
        """

        resolved = self.authenticate(principal)
        scope = self.scope_for(resolved, rule)
        if scope is AccessScope.ALL:
            observe_authz_decision(rule.name, "allow")
            return ListScope(level=AccessScope.ALL, principal=resolved)
        if scope is AccessScope.OWN:
            observe_authz_decision(rule.name, "scoped")
            kinds = ownership_kinds(resolved.role)
            owned = self._ownership_lookup(resolved.id) if OwnershipKind.TRACE in kinds else NO_OWNED_ENTITIES
            return ListScope(level=AccessScope.OWN, principal=resolved, kinds=kinds, owned=owned)
        if degrade:
            observe_authz_decision(rule.name, "empty")
            return ListScope(level=AccessScope.NONE, principal=resolved)
        raise self._denied(resolved, rule, "capability")

    def filter_owned(
        self,
        principal: Principal | None,
        rule: AccessRule,
        records: Iterable[T],
        ownership: Callable[[T], ResourceOwnership],
        *,
        degrade: bool = True,
    ) -> list[T]:
        scope = self.list_scope(principal, rule, degrade=degrade)
        if scope.level is AccessScope.ALL:
            return list(records)
        if scope.level is AccessScope.NONE or scope.principal is None:
            return []
        return [record for record in records if _matches(scope, ownership(record))]

    @staticmethod
    def ensure_not_self(principal: Principal, target_id: uuid.UUID, action: str) -> None:
        if principal.id == target_id:
            observe_authz_decision(f"user.{action}", "self_denied")
            raise SelfActionForbidden(action)

    def _denied(self, principal: Principal, rule: AccessRule, reason: str) -> Forbidden:
        observe_authz_decision(rule.name, "deny")
        logger.info(
            "authz_denied",
            extra={
                "user_id": str(principal.id),
                "role": principal.role.value,
                "capability": rule.name,
                "outcome": reason,
            },
        )
        return Forbidden("Insufficient permissions")


def _matches(scope: ListScope, ownership: ResourceOwnership) -> bool:
    principal = scope.principal
    if principal is None:
        return False
    if OwnershipKind.DIRECT in scope.kinds and principal.id in ownership.owner_user_ids:
        return True
    if OwnershipKind.ASSIGNMENT in scope.kinds and principal.id in ownership.assigned_user_ids:
        return True
    if OwnershipKind.TRACE in scope.kinds:
        if ownership.client_id is not None and ownership.client_id in scope.owned.client_ids:
            return True
        if ownership.lead_id is not None and ownership.lead_id in scope.owned.lead_ids:
            return True
    return False
