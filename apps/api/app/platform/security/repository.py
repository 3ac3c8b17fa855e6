from __future__ import annotations

from typing import Any

from sqlalchemy import false, or_
from sqlalchemy.sql import ColumnElement, Select

from app.platform.security.guard import AccessScope, ListScope, OwnershipKind, ResourceOwnership
from app.platform.security.roles import Role
from app.platform.security.sanitizer import sanitize, sanitize_many


class BaseRepository:
    """Binds one ORM model to its owner-bearing columns and its sanitize rule.

    Subclasses declare which columns name the principal directly, which point
    at a Client or Lead, and which hold an assignee. The same declaration
    drives single-record checks and SQL list filtering.
    """

    resource = ""
    model: Any = None
    owner_columns: tuple[str, ...] = ()
    client_column: str | None = None
    lead_column: str | None = None
    assignment_columns: tuple[str, ...] = ()

    def ownership(self, record: Any) -> ResourceOwnership:
        return ResourceOwnership(
            owner_user_ids=tuple(getattr(record, name) for name in self.owner_columns),
            client_id=getattr(record, self.client_column) if self.client_column else None,
            lead_id=getattr(record, self.lead_column) if self.lead_column else None,
            assigned_user_ids=tuple(getattr(record, name) for name in self.assignment_columns),
        )

    def apply_scope_query(self, query: Select[Any], scope: ListScope) -> Select[Any]:
        if scope.level is AccessScope.ALL:
            return query
        if scope.level is AccessScope.NONE or scope.principal is None:
            return query.where(false())

        principal_id = scope.principal.id
        conditions: list[ColumnElement[bool]] = []
        if OwnershipKind.DIRECT in scope.kinds:
            conditions.extend(self._column(name) == principal_id for name in self.owner_columns)
        if OwnershipKind.ASSIGNMENT in scope.kinds:
            conditions.extend(self._column(name) == principal_id for name in self.assignment_columns)
        if OwnershipKind.TRACE in scope.kinds:
            if self.client_column and scope.owned.client_ids:
                conditions.append(self._column(self.client_column).in_(list(scope.owned.client_ids)))
            if self.lead_column and scope.owned.lead_ids:
                conditions.append(self._column(self.lead_column).in_(list(scope.owned.lead_ids)))

        if not conditions:
            return query.where(false())
        return query.where(or_(*conditions))

    def apply_read_security(self, record: dict[str, Any], role: Role) -> dict[str, Any] | None:
        return sanitize(self.resource, record, role)

    def apply_read_security_many(self, records: list[dict[str, Any]], role: Role) -> list[dict[str, Any]]:
        return sanitize_many(self.resource, records, role)

    def _column(self, name: str) -> Any:
        return getattr(self.model, name)
