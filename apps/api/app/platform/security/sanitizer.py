from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from app.metrics import observe_sanitizer_redactions
from app.platform.security.roles import Role


@dataclass(frozen=True, slots=True)
class SanitizeRule:
    strip_fields: frozenset[str] = frozenset()
    # Records with this flag set are withheld entirely from non-admin callers.
    internal_flag: str | None = None
    # None applies the rule to every non-admin role.
    roles: frozenset[Role] | None = None


SANITIZE_RULES: Mapping[str, SanitizeRule] = MappingProxyType(
    {
        "service_request": SanitizeRule(strip_fields=frozenset({"admin_notes"})),
        "client": SanitizeRule(strip_fields=frozenset({"notes"})),
        "lead": SanitizeRule(strip_fields=frozenset({"notes"})),
        "project": SanitizeRule(strip_fields=frozenset({"work_notes"}), roles=frozenset({Role.CLIENT})),
        "communication": SanitizeRule(internal_flag="is_internal"),
        "ticket_comment": SanitizeRule(internal_flag="is_internal"),
    }
)


def _rule_for(resource: str, role: Role) -> SanitizeRule | None:
    if role is Role.ADMIN:
        return None
    rule = SANITIZE_RULES.get(resource)
    if rule is None:
        return None
    if rule.roles is not None and role not in rule.roles:
        return None
    return rule


def _strip(record: dict[str, Any], rule: SanitizeRule) -> tuple[dict[str, Any], int]:
    stripped = 0
    output: dict[str, Any] = {}
    for field_name, value in record.items():
        if field_name in rule.strip_fields:
            stripped += 1
            continue
        output[field_name] = value
    return output, stripped


def sanitize(resource: str, record: dict[str, Any], role: Role) -> dict[str, Any] | None:
    """Return the record as ``role`` may see it, or ``None`` when it is withheld."""

    rule = _rule_for(resource, role)
    if rule is None:
        return record
    if rule.internal_flag and record.get(rule.internal_flag):
        observe_sanitizer_redactions(resource, stripped_fields=0, withheld_records=1)
        return None
    output, stripped = _strip(record, rule)
    observe_sanitizer_redactions(resource, stripped_fields=stripped, withheld_records=0)
    return output


def sanitize_many(resource: str, records: Iterable[dict[str, Any]], role: Role) -> list[dict[str, Any]]:
    rule = _rule_for(resource, role)
    if rule is None:
        return list(records)

    output: list[dict[str, Any]] = []
    stripped_total = 0
    withheld = 0
    for record in records:
        if rule.internal_flag and record.get(rule.internal_flag):
            withheld += 1
            continue
        cleaned, stripped = _strip(record, rule)
        stripped_total += stripped
        output.append(cleaned)
    observe_sanitizer_redactions(resource, stripped_fields=stripped_total, withheld_records=withheld)
    return output
