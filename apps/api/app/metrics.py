from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

authz_decisions_total = Counter(
    "authz_decisions_total",
    "Authorization decisions by rule and outcome",
    ["rule", "outcome"],
)

ownership_resolver_failures_total = Counter(
    "ownership_resolver_failures_total",
    "Ownership lookups that failed closed",
)

sanitizer_redactions_total = Counter(
    "sanitizer_redactions_total",
    "Fields stripped or records withheld on the way out",
    ["resource", "kind"],
)

audit_write_failures_total = Counter(
    "audit_write_failures_total",
    "Activity log writes that failed and were absorbed",
    ["dispatch"],
)

share_link_denials_total = Counter(
    "share_link_denials_total",
    "Rejected share-link lookups by reason",
    ["resource", "reason"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        route_path = getattr(route, "path_format", None) or getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _PATH_PARAM_RE.sub("{id}", route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_authz_decision(rule: str, outcome: str) -> None:
    authz_decisions_total.labels(rule=rule, outcome=outcome).inc()


def observe_ownership_failure() -> None:
    ownership_resolver_failures_total.inc()


def observe_sanitizer_redactions(resource: str, stripped_fields: int, withheld_records: int) -> None:
    if stripped_fields > 0:
        sanitizer_redactions_total.labels(resource=resource, kind="field").inc(stripped_fields)
    if withheld_records > 0:
        sanitizer_redactions_total.labels(resource=resource, kind="record").inc(withheld_records)


def observe_audit_write_failure(dispatch: str) -> None:
    audit_write_failures_total.labels(dispatch=dispatch).inc()


def observe_share_link_denial(resource: str, reason: str) -> None:
    share_link_denials_total.labels(resource=resource, reason=reason).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
