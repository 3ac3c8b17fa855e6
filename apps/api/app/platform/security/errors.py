from __future__ import annotations


class AuthorizationError(Exception):
    """Base error for access-control failures. Terminal for the request."""

    status_code = 403
    code = "forbidden"

    def __init__(self, message: str = "Access denied") -> None:
        self.message = message
        super().__init__(message)


class Unauthenticated(AuthorizationError):
    """No valid, active principal is attached to the request."""

    status_code = 401
    code = "unauthenticated"

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class Forbidden(AuthorizationError):
    """The principal lacks a sufficient capability or does not own the record."""


class SelfActionForbidden(Forbidden):
    code = "self_action_forbidden"

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"Cannot {action} your own account")


class ResourceNotFound(Exception):
    status_code = 404
    code = "not_found"

    def __init__(self, resource: str) -> None:
        self.resource = resource
        self.message = f"{resource} not found"
        super().__init__(self.message)


class ShareLinkDenied(Exception):
    """A share-token lookup failed. The reason is kept for logs, never returned."""

    status_code = 404
    code = "share_link_invalid"

    def __init__(self, resource: str, reason: str) -> None:
        self.resource = resource
        self.reason = reason
        self.message = "Link is invalid or has expired"
        super().__init__(f"{resource}: {reason}")


class HashingError(Exception):
    """The password hashing primitive failed. Surfaced as a generic 500."""
