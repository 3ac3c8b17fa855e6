from app.platform.security.context import Principal
from app.platform.security.errors import (
    AuthorizationError,
    Forbidden,
    HashingError,
    ResourceNotFound,
    SelfActionForbidden,
    ShareLinkDenied,
    Unauthenticated,
)
from app.platform.security.permissions import ROLE_CAPABILITIES, AccessRule, capabilities_for, has_permission
from app.platform.security.roles import Capability, Role
from app.platform.security.sanitizer import SANITIZE_RULES, sanitize, sanitize_many

__all__ = [
    "Principal",
    "AuthorizationError",
    "Forbidden",
    "HashingError",
    "ResourceNotFound",
    "SelfActionForbidden",
    "ShareLinkDenied",
    "Unauthenticated",
    "ROLE_CAPABILITIES",
    "AccessRule",
    "capabilities_for",
    "has_permission",
    "Capability",
    "Role",
    "SANITIZE_RULES",
    "sanitize",
    "sanitize_many",
]
