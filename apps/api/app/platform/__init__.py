from app.platform.security.context import Principal
from app.platform.security.errors import AuthorizationError, Forbidden, Unauthenticated
from app.platform.security.permissions import has_permission
from app.platform.security.repository import BaseRepository
from app.platform.security.roles import Capability, Role

__all__ = [
    "Principal",
    "AuthorizationError",
    "Forbidden",
    "Unauthenticated",
    "has_permission",
    "BaseRepository",
    "Capability",
    "Role",
]
