from __future__ import annotations

import uuid
from dataclasses import dataclass

from app.platform.security.roles import Role


@dataclass(frozen=True, slots=True)
class Principal:
    """The authenticated caller as resolved from the session for one request."""

    id: uuid.UUID
    role: Role
    is_active: bool = True
    email: str | None = None
    display_name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN
