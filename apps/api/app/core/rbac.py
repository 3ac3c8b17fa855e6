from collections.abc import Callable

from fastapi import Depends

from app.core.auth import get_guard, get_principal
from app.platform.security.context import Principal
from app.platform.security.guard import AuthorizationGuard
from app.platform.security.roles import Capability


def require_capability(*capabilities: Capability) -> Callable[..., Principal]:
    """Dependency that admits principals holding any one of ``capabilities``."""

    def checker(
        principal: Principal | None = Depends(get_principal),
        guard: AuthorizationGuard = Depends(get_guard),
    ) -> Principal:
        return guard.require(principal, *capabilities)

    return checker
