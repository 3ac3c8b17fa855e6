from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from app.accounts.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    RegisterRequest,
    UserBulkCreate,
    UserCreate,
    UserRead,
    UserUpdate,
)
from app.accounts.service import account_service, user_service
from app.core.auth import (
    get_activity_logger,
    get_principal,
    get_request_context,
    get_session_id,
    get_session_store,
    require_principal,
)
from app.core.config import get_settings
from app.core.context import RequestContext
from app.core.database import get_db
from app.core.rbac import require_capability
from app.platform.security.context import Principal
from app.platform.security.guard import AuthorizationGuard
from app.platform.security.roles import Capability, Role
from app.platform.security.sessions import SessionStore
from app.services.audit import ActivityLogger


auth_router = APIRouter(prefix="/api/auth", tags=["auth"])
users_router = APIRouter(prefix="/api/users", tags=["users"])

RESET_REQUESTED_MESSAGE = "If the account exists, a reset link has been sent"


def _set_session_cookie(response: Response, sid: str) -> None:
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie_name,
        sid,
        max_age=settings.session_ttl_hours * 3600,
        httponly=True,
        samesite="strict",
        secure=settings.session_cookie_secure,
    )


def _clear_session_cookie(response: Response) -> None:
    settings = get_settings()
    response.delete_cookie(
        settings.session_cookie_name,
        httponly=True,
        samesite="strict",
        secure=settings.session_cookie_secure,
    )


@auth_router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def register(
    request: Request,
    response: Response,
    dto: RegisterRequest,
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> UserRead:
    user = account_service.register(db, dto)
    sid = store.regenerate(get_session_id(request), user.id)
    _set_session_cookie(response, sid)
    activity.log_activity(user.id, "register", "user", user.id, user.email, request_context=context)
    return UserRead.model_validate(user)


@auth_router.post("/login", response_model=UserRead)
def login(
    request: Request,
    response: Response,
    dto: LoginRequest,
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> UserRead:
    user = account_service.authenticate(db, str(dto.email), dto.password)
    # A fresh identifier on every login; the pre-login sid is never promoted.
    sid = store.regenerate(get_session_id(request), user.id)
    _set_session_cookie(response, sid)
    activity.log_activity(user.id, "login", "user", user.id, user.email, request_context=context)
    return UserRead.model_validate(user)


@auth_router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    principal: Principal | None = Depends(get_principal),
    store: SessionStore = Depends(get_session_store),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> MessageResponse:
    if principal is not None:
        activity.log_activity(principal.id, "logout", "user", principal.id, principal.email, request_context=context)
    store.destroy(get_session_id(request))
    _clear_session_cookie(response)
    return MessageResponse(message="Logged out")


@auth_router.get("/user", response_model=UserRead)
def current_user(
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
) -> UserRead:
    return UserRead.model_validate(user_service.get_user(db, principal.id))


@auth_router.post("/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    dto: ChangePasswordRequest,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> MessageResponse:
    account_service.change_password(db, principal.id, dto.current_password, dto.new_password)
    store.destroy_all_for_user(principal.id, keep_sid=get_session_id(request))
    activity.log_activity(principal.id, "password_change", "user", principal.id, principal.email, request_context=context)
    return MessageResponse(message="Password updated")


@auth_router.post("/password-reset/request", response_model=MessageResponse, status_code=status.HTTP_202_ACCEPTED)
def request_password_reset(
    dto: PasswordResetRequest,
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> MessageResponse:
    token = account_service.request_password_reset(db, str(dto.email))
    if token is not None:
        # Delivery is out of band; the token itself is never logged or returned.
        activity.log_activity(None, "password_reset_requested", "user", None, str(dto.email), request_context=context)
    return MessageResponse(message=RESET_REQUESTED_MESSAGE)


@auth_router.post("/password-reset/confirm", response_model=MessageResponse)
def confirm_password_reset(
    dto: PasswordResetConfirm,
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> MessageResponse:
    user = account_service.confirm_password_reset(db, str(dto.email), dto.token, dto.new_password)
    activity.log_activity(user.id, "password_reset", "user", user.id, user.email, request_context=context)
    return MessageResponse(message="Password has been reset")


@users_router.get("", response_model=list[UserRead])
def list_users(
    role: Role | None = Query(default=None),
    principal: Principal = Depends(require_capability(Capability.VIEW_USERS)),
    db: Session = Depends(get_db),
) -> list[UserRead]:
    return [UserRead.model_validate(user) for user in user_service.list_users(db, role=role)]


@users_router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    dto: UserCreate,
    principal: Principal = Depends(require_capability(Capability.MANAGE_USERS)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> UserRead:
    user = user_service.create_user(db, dto)
    activity.log_activity(
        principal.id,
        "create",
        "user",
        user.id,
        user.email,
        details={"role": user.role},
        request_context=context,
    )
    return UserRead.model_validate(user)


@users_router.post("/bulk", response_model=list[UserRead], status_code=status.HTTP_201_CREATED)
def bulk_create_users(
    dto: UserBulkCreate,
    principal: Principal = Depends(require_capability(Capability.MANAGE_USERS)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> list[UserRead]:
    users = user_service.bulk_create(db, dto)
    activity.log_activity(
        principal.id,
        "bulk_create",
        "user",
        None,
        None,
        details={"count": len(users), "emails": [user.email for user in users]},
        request_context=context,
    )
    return [UserRead.model_validate(user) for user in users]


@users_router.patch("/{user_id}", response_model=UserRead)
def update_user(
    user_id: uuid.UUID,
    dto: UserUpdate,
    principal: Principal = Depends(require_capability(Capability.MANAGE_USERS)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> UserRead:
    if dto.role is not None:
        AuthorizationGuard.ensure_not_self(principal, user_id, "change the role of")
    user = user_service.update_user(db, user_id, dto)
    activity.log_activity(
        principal.id,
        "update",
        "user",
        user.id,
        user.email,
        details={"fields": sorted(dto.model_dump(exclude_unset=True))},
        request_context=context,
    )
    return UserRead.model_validate(user)


@users_router.patch("/{user_id}/toggle-status", response_model=UserRead)
def toggle_user_status(
    user_id: uuid.UUID,
    principal: Principal = Depends(require_capability(Capability.MANAGE_USERS)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> UserRead:
    AuthorizationGuard.ensure_not_self(principal, user_id, "deactivate")
    user = user_service.toggle_status(db, user_id)
    activity.log_activity(
        principal.id,
        "activate" if user.is_active else "deactivate",
        "user",
        user.id,
        user.email,
        request_context=context,
    )
    return UserRead.model_validate(user)


@users_router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: uuid.UUID,
    principal: Principal = Depends(require_capability(Capability.MANAGE_USERS)),
    db: Session = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    context: RequestContext | None = Depends(get_request_context),
) -> Response:
    AuthorizationGuard.ensure_not_self(principal, user_id, "delete")
    email = user_service.delete_user(db, user_id)
    activity.log_activity(principal.id, "delete", "user", user_id, email, request_context=context)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
