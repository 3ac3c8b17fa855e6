from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field

from app.platform.security.roles import Role


PASSWORD_POLICY_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")
PASSWORD_POLICY_MESSAGE = (
    "Password must be at least 8 characters and include upper and lower case letters, "
    "a number and a special character (@$!%*?&)"
)


def _check_password_policy(value: str) -> str:
    if not PASSWORD_POLICY_RE.match(value):
        raise ValueError(PASSWORD_POLICY_MESSAGE)
    return value


PolicyPassword = Annotated[str, Field(max_length=128), AfterValidator(_check_password_policy)]


class RegisterRequest(BaseModel):
    email: EmailStr
    password: PolicyPassword
    first_name: str | None = Field(default=None, max_length=128)
    last_name: str | None = Field(default=None, max_length=128)
    phone: str | None = Field(default=None, max_length=64)
    company: str | None = Field(default=None, max_length=255)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: PolicyPassword


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    email: EmailStr
    token: str = Field(min_length=64, max_length=64)
    new_password: PolicyPassword


class MessageResponse(BaseModel):
    message: str


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    first_name: str | None
    last_name: str | None
    role: Role
    phone: str | None
    company: str | None
    is_active: bool
    created_at: datetime


class UserCreate(BaseModel):
    email: EmailStr
    password: PolicyPassword
    first_name: str | None = Field(default=None, max_length=128)
    last_name: str | None = Field(default=None, max_length=128)
    role: Role = Role.CLIENT
    phone: str | None = Field(default=None, max_length=64)
    company: str | None = Field(default=None, max_length=255)


class UserBulkCreate(BaseModel):
    users: list[UserCreate] = Field(min_length=1, max_length=100)


class UserUpdate(BaseModel):
    email: EmailStr | None = None
    first_name: str | None = Field(default=None, max_length=128)
    last_name: str | None = Field(default=None, max_length=128)
    role: Role | None = None
    phone: str | None = Field(default=None, max_length=64)
    company: str | None = Field(default=None, max_length=255)
