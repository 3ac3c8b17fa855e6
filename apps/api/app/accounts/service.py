from __future__ import annotations

import logging
import uuid
from datetime import timedelta

from fastapi import HTTPException, status
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from app.accounts.models import PasswordResetToken, User, UserSession
from app.accounts.schemas import RegisterRequest, UserBulkCreate, UserCreate, UserUpdate
from app.core.clock import as_utc, utcnow
from app.core.config import get_settings
from app.platform.security.credentials import (
    generate_reset_token,
    hash_password,
    hash_passwords,
    hash_reset_token,
    verify_against_dummy,
    verify_password,
    verify_reset_token,
)
from app.platform.security.errors import Forbidden, ResourceNotFound, Unauthenticated
from app.platform.security.roles import Role


logger = logging.getLogger("app.accounts")


def normalize_email(value: str) -> str:
    return value.strip().lower()


class AccountService:
    """Self-service identity flows: registration, login and password changes."""

    def register(self, session: Session, dto: RegisterRequest) -> User:
        email = normalize_email(str(dto.email))
        _ensure_email_available(session, email)
        user = User(
            email=email,
            password_hash=hash_password(dto.password),
            first_name=dto.first_name,
            last_name=dto.last_name,
            phone=dto.phone,
            company=dto.company,
            role=Role.CLIENT.value,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    def authenticate(self, session: Session, email: str, password: str) -> User:
        user = find_user_by_email(session, email)
        if user is None or not user.password_hash:
            verify_against_dummy(password)
            raise Unauthenticated("Invalid email or password")
        if not verify_password(user.password_hash, password):
            raise Unauthenticated("Invalid email or password")
        if not user.is_active:
            raise Forbidden("Account is deactivated")
        return user

    def change_password(self, session: Session, user_id: uuid.UUID, current_password: str, new_password: str) -> User:
        user = session.get(User, user_id)
        if user is None:
            raise Unauthenticated()
        if not verify_password(user.password_hash, current_password):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")
        user.password_hash = hash_password(new_password)
        session.commit()
        return user

    def request_password_reset(self, session: Session, email: str) -> str | None:
        """Store a hashed single-use token and return the plaintext for delivery.

        Returns ``None`` for unknown or inactive accounts; the HTTP layer
        answers identically in both cases.
        """

        user = find_user_by_email(session, email)
        if user is None or not user.is_active:
            return None
        token = generate_reset_token()
        ttl = timedelta(minutes=get_settings().password_reset_ttl_minutes)
        session.execute(
            delete(PasswordResetToken).where(
                PasswordResetToken.user_id == user.id,
                PasswordResetToken.used_at.is_(None),
            )
        )
        session.add(PasswordResetToken(user_id=user.id, token_hash=hash_reset_token(token), expires_at=utcnow() + ttl))
        session.commit()
        return token

    def confirm_password_reset(self, session: Session, email: str, token: str, new_password: str) -> User:
        invalid = HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Reset token is invalid or has expired")
        user = find_user_by_email(session, email)
        if user is None or not user.is_active:
            raise invalid

        now = utcnow()
        candidates = session.scalars(
            select(PasswordResetToken).where(
                PasswordResetToken.user_id == user.id,
                PasswordResetToken.used_at.is_(None),
            )
        ).all()
        match = next(
            (
                item
                for item in candidates
                if as_utc(item.expires_at) > now and verify_reset_token(item.token_hash, token)
            ),
            None,
        )
        if match is None:
            raise invalid

        match.used_at = now
        user.password_hash = hash_password(new_password)
        session.execute(delete(UserSession).where(UserSession.user_id == user.id))
        session.commit()
        return user


class UserService:
    def list_users(self, session: Session, *, role: Role | None = None) -> list[User]:
        stmt = select(User).order_by(User.created_at.desc())
        if role is not None:
            stmt = stmt.where(User.role == role.value)
        return list(session.scalars(stmt).all())

    def get_user(self, session: Session, user_id: uuid.UUID) -> User:
        user = session.get(User, user_id)
        if user is None:
            raise ResourceNotFound("User")
        return user

    def create_user(self, session: Session, dto: UserCreate) -> User:
        email = normalize_email(str(dto.email))
        _ensure_email_available(session, email)
        user = self._build_user(dto, email, hash_password(dto.password))
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    def bulk_create(self, session: Session, dto: UserBulkCreate) -> list[User]:
        emails = [normalize_email(str(item.email)) for item in dto.users]
        duplicates = sorted({email for email in emails if emails.count(email) > 1})
        if duplicates:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"message": "Duplicate emails in request", "emails": duplicates},
            )
        for email in emails:
            _ensure_email_available(session, email)

        hashes = hash_passwords(item.password for item in dto.users)
        users = [self._build_user(item, email, password_hash) for item, email, password_hash in zip(dto.users, emails, hashes)]
        session.add_all(users)
        session.commit()
        for user in users:
            session.refresh(user)
        return users

    def update_user(self, session: Session, user_id: uuid.UUID, dto: UserUpdate) -> User:
        user = self.get_user(session, user_id)
        changes = dto.model_dump(exclude_unset=True)
        if "email" in changes and changes["email"] is not None:
            email = normalize_email(str(changes["email"]))
            if email != user.email:
                _ensure_email_available(session, email)
            changes["email"] = email
        if changes.get("role") is not None:
            changes["role"] = Role(changes["role"]).value
        for field_name, value in changes.items():
            if value is None and field_name in {"email", "role"}:
                continue
            setattr(user, field_name, value)
        session.commit()
        session.refresh(user)
        return user

    def toggle_status(self, session: Session, user_id: uuid.UUID) -> User:
        user = self.get_user(session, user_id)
        user.is_active = not user.is_active
        if not user.is_active:
            session.execute(delete(UserSession).where(UserSession.user_id == user.id))
        session.commit()
        session.refresh(user)
        return user

    def delete_user(self, session: Session, user_id: uuid.UUID) -> str:
        """Delete the account and return its email for the activity entry."""

        user = self.get_user(session, user_id)
        email = user.email
        session.execute(delete(UserSession).where(UserSession.user_id == user.id))
        session.execute(delete(PasswordResetToken).where(PasswordResetToken.user_id == user.id))
        session.delete(user)
        session.commit()
        return email

    @staticmethod
    def _build_user(dto: UserCreate, email: str, password_hash: str) -> User:
        return User(
            email=email,
            password_hash=password_hash,
            first_name=dto.first_name,
            last_name=dto.last_name,
            role=dto.role.value,
            phone=dto.phone,
            company=dto.company,
        )


def find_user_by_email(session: Session, email: str) -> User | None:
    return session.scalar(select(User).where(func.lower(User.email) == normalize_email(email)))


def _ensure_email_available(session: Session, email: str) -> None:
    if find_user_by_email(session, email) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")


account_service = AccountService()
user_service = UserService()
