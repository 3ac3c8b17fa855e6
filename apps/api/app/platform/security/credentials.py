from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Iterable
from functools import lru_cache

from argon2 import PasswordHasher, Type
from argon2 import exceptions as argon2_exceptions

from app.core.config import get_settings
from app.platform.security.errors import HashingError


logger = logging.getLogger("app.security")

RESET_TOKEN_BYTES = 32

_semaphore_lock = threading.Lock()
_semaphore: threading.BoundedSemaphore | None = None


@lru_cache
def _hasher() -> PasswordHasher:
    settings = get_settings()
    return PasswordHasher(
        time_cost=settings.password_hash_time_cost,
        memory_cost=settings.password_hash_memory_cost_kib,
        parallelism=settings.password_hash_parallelism,
        type=Type.ID,
    )


@lru_cache
def _dummy_hash() -> str:
    return _hasher().hash(secrets.token_hex(16))


def _hash_slots() -> threading.BoundedSemaphore:
    global _semaphore
    with _semaphore_lock:
        if _semaphore is None:
            _semaphore = threading.BoundedSemaphore(max(1, get_settings().password_hash_max_concurrency))
        return _semaphore


def reset_credential_state() -> None:
    """Drop the cached hasher and semaphore so new settings take effect."""

    global _semaphore
    _hasher.cache_clear()
    _dummy_hash.cache_clear()
    with _semaphore_lock:
        _semaphore = None


def hash_password(plaintext: str) -> str:
    """Return an Argon2id PHC string for ``plaintext``.

    Each call holds one of a small number of process-wide slots, so a burst of
    logins cannot allocate more than ``password_hash_max_concurrency`` times the
    configured memory cost at once.
    """

    with _hash_slots():
        try:
            return _hasher().hash(plaintext)
        except (argon2_exceptions.HashingError, MemoryError) as exc:
            logger.error("password_hash_failed", extra={"error": type(exc).__name__})
            raise HashingError("password hashing failed") from exc


def verify_password(stored_hash: str | None, plaintext: str) -> bool:
    if not stored_hash:
        return False
    with _hash_slots():
        try:
            return _hasher().verify(stored_hash, plaintext)
        except argon2_exceptions.VerifyMismatchError:
            return False
        except (argon2_exceptions.VerificationError, argon2_exceptions.InvalidHashError):
            logger.warning("password_hash_unreadable")
            return False


def verify_against_dummy(plaintext: str) -> bool:
    """Spend one verification on a throwaway hash so unknown accounts cost the same as known ones."""

    verify_password(_dummy_hash(), plaintext)
    return False


def hash_passwords(plaintexts: Iterable[str]) -> list[str]:
    # One at a time; bulk flows never hold more than a single slot.
    return [hash_password(item) for item in plaintexts]


def generate_reset_token() -> str:
    return secrets.token_hex(RESET_TOKEN_BYTES)


def hash_reset_token(token: str) -> str:
    return hash_password(token)


def verify_reset_token(stored_hash: str | None, token: str) -> bool:
    return verify_password(stored_hash, token)
