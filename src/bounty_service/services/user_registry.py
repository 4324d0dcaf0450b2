"""Worker registration, credentials and payout addresses."""

from __future__ import annotations

import base64
import os
import uuid
from typing import TYPE_CHECKING, Any

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from bounty_service.addresses import require_address
from bounty_service.amounts import ZERO
from bounty_service.core.exceptions import ServiceError
from bounty_service.logging import get_logger
from bounty_service.services.entity_store import DuplicateUsernameError
from bounty_service.timestamps import now_iso

if TYPE_CHECKING:
    from bounty_service.services.entity_store import EntityStore

MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 64
MIN_PASSWORD_LENGTH = 6

_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1
_KEY_LENGTH = 32
_SALT_LENGTH = 16


def _kdf(salt: bytes) -> Scrypt:
    return Scrypt(salt=salt, length=_KEY_LENGTH, n=_SCRYPT_N, r=_SCRYPT_R, p=_SCRYPT_P)


def hash_password(password: str) -> str:
    """Derive a storable scrypt hash: ``scrypt$<salt>$<key>`` (base64)."""
    salt = os.urandom(_SALT_LENGTH)
    key = _kdf(salt).derive(password.encode("utf-8"))
    return "scrypt${}${}".format(
        base64.b64encode(salt).decode("ascii"),
        base64.b64encode(key).decode("ascii"),
    )


def verify_password(password: str, stored_hash: str) -> bool:
    """Check a password against a stored scrypt hash."""
    try:
        scheme, salt_b64, key_b64 = stored_hash.split("$")
    except ValueError:
        return False
    if scheme != "scrypt":
        return False
    try:
        _kdf(base64.b64decode(salt_b64)).verify(
            password.encode("utf-8"), base64.b64decode(key_b64)
        )
    except InvalidKey:
        return False
    return True


def public_user(user: dict[str, Any]) -> dict[str, Any]:
    """User fields safe to return over the API."""
    return {key: value for key, value in user.items() if key != "password_hash"}


class UserRegistry:
    """Registers workers and manages their payout addresses."""

    def __init__(self, store: EntityStore) -> None:
        self._store = store
        self._logger = get_logger(__name__)

    def register(self, data: dict[str, Any]) -> dict[str, Any]:
        """Create a worker account."""
        username = data.get("username")
        password = data.get("password")
        wallet_address = data.get("wallet_address")

        if (
            not isinstance(username, str)
            or not MIN_USERNAME_LENGTH <= len(username.strip()) <= MAX_USERNAME_LENGTH
        ):
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"username must be {MIN_USERNAME_LENGTH}-{MAX_USERNAME_LENGTH} characters",
                400,
                {"field": "username"},
            )
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"password must be at least {MIN_PASSWORD_LENGTH} characters",
                400,
                {"field": "password"},
            )
        if wallet_address is not None:
            wallet_address = require_address(wallet_address)

        user = {
            "user_id": f"u-{uuid.uuid4()}",
            "username": username.strip(),
            "password_hash": hash_password(password),
            "wallet_address": wallet_address,
            "total_earnings": ZERO,
            "tasks_completed": 0,
            "created_at": now_iso(),
        }
        try:
            self._store.insert_user(user)
        except DuplicateUsernameError as exc:
            raise ServiceError(
                "USERNAME_TAKEN",
                "Username is already taken",
                409,
                {"username": user["username"]},
            ) from exc

        self._logger.info("User registered", extra={"user_id": user["user_id"]})
        return self.get_user(user["user_id"])

    def authenticate(self, data: dict[str, Any]) -> dict[str, Any]:
        """Return the public user for a matching username and password."""
        username = data.get("username")
        password = data.get("password")
        if not isinstance(username, str) or not isinstance(password, str):
            raise ServiceError(
                "INVALID_PAYLOAD", "username and password are required", 400, {}
            )

        user = self._store.get_user_by_username(username.strip())
        if user is None or not verify_password(password, user["password_hash"]):
            raise ServiceError("INVALID_CREDENTIALS", "Invalid username or password", 401, {})
        return public_user(user)

    def get_user(self, user_id: str) -> dict[str, Any]:
        """Fetch a public user profile or raise USER_NOT_FOUND."""
        user = self._store.get_user(user_id)
        if user is None:
            raise ServiceError("USER_NOT_FOUND", "User not found", 404, {"user_id": user_id})
        return public_user(user)

    def set_wallet_address(self, user_id: str, wallet_address: object) -> dict[str, Any]:
        """Set or replace a worker's payout address."""
        address = require_address(wallet_address)
        self.get_user(user_id)
        self._store.update_user_wallet(user_id, address)
        self._logger.info("Payout address updated", extra={"user_id": user_id})
        return self.get_user(user_id)

    def count_users(self) -> int:
        """Number of registered workers."""
        return self._store.count_users()
