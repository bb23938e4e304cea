"""Credentials - User registration and password verification.

Passwords are hashed with bcrypt and never stored or logged in plaintext.
"""

import logging
import threading
import uuid
from typing import Any

import bcrypt

from ..core.errors import DuplicateUsername, InvalidCredentials, InvalidInput, StorageFailure
from ..core.models import User
from ..core.records import WEIGHT, is_missing
from .record_store import RecordStore
from .storage import StorageBackend


logger = logging.getLogger(__name__)

# bcrypt ignores (or rejects) anything past 72 bytes
MAX_PASSWORD_BYTES = 72


def hash_password(password: str, rounds: int = 10) -> str:
    """Hash a password with a fresh salt.

    Args:
        password: The plaintext password
        rounds: bcrypt cost factor

    Returns:
        bcrypt hash string
    """
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plaintext password against a bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class CredentialStore:
    """Registers users and verifies their passwords.

    Registration is serialized in-process, and the backend insert is
    create-if-absent, so two racing registrations for one name cannot both
    succeed.
    """

    def __init__(
        self,
        backend: StorageBackend,
        records: RecordStore,
        bcrypt_rounds: int = 10,
    ) -> None:
        """Initialize credential store.

        Args:
            backend: Persistence backend holding user records
            records: Record store used to initialize new users' collections
            bcrypt_rounds: bcrypt cost factor for new hashes
        """
        self._backend = backend
        self._records = records
        self._rounds = bcrypt_rounds
        self._register_lock = threading.Lock()
        self._dummy_hash: str | None = None

    def _check_input(self, username: Any, password: Any) -> None:
        if is_missing(username) or is_missing(password):
            raise InvalidInput("Username and password required")
        if not isinstance(username, str) or not isinstance(password, str):
            raise InvalidInput("Username and password must be strings")

    def find_by_username(self, username: str) -> User | None:
        """Look up a user by exact (case-sensitive) username.

        Raises:
            StorageFailure: If the backend lookup fails
        """
        try:
            data = self._backend.find_user(username)
        except Exception as e:
            logger.error("Error fetching user: %s", str(e))
            raise StorageFailure() from e
        return User(**data) if data else None

    def register(self, username: str, password: str, email: str | None = None) -> User:
        """Register a new user.

        Also writes an empty weight collection for the new user. A failure
        there is logged only, since the account itself is already stored.

        Args:
            username: Unique login name
            password: Plaintext password (hashed before storage)
            email: Optional email address

        Returns:
            The created User

        Raises:
            InvalidInput: If username or password is empty
            DuplicateUsername: If the username is already registered
            StorageFailure: If the backend write fails
        """
        self._check_input(username, password)
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise InvalidInput("Password too long")

        logger.info("Registering new user: %s", username)
        if self.find_by_username(username) is not None:
            raise DuplicateUsername()

        user = User(
            id=uuid.uuid4().hex,
            username=username,
            email=email if isinstance(email, str) else "",
            password_hash=hash_password(password, self._rounds),
        )

        with self._register_lock:
            try:
                inserted = self._backend.insert_user(user.model_dump())
            except Exception as e:
                logger.error("Error writing user: %s", str(e))
                raise StorageFailure() from e
        if not inserted:
            logger.warning("Username already taken: %s", username)
            raise DuplicateUsername()

        try:
            self._records.write_all(user.id, WEIGHT, [])
        except StorageFailure:
            # The user exists now; a missing weight log already reads as empty.
            logger.warning("Could not initialize weight log for user: %s", user.id[:8])
        logger.info("User registered successfully: %s", user.id[:8])
        return user

    def verify(self, username: str, password: str) -> User:
        """Verify a username/password pair.

        Unknown usernames and wrong passwords raise the same error, and
        both run one bcrypt check so response timing does not tell them apart.

        Returns:
            The matching User

        Raises:
            InvalidInput: If username or password is empty
            InvalidCredentials: If the pair does not match a user
        """
        self._check_input(username, password)

        user = self.find_by_username(username)
        if user is None:
            verify_password(password, self._get_dummy_hash())
            logger.warning("Login failed")
            raise InvalidCredentials()

        if not verify_password(password, user.password_hash):
            logger.warning("Login failed")
            raise InvalidCredentials()

        logger.debug("Login succeeded for user: %s", user.id[:8])
        return user

    def _get_dummy_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = hash_password(uuid.uuid4().hex, self._rounds)
        return self._dummy_hash
