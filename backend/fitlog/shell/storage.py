"""Storage Backends - Key-value persistence for users and collections.

This module handles all database I/O. Backends only move documents in and
out; locking, ordering and validation live in the stores built on top.
"""

import copy
import hashlib
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from google.api_core.exceptions import AlreadyExists
from google.cloud import firestore


logger = logging.getLogger(__name__)


def username_key(username: str) -> str:
    """Stable document id for a username.

    Usernames are free text and may contain characters that are not valid
    in a document path, so they are hashed before use as a key.
    """
    return hashlib.sha256(username.encode()).hexdigest()[:32]


class StorageBackend(Protocol):
    """What the credential and record stores need from persistence."""

    def load(self, user_id: str, name: str) -> Any | None:
        """Return the stored payload of a collection, or None if never written."""

    def save(self, user_id: str, name: str, data: Any) -> None:
        """Replace the stored payload of a collection."""

    def find_user(self, username: str) -> dict | None:
        """Return the user record registered under username, or None."""

    def insert_user(self, user: dict) -> bool:
        """Store a new user unless the username is taken. Returns False if taken."""


class MemoryBackend:
    """In-process backend. Payloads are deep-copied in and out."""

    def __init__(self) -> None:
        self._collections: dict[tuple[str, str], Any] = {}
        self._users: dict[str, dict] = {}
        self._usernames: dict[str, str] = {}
        self._lock = threading.Lock()

    def load(self, user_id: str, name: str) -> Any | None:
        with self._lock:
            data = self._collections.get((user_id, name))
        return copy.deepcopy(data)

    def save(self, user_id: str, name: str, data: Any) -> None:
        data = copy.deepcopy(data)
        with self._lock:
            self._collections[(user_id, name)] = data

    def find_user(self, username: str) -> dict | None:
        with self._lock:
            user_id = self._usernames.get(username)
            user = self._users.get(user_id) if user_id else None
        return copy.deepcopy(user)

    def insert_user(self, user: dict) -> bool:
        with self._lock:
            if user["username"] in self._usernames:
                return False
            self._usernames[user["username"]] = user["id"]
            self._users[user["id"]] = copy.deepcopy(user)
        return True


@dataclass
class FirestoreConfig:
    """Configuration for Firestore client.

    Attributes:
        project_id: GCP project ID (None for default)
        database: Firestore database name (None for default database)
    """

    project_id: str | None = None
    database: str | None = None


class FirestoreBackend:
    """Backend persisting users and collections to Firestore.

    Document structure:
        users/{user_id}: { id, username, email, password_hash, created_at }
        users/{user_id}/collections/{name}: { data, updated_at }
        usernames/{username_key}: { user_id, username }
    """

    def __init__(self, config: FirestoreConfig | None = None) -> None:
        """Initialize Firestore backend.

        Args:
            config: Firestore configuration
        """
        self.config = config or FirestoreConfig()
        self._client: firestore.Client | None = None

    @property
    def client(self) -> firestore.Client:
        """Lazy initialization of Firestore client."""
        if self._client is None:
            kwargs: dict[str, Any] = {}
            if self.config.project_id:
                kwargs["project"] = self.config.project_id
            if self.config.database:
                kwargs["database"] = self.config.database
            self._client = firestore.Client(**kwargs)
        return self._client

    def _user_ref(self, user_id: str) -> firestore.DocumentReference:
        """Get reference to user document."""
        return self.client.collection("users").document(user_id)

    def _collection_ref(self, user_id: str, name: str) -> firestore.DocumentReference:
        """Get reference to one of the user's collection documents."""
        return self._user_ref(user_id).collection("collections").document(name)

    def _username_ref(self, username: str) -> firestore.DocumentReference:
        """Get reference to the username reservation document."""
        return self.client.collection("usernames").document(username_key(username))

    # ==================== Collection Operations ====================

    def load(self, user_id: str, name: str) -> Any | None:
        logger.debug("Fetching %s for user: %s", name, user_id[:8])
        doc = self._collection_ref(user_id, name).get()
        if not doc.exists:
            return None
        return doc.to_dict().get("data")

    def save(self, user_id: str, name: str, data: Any) -> None:
        logger.debug("Saving %s for user: %s", name, user_id[:8])
        self._collection_ref(user_id, name).set({
            "data": data,
            "updated_at": datetime.now(timezone.utc),
        })

    # ==================== User Operations ====================

    def find_user(self, username: str) -> dict | None:
        doc = self._username_ref(username).get()
        if not doc.exists:
            return None
        user_id = doc.to_dict()["user_id"]
        user_doc = self._user_ref(user_id).get()
        if not user_doc.exists:
            logger.warning("Username reservation without user document: %s", user_id[:8])
            return None
        return user_doc.to_dict()

    def insert_user(self, user: dict) -> bool:
        # Both documents commit together; create() fails if the name is reserved.
        batch = self.client.batch()
        batch.create(
            self._username_ref(user["username"]),
            {"user_id": user["id"], "username": user["username"]},
        )
        batch.set(self._user_ref(user["id"]), user)
        try:
            batch.commit()
        except AlreadyExists:
            return False
        return True
