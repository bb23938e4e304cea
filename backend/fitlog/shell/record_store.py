"""Record Store - Per-user ordered collections with per-key locking.

Every read-modify-write on a (user_id, collection) pair runs under that
pair's lock, so concurrent requests for the same user never lose updates
and never observe half-written collections.
"""

import logging
import re
import threading
import time
import weakref
from typing import Any, Callable, TypeVar

from pydantic import BaseModel, ValidationError

from ..core.errors import NotFound, StorageFailure
from ..core.records import Collection, next_record_id, sort_records
from .storage import StorageBackend


logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)

USER_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class RecordStore:
    """Generic store for per-user collections on top of a backend.

    Sequences are stored as lists of camelCase dicts; singleton
    collections (settings) as a single dict.
    """

    def __init__(self, backend: StorageBackend, clock: Callable[[], int] = _now_ms) -> None:
        """Initialize record store.

        Args:
            backend: Persistence backend
            clock: Returns current time in epoch milliseconds (for record ids)
        """
        self._backend = backend
        self._clock = clock
        self._locks: weakref.WeakValueDictionary[tuple[str, str], threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

    def lock_for(self, user_id: str, collection: Collection) -> threading.Lock:
        """Return the mutual-exclusion lock for one (user, collection) pair.

        Locks are dropped once no caller holds them, so the table only
        grows with the number of pairs in use.
        """
        key = (user_id, collection.name)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    # ==================== Raw I/O ====================

    def _check_user_id(self, user_id: str) -> None:
        if not isinstance(user_id, str) or not USER_ID_PATTERN.match(user_id):
            logger.error("Rejected malformed user id: %r", user_id)
            raise StorageFailure()

    def _load(self, user_id: str, collection: Collection) -> Any | None:
        try:
            return self._backend.load(user_id, collection.name)
        except Exception as e:
            logger.error(
                "Failed to read %s for user %s: %s", collection.name, user_id[:8], str(e)
            )
            raise StorageFailure() from e

    def _save(self, user_id: str, collection: Collection, data: Any) -> None:
        try:
            self._backend.save(user_id, collection.name, data)
        except Exception as e:
            logger.error(
                "Failed to write %s for user %s: %s", collection.name, user_id[:8], str(e)
            )
            raise StorageFailure() from e

    def _load_records(self, user_id: str, collection: Collection) -> list:
        data = self._load(user_id, collection)
        if data is None:
            return []
        try:
            return [collection.model.model_validate(item) for item in data]
        except (TypeError, ValidationError) as e:
            logger.error(
                "Corrupt %s collection for user %s: %s", collection.name, user_id[:8], str(e)
            )
            raise StorageFailure() from e

    def _save_records(self, user_id: str, collection: Collection, records: list) -> None:
        self._save(user_id, collection, [r.model_dump(mode="json", by_alias=True) for r in records])

    # ==================== Sequence Operations ====================

    def read_all(self, user_id: str, collection: Collection) -> list:
        """Read a user's collection.

        A collection that was never written, or cannot be read, comes back
        empty. Failures are logged, not raised.

        Args:
            user_id: The user's ID
            collection: Which collection to read

        Returns:
            Records in stored order
        """
        self._check_user_id(user_id)
        with self.lock_for(user_id, collection):
            try:
                return self._load_records(user_id, collection)
            except StorageFailure:
                return []

    def write_all(self, user_id: str, collection: Collection, records: list) -> list:
        """Replace a user's whole collection.

        Records without an id, or repeating an id seen earlier in the list,
        get a fresh one; the result is stored in collection order.

        Args:
            user_id: The user's ID
            collection: Which collection to replace
            records: The new contents

        Returns:
            The stored records

        Raises:
            StorageFailure: If the backend write fails
        """
        self._check_user_id(user_id)
        with self.lock_for(user_id, collection):
            taken = [r.id for r in records if r.id is not None]
            seen: set[int] = set()
            assigned: list = []
            for record in records:
                # Missing and repeated ids both get a fresh one.
                if record.id is None or record.id in seen:
                    new_id = next_record_id(taken, self._clock())
                    taken.append(new_id)
                    record = record.model_copy(update={"id": new_id})
                seen.add(record.id)
                assigned.append(record)
            ordered = sort_records(assigned, collection.descending)
            self._save_records(user_id, collection, ordered)
            logger.info(
                "Replaced %s for user %s (%d records)", collection.name, user_id[:8], len(ordered)
            )
            return ordered

    def append(self, user_id: str, collection: Collection, record: R) -> tuple[R, list]:
        """Insert one record and persist the re-sorted collection.

        Args:
            user_id: The user's ID
            collection: Target collection
            record: Record to insert; its id is assigned here

        Returns:
            Tuple of (stored record, updated collection)

        Raises:
            StorageFailure: If the collection cannot be read or written
        """
        self._check_user_id(user_id)
        with self.lock_for(user_id, collection):
            records = self._load_records(user_id, collection)
            new_id = next_record_id((r.id for r in records), self._clock())
            stored = record.model_copy(update={"id": new_id})
            records.append(stored)
            records = sort_records(records, collection.descending)
            self._save_records(user_id, collection, records)
            logger.info("Added %s record %d for user %s", collection.name, new_id, user_id[:8])
            return stored, records

    def remove_by_id(self, user_id: str, collection: Collection, record_id: int) -> list:
        """Remove exactly one record by id.

        Args:
            user_id: The user's ID
            collection: Target collection
            record_id: ID of the record to remove

        Returns:
            Updated collection

        Raises:
            NotFound: If no record has that id (nothing is written)
            StorageFailure: If the collection cannot be read or written
        """
        self._check_user_id(user_id)
        with self.lock_for(user_id, collection):
            records = self._load_records(user_id, collection)
            for index, record in enumerate(records):
                if record.id == record_id:
                    del records[index]
                    break
            else:
                logger.warning("Entry not found: %s/%s", collection.name, record_id)
                raise NotFound()

            self._save_records(user_id, collection, records)
            logger.info("Deleted %s record %d for user %s", collection.name, record_id, user_id[:8])
            return records

    # ==================== Singleton Operations ====================

    def read_one(self, user_id: str, collection: Collection) -> BaseModel | None:
        """Read a singleton record. Unset or unreadable yields None."""
        self._check_user_id(user_id)
        with self.lock_for(user_id, collection):
            try:
                data = self._load(user_id, collection)
                if data is None:
                    return None
                return collection.model.model_validate(data)
            except (StorageFailure, ValidationError) as e:
                logger.warning("Falling back to defaults for %s: %s", collection.name, str(e))
                return None

    def update_one(
        self,
        user_id: str,
        collection: Collection,
        update: Callable[[BaseModel], BaseModel],
    ) -> BaseModel:
        """Read-modify-write a singleton record.

        Args:
            user_id: The user's ID
            collection: Target singleton collection
            update: Maps the current record (defaults if unset) to the new one

        Returns:
            The stored record

        Raises:
            StorageFailure: If the record cannot be read or written
        """
        self._check_user_id(user_id)
        with self.lock_for(user_id, collection):
            data = self._load(user_id, collection)
            try:
                current = collection.model.model_validate(data) if data is not None else collection.model()
            except ValidationError as e:
                raise StorageFailure() from e
            new = update(current)
            self._save(user_id, collection, new.model_dump(mode="json", by_alias=True))
            logger.info("Saved %s for user %s", collection.name, user_id[:8])
            return new
