"""Tests for storage backends. Firestore is mocked."""

from unittest.mock import MagicMock, patch

import pytest
from google.api_core.exceptions import AlreadyExists

from fitlog.shell.storage import (
    FirestoreBackend,
    FirestoreConfig,
    MemoryBackend,
    username_key,
)


USER = {
    "id": "0123456789abcdef0123456789abcdef",
    "username": "alice",
    "email": "",
    "password_hash": "$2b$04$hash",
}


@pytest.fixture
def mock_firestore():
    """Mock Firestore client for testing."""
    with patch("fitlog.shell.storage.firestore") as mock_fs:
        mock_client = MagicMock()
        mock_fs.Client.return_value = mock_client
        yield mock_fs, mock_client


class TestUsernameKey:
    """Tests for username_key."""

    def test_deterministic(self):
        assert username_key("alice") == username_key("alice")

    def test_case_sensitive(self):
        assert username_key("alice") != username_key("Alice")

    def test_path_safe(self):
        """Slashes in usernames never reach the document path."""
        key = username_key("a/b/c")
        assert len(key) == 32
        assert all(c in "0123456789abcdef" for c in key)


class TestMemoryBackend:
    """Tests for MemoryBackend."""

    def test_load_missing(self):
        assert MemoryBackend().load(USER["id"], "weight") is None

    def test_save_copies(self):
        """Mutating a saved or loaded payload does not change storage."""
        backend = MemoryBackend()
        data = [{"id": 1}]
        backend.save(USER["id"], "weight", data)
        data.append({"id": 2})
        loaded = backend.load(USER["id"], "weight")
        loaded.append({"id": 3})
        assert backend.load(USER["id"], "weight") == [{"id": 1}]

    def test_insert_user_once(self):
        backend = MemoryBackend()
        assert backend.insert_user(dict(USER)) is True
        assert backend.insert_user(dict(USER, id="f" * 32)) is False
        assert backend.find_user("alice")["id"] == USER["id"]


class TestFirestoreBackend:
    """Tests for FirestoreBackend."""

    def test_lazy_client_with_config(self, mock_firestore):
        """Client is created once with project and database."""
        mock_fs, _ = mock_firestore
        backend = FirestoreBackend(FirestoreConfig(project_id="proj", database="fitlog"))
        mock_fs.Client.assert_not_called()
        backend.client
        backend.client
        mock_fs.Client.assert_called_once_with(project="proj", database="fitlog")

    def test_load_missing_document(self, mock_firestore):
        _, client = mock_firestore
        doc = client.collection.return_value.document.return_value \
            .collection.return_value.document.return_value.get.return_value
        doc.exists = False
        assert FirestoreBackend().load(USER["id"], "weight") is None

    def test_load_existing_document(self, mock_firestore):
        _, client = mock_firestore
        doc = client.collection.return_value.document.return_value \
            .collection.return_value.document.return_value.get.return_value
        doc.exists = True
        doc.to_dict.return_value = {"data": [{"id": 1}]}
        assert FirestoreBackend().load(USER["id"], "weight") == [{"id": 1}]

    def test_save_sets_document(self, mock_firestore):
        """Collections live under users/{id}/collections/{name}."""
        _, client = mock_firestore
        FirestoreBackend().save(USER["id"], "weight", [])

        client.collection.assert_called_with("users")
        client.collection.return_value.document.assert_called_with(USER["id"])
        user_doc = client.collection.return_value.document.return_value
        user_doc.collection.assert_called_with("collections")
        user_doc.collection.return_value.document.assert_called_with("weight")
        stored = user_doc.collection.return_value.document.return_value.set.call_args[0][0]
        assert stored["data"] == []
        assert "updated_at" in stored

    def test_insert_user_commits_batch(self, mock_firestore):
        _, client = mock_firestore
        batch = client.batch.return_value
        assert FirestoreBackend().insert_user(dict(USER)) is True
        batch.create.assert_called_once()
        batch.set.assert_called_once()
        batch.commit.assert_called_once()

    def test_insert_user_taken(self, mock_firestore):
        """A reserved username makes the batch fail with AlreadyExists."""
        _, client = mock_firestore
        client.batch.return_value.commit.side_effect = AlreadyExists("taken")
        assert FirestoreBackend().insert_user(dict(USER)) is False

    def test_find_unknown_user(self, mock_firestore):
        _, client = mock_firestore
        client.collection.return_value.document.return_value.get.return_value.exists = False
        assert FirestoreBackend().find_user("alice") is None

    def test_find_known_user(self, mock_firestore):
        _, client = mock_firestore
        doc = client.collection.return_value.document.return_value.get.return_value
        doc.exists = True
        doc.to_dict.side_effect = [{"user_id": USER["id"], "username": "alice"}, dict(USER)]
        assert FirestoreBackend().find_user("alice") == USER
