"""Tests for the store proxy FastAPI app."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from currents.config import Settings
from currents.store_proxy.app import create_app
from currents.store_proxy.storage import RowStorage, StorageError

AUTH = {"Authorization": "Bearer test-token"}


@pytest.fixture
def storage():
    return RowStorage()


@pytest.fixture
def client(storage):
    app = create_app(Settings(auth_token="test-token"), storage)
    return TestClient(app)


class TestHealth:
    """Tests for /health."""

    def test_healthy_without_auth(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "storage": "connected"}

    def test_unhealthy_storage(self, client, storage):
        with patch.object(storage, "health_check", return_value=False):
            response = client.get("/health")
        assert response.status_code == 503


class TestAuth:
    """Tests for bearer token checks."""

    def test_missing_token(self, client):
        response = client.get("/rows/chat_threads")
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or missing token"

    def test_wrong_token(self, client):
        response = client.get("/rows/chat_threads", headers={"Authorization": "Bearer no"})
        assert response.status_code == 401

    def test_open_when_no_token_configured(self, storage):
        client = TestClient(create_app(Settings(auth_token=None), storage))
        assert client.get("/rows/chat_threads").status_code == 200


class TestRows:
    """Tests for row endpoints."""

    def test_put_creates_then_updates(self, client):
        response = client.put(
            "/rows/chat_threads/t1", json={"id": "t1", "title": "A"}, headers=AUTH
        )
        assert response.status_code == 201

        response = client.put(
            "/rows/chat_threads/t1", json={"id": "t1", "title": "B"}, headers=AUTH
        )
        assert response.status_code == 200
        assert response.json()["row"] == {"id": "t1", "title": "B"}

    def test_get_row(self, client):
        client.put("/rows/chat_drafts/t1", json={"draft_text": "wip"}, headers=AUTH)

        response = client.get("/rows/chat_drafts/t1", headers=AUTH)
        assert response.status_code == 200
        assert response.json()["row"] == {"draft_text": "wip", "thread_id": "t1"}

    def test_get_missing_row(self, client):
        response = client.get("/rows/chat_drafts/none", headers=AUTH)
        assert response.status_code == 404

    def test_list_rows(self, client):
        for key in ("b", "a"):
            client.put(f"/rows/chat_messages/{key}", json={"id": key}, headers=AUTH)

        response = client.get("/rows/chat_messages", headers=AUTH)
        assert [row["id"] for row in response.json()["rows"]] == ["a", "b"]

    def test_patch(self, client):
        client.put("/rows/chat_messages/m1", json={"id": "m1", "content": "a"}, headers=AUTH)

        response = client.patch(
            "/rows/chat_messages/m1", json={"content": "b"}, headers=AUTH
        )
        assert response.status_code == 200
        assert response.json()["updated"] is True
        assert response.json()["row"]["content"] == "b"

    def test_patch_missing_row(self, client):
        response = client.patch(
            "/rows/chat_messages/none", json={"content": "b"}, headers=AUTH
        )
        assert response.status_code == 200
        assert response.json()["updated"] is False

    def test_delete_is_idempotent(self, client):
        client.put("/rows/chat_messages/m1", json={"id": "m1"}, headers=AUTH)

        assert client.delete("/rows/chat_messages/m1", headers=AUTH).status_code == 204
        assert client.delete("/rows/chat_messages/m1", headers=AUTH).status_code == 204
        assert client.get("/rows/chat_messages/m1", headers=AUTH).status_code == 404

    def test_unknown_collection(self, client):
        response = client.put("/rows/users/u1", json={"id": "u1"}, headers=AUTH)
        assert response.status_code == 404
        assert response.json()["error_code"] == "UNKNOWN_COLLECTION"

    def test_key_mismatch(self, client):
        response = client.put("/rows/chat_threads/t1", json={"id": "t2"}, headers=AUTH)
        assert response.status_code == 400
        assert response.json()["error_code"] == "KEY_MISMATCH"

    def test_storage_error(self, client, storage):
        with patch.object(storage, "list_rows", side_effect=StorageError("db down")):
            response = client.get("/rows/chat_threads", headers=AUTH)
        assert response.status_code == 500
        assert response.json()["error_code"] == "STORAGE_ERROR"
