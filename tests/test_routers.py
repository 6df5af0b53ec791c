# =============================================================================
# tests/test_routers.py - API Endpoint Tests
# =============================================================================
# This module contains tests for:
# - Authentication on every route (401 without a bearer token)
# - Studio endpoints and the StudioResponse envelope
# - Upload batch endpoints: create, retry, remove, hand-off
# - The upload WebSocket
#
# Dependencies are replaced through app.dependency_overrides with the
# in-memory fakes; no Supabase or OpenAI calls are made.
# =============================================================================

import time
import uuid
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from starlette.websockets import WebSocketDisconnect

from app.auth import AuthUser, get_current_user
from app.config import settings
from app.dependencies import get_item_service, get_orchestrator, get_registry
from app.exceptions import ProjectAccessDeniedError
from app.main import app
from core.models.item import InventoryItem
from studio.orchestrator import GenerationOrchestrator
from studio.storage_writer import StorageFallbackWriter
from studio.uploads import UploadRegistry
from tests.fakes import FakeFetcher, FakeInference, FakeStorage

USER_ID = uuid.UUID("11111111-2222-3333-4444-555555555555")
ITEM_ID = "550e8400-e29b-41d4-a716-446655440000"


def make_token(sub=str(USER_ID), secret=None):
    return jwt.encode(
        {"sub": sub, "aud": "authenticated", "email": "tester@example.com"},
        secret or settings.SUPABASE_JWT_SECRET,
        algorithm="HS256",
    )


class StubItemService:
    """Item store stand-in: one item, optional access denial."""

    def __init__(self, photos=None, deny=False):
        self.item = InventoryItem(
            id=ITEM_ID,
            project_id="project-1",
            product_name="Harbour at dusk",
            photos=photos if photos is not None else ["https://cdn.test/p1.jpg", "https://cdn.test/p2.jpg"],
        )
        self.deny = deny
        self.applied = []

    async def get_item_for_member(self, item_id, user_id, columns=None):
        if self.deny:
            raise ProjectAccessDeniedError(self.item.project_id)
        return self.item

    async def apply_generation(self, request, user_id):
        self.applied.append((request, user_id))
        return {"id": str(request.item_id), "photos": self.item.photos + request.image_urls}


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def registry(storage, fast_invoker):
    return UploadRegistry(StorageFallbackWriter(storage=storage, invoker=fast_invoker))


@pytest.fixture
def inference():
    return FakeInference()


@pytest.fixture
def items():
    return StubItemService()


@pytest.fixture
def client(fast_settings, fast_invoker, writer, inference, items, registry):
    orchestrator = GenerationOrchestrator(
        inference=inference,
        writer=writer,
        fetcher=FakeFetcher(),
        invoker=fast_invoker,
        config=fast_settings,
    )
    user = AuthUser(id=USER_ID, email="tester@example.com", token="test-bearer-token")

    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_item_service] = lambda: items
    app.dependency_overrides[get_registry] = lambda: registry

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# Health
# =============================================================================

class TestHealth:
    """Test health endpoints."""

    def test_health(self, client):
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready_degrades_when_database_is_down(self, client):
        with patch("app.routers.health.SupabaseClient") as mock_client:
            mock_client.get_client.side_effect = RuntimeError("connection refused")
            response = client.get("/api/v1/health/ready")

        body = response.json()
        assert body["status"] == "degraded"
        assert body["checks"]["database"].startswith("unhealthy")


# =============================================================================
# Authentication
# =============================================================================

class TestAuthentication:
    """Routes reject requests without a valid bearer token."""

    @pytest.fixture
    def anon_client(self, client):
        app.dependency_overrides.pop(get_current_user, None)
        return client

    def test_missing_token_is_401(self, anon_client):
        response = anon_client.post("/api/v1/studio/generate", json={"item_id": ITEM_ID})

        assert response.status_code == 401
        assert response.json()["code"] == "AUTH_ERROR"

    def test_invalid_token_is_401(self, anon_client):
        response = anon_client.post(
            "/api/v1/studio/generate",
            json={"item_id": ITEM_ID},
            headers={"Authorization": f"Bearer {make_token(secret='wrong-secret-wrong-secret')}"},
        )
        assert response.status_code == 401

    def test_valid_token(self, anon_client):
        response = anon_client.post(
            "/api/v1/studio/generate-listing",
            json={"item_id": ITEM_ID},
            headers={"Authorization": f"Bearer {make_token()}"},
        )
        assert response.status_code == 200
        assert response.json()["success"] is True


# =============================================================================
# Studio Endpoints
# =============================================================================

class TestStudioEndpoints:
    """Test the generation envelope over HTTP."""

    def test_generate_uses_item_photos(self, client, inference):
        response = client.post("/api/v1/studio/generate", json={"item_id": ITEM_ID})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["partial"] is False
        assert len(body["result"]["images"]) == 2
        assert body["result"]["text_mode"] == "augmented"
        assert inference.calls.count("image") == 2

    def test_max_count_limits_sources(self, client):
        response = client.post("/api/v1/studio/generate-images", json={"item_id": ITEM_ID, "max_count": 1})

        outcomes = response.json()["result"]["image_outcomes"]
        assert [o["source_ref"] for o in outcomes] == ["https://cdn.test/p1.jpg"]

    def test_generate_listing_only(self, client, inference):
        response = client.post("/api/v1/studio/generate-listing", json={"item_id": ITEM_ID})

        body = response.json()
        assert body["result"]["images"] == []
        assert body["result"]["title"]
        assert "image" not in inference.calls

    def test_generate_single_image(self, client):
        response = client.post(
            "/api/v1/studio/generate-image",
            json={"item_id": ITEM_ID, "source_ref": "https://cdn.test/other.jpg"},
        )

        outcomes = response.json()["result"]["image_outcomes"]
        assert [o["source_ref"] for o in outcomes] == ["https://cdn.test/other.jpg"]

    def test_no_photos_is_validation_envelope(self, client, items):
        items.item.photos = []

        response = client.post("/api/v1/studio/generate-images", json={"item_id": ITEM_ID})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "VALIDATION_ERROR"

    def test_access_denied(self, client, items):
        items.deny = True

        response = client.post("/api/v1/studio/generate", json={"item_id": ITEM_ID})

        assert response.status_code == 403
        assert response.json()["code"] == "PROJECT_ACCESS_DENIED"

    @pytest.mark.parametrize("path,body", [
        ("/api/v1/studio/generate", {"item_id": "not-a-uuid"}),
        ("/api/v1/studio/generate-image", {"item_id": "42", "source_ref": "https://cdn.test/p1.jpg"}),
        ("/api/v1/studio/apply", {"item_id": "item-1"}),
    ])
    def test_malformed_item_id_is_422(self, client, items, path, body):
        response = client.post(path, json=body)

        assert response.status_code == 422
        assert response.json()["detail"][0]["loc"] == ["body", "item_id"]
        assert items.applied == []

    def test_apply(self, client, items):
        response = client.post(
            "/api/v1/studio/apply",
            json={"item_id": ITEM_ID, "image_urls": ["https://cdn.test/ai/x.png"], "listing_title": "T"},
        )

        assert response.status_code == 200
        assert response.json()["item"]["photos"][-1] == "https://cdn.test/ai/x.png"
        request, user_id = items.applied[0]
        assert user_id == str(USER_ID)
        assert request.listing_title == "T"


# =============================================================================
# Upload Endpoints
# =============================================================================

def photo_files(*names):
    return [("files", (name, b"jpeg-bytes", "image/jpeg")) for name in names]


def wait_until_ready(client, batch_id, timeout=5.0):
    """Poll the batch until no upload is running."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        state = client.get(f"/api/v1/uploads/batches/{batch_id}").json()
        if state["ready"]:
            return state
        time.sleep(0.02)
    raise AssertionError(f"batch {batch_id} still uploading after {timeout}s")


class TestUploadEndpoints:
    """Test batch lifecycle over HTTP."""

    def test_create_and_handoff(self, client):
        response = client.post("/api/v1/uploads/batches", files=photo_files("a.jpg", "b.jpg"))

        assert response.status_code == 202
        batch = response.json()
        assert batch["submitted"] == 2

        handoff = client.post(f"/api/v1/uploads/batches/{batch['batch_id']}/handoff", params={"wait": 5})

        assert handoff.status_code == 200
        refs = handoff.json()["refs"]
        assert len(refs) == 2
        assert all(ref.startswith(f"https://cdn.test/uploads/{USER_ID}/") for ref in refs)

    def test_handoff_releases_batch(self, client, registry, storage):
        storage.fail_times = 3
        batch = client.post("/api/v1/uploads/batches", files=photo_files("a.jpg")).json()
        batch_id = batch["batch_id"]
        assert wait_until_ready(client, batch_id)["failed"] == 1

        handoff = client.post(f"/api/v1/uploads/batches/{batch_id}/handoff")

        assert handoff.status_code == 200
        assert handoff.json()["refs"] == []
        assert len(registry) == 0
        assert registry.get(batch_id) is None
        assert client.get(f"/api/v1/uploads/batches/{batch_id}").status_code == 404

    def test_handoff_refused_while_uploading(self, client, storage):
        storage.delay = 0.5
        batch = client.post("/api/v1/uploads/batches", files=photo_files("a.jpg")).json()

        response = client.post(f"/api/v1/uploads/batches/{batch['batch_id']}/handoff")

        assert response.status_code == 409
        assert response.json()["code"] == "UPLOADS_IN_FLIGHT"

    def test_invalid_file_rejects_batch(self, client, registry):
        files = [("files", ("notes.txt", b"hello", "text/plain"))]

        response = client.post("/api/v1/uploads/batches", files=files)

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert len(registry) == 0

    def test_unknown_batch(self, client):
        response = client.get("/api/v1/uploads/batches/does-not-exist")
        assert response.status_code == 404
        assert response.json()["code"] == "BATCH_NOT_FOUND"

    def test_other_users_batch_is_hidden(self, client, registry):
        coordinator = registry.create(owner_id=str(uuid.uuid4()))

        response = client.get(f"/api/v1/uploads/batches/{coordinator.batch_id}")

        assert response.status_code == 404

    def test_retry_and_remove(self, client, storage):
        storage.fail_times = 3
        batch = client.post("/api/v1/uploads/batches", files=photo_files("a.jpg")).json()
        batch_id = batch["batch_id"]
        asset_id = batch["records"][0]["id"]

        assert wait_until_ready(client, batch_id)["failed"] == 1

        client.post(f"/api/v1/uploads/batches/{batch_id}/assets/{asset_id}/retry")
        state = wait_until_ready(client, batch_id)
        assert state["committed"] == 1
        assert len(state["committed_refs"]) == 1

        removed = client.delete(f"/api/v1/uploads/batches/{batch_id}/assets/{asset_id}")
        assert removed.status_code == 200
        assert removed.json()["submitted"] == 0
        assert len(storage.deleted) == 1

    def test_retry_committed_is_conflict(self, client):
        batch = client.post("/api/v1/uploads/batches", files=photo_files("a.jpg")).json()
        batch_id = batch["batch_id"]
        wait_until_ready(client, batch_id)

        response = client.post(f"/api/v1/uploads/batches/{batch_id}/assets/{batch['records'][0]['id']}/retry")

        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"

    def test_remove_unknown_asset(self, client):
        batch = client.post("/api/v1/uploads/batches", files=photo_files("a.jpg")).json()

        response = client.delete(f"/api/v1/uploads/batches/{batch['batch_id']}/assets/missing")

        assert response.status_code == 404
        assert response.json()["code"] == "ASSET_NOT_FOUND"


# =============================================================================
# WebSocket
# =============================================================================

class TestUploadWebSocket:
    """Test the batch progress socket."""

    def test_connect_receives_snapshot(self, client, registry):
        coordinator = registry.create(owner_id=str(USER_ID))

        with patch("app.websocket.routes.get_upload_registry", return_value=registry):
            with client.websocket_connect(f"/ws/uploads/{coordinator.batch_id}?token={make_token()}") as ws:
                message = ws.receive_json()
                ws.send_text("ping")
                assert ws.receive_text() == "pong"

        assert message["kind"] == "connected"
        assert message["summary"]["ready"] is True

    def test_forwards_ledger_events(self, client, registry, storage):
        storage.delay = 0.5
        batch = client.post("/api/v1/uploads/batches", files=photo_files("a.jpg")).json()
        batch_id = batch["batch_id"]
        asset_id = batch["records"][0]["id"]

        with patch("app.websocket.routes.get_upload_registry", return_value=registry):
            with client.websocket_connect(f"/ws/uploads/{batch_id}?token={make_token()}") as ws:
                connected = ws.receive_json()
                transition = ws.receive_json()
                quiescent = ws.receive_json()

        assert connected["summary"]["uploading"] == 1
        assert transition["kind"] == "transition"
        assert transition["asset_id"] == asset_id
        assert transition["status"] == "committed"
        assert quiescent["kind"] == "quiescent"
        assert quiescent["summary"]["ready"] is True
        assert quiescent["summary"]["committed"] == 1

    def test_invalid_token_closes_4001(self, client, registry):
        coordinator = registry.create(owner_id=str(USER_ID))

        with patch("app.websocket.routes.get_upload_registry", return_value=registry):
            with pytest.raises(WebSocketDisconnect) as exc_info:
                with client.websocket_connect(f"/ws/uploads/{coordinator.batch_id}?token=garbage") as ws:
                    ws.receive_json()

        assert exc_info.value.code == 4001

    def test_unknown_batch_closes_4004(self, client, registry):
        with patch("app.websocket.routes.get_upload_registry", return_value=registry):
            with pytest.raises(WebSocketDisconnect) as exc_info:
                with client.websocket_connect(f"/ws/uploads/missing?token={make_token()}") as ws:
                    ws.receive_json()

        assert exc_info.value.code == 4004
