"""
API TESTS

In-process tests for the HTTP surface (httpx ASGI transport, no server).
"""
import httpx
import pytest
import pytest_asyncio

from behavioral_sandbox.main import create_app

from conftest import at, make_event

# Configure pytest-asyncio to use function scope
pytestmark = pytest.mark.asyncio(loop_scope="function")


@pytest_asyncio.fixture
async def client(ctx, user_id):
    app = create_app(ctx)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport, base_url="http://test", headers={"X-User-Id": user_id}
    ) as client:
        yield client


def _window(days: int = 10) -> dict:
    return {"start": at().isoformat(), "end": at(days=days).isoformat()}


class TestAPIHealth:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    async def test_missing_user_header(self, client):
        response = await client.get("/sandbox/consent", headers={"X-User-Id": ""})
        assert response.status_code == 401


class TestConsentAPI:
    async def test_grant_and_list(self, client):
        response = await client.post("/sandbox/consent/time_patterns/grant")
        assert response.status_code == 200
        assert response.json()["is_enabled"] is True

        flags = (await client.get("/sandbox/consent")).json()
        assert [f["consent_key"] for f in flags] == ["time_patterns"]

        single = (await client.get("/sandbox/consent/time_patterns")).json()
        assert single == {"consent_key": "time_patterns", "is_enabled": True}

    async def test_unknown_consent_key(self, client):
        response = await client.post("/sandbox/consent/mood_tracking/grant")
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "ValidationError"


class TestSignalAPI:
    async def test_compute_list_and_revoke(self, client, add_events, user_id):
        await client.post("/sandbox/consent/data_quality_basic/grant")
        await add_events([make_event(user_id, at(days=d, hours=9)) for d in (0, 3, 7)])

        response = await client.post(
            "/sandbox/signals/compute",
            json={"signal_keys": ["capture_coverage", "session_boundaries"], "time_range": _window()},
        )
        assert response.status_code == 200
        result = response.json()
        assert result["computed"] == 1
        assert result["skip_reasons"] == {"session_boundaries": "no_consent"}
        signal = result["signals"][0]
        assert signal["value_json"]["days_with_events"] == 3

        listed = (await client.get("/sandbox/signals", params={"signal_key": "capture_coverage"})).json()
        assert [s["signal_id"] for s in listed] == [signal["signal_id"]]

        check = (await client.get(f"/sandbox/signals/{signal['signal_id']}/provenance")).json()
        assert check["matches"] is True

        revoked = (await client.post("/sandbox/consent/data_quality_basic/revoke")).json()
        assert revoked["affected_signal_ids"] == [signal["signal_id"]]
        assert (await client.get("/sandbox/signals")).json() == []

    async def test_unknown_signal_key_filter(self, client):
        response = await client.get("/sandbox/signals", params={"signal_key": "weekly_rank"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "SignalNotFoundError"

    @pytest.mark.parametrize("bound", ["start", "end"])
    async def test_one_sided_time_range_rejected(self, client, bound):
        response = await client.get("/sandbox/signals", params={bound: at().isoformat()})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "ValidationError"

    async def test_time_range_filter(self, client, add_events, user_id):
        await client.post("/sandbox/consent/data_quality_basic/grant")
        await add_events([make_event(user_id, at(days=1))])
        await client.post(
            "/sandbox/signals/compute",
            json={"signal_keys": ["capture_coverage"], "time_range": _window()},
        )

        inside = await client.get("/sandbox/signals", params=_window())
        assert len(inside.json()) == 1
        outside = await client.get(
            "/sandbox/signals", params={"start": at(days=20).isoformat(), "end": at(days=30).isoformat()}
        )
        assert outside.json() == []

    async def test_delete_missing_signal(self, client):
        response = await client.delete("/sandbox/signals/does-not-exist")
        assert response.status_code == 404
        body = response.json()
        assert body["error"]["code"] == "NotFoundError"
        assert "message" in body["error"]

    async def test_signals_are_user_scoped(self, client, add_events, user_id, other_user_id):
        await client.post("/sandbox/consent/data_quality_basic/grant")
        await add_events([make_event(user_id, at(days=1))])
        signal = (await client.post(
            "/sandbox/signals/compute",
            json={"signal_keys": ["capture_coverage"], "time_range": _window()},
        )).json()["signals"][0]

        response = await client.delete(
            f"/sandbox/signals/{signal['signal_id']}", headers={"X-User-Id": other_user_id}
        )
        assert response.status_code == 404


class TestInsightAPI:
    async def test_safe_mode_round_trip(self, client):
        assert (await client.get("/sandbox/insights/safe-mode")).json() == {"is_enabled": False, "state": None}

        response = await client.post("/sandbox/insights/safe-mode", json={"enabled": True, "reason": "break"})
        assert response.json()["activation_count"] == 1
        assert (await client.get("/sandbox/insights/safe-mode")).json()["is_enabled"] is True

    async def test_feedback_type_is_validated(self, client):
        response = await client.post(
            "/sandbox/insights/feedback",
            json={"signal_id": "x", "signal_key": "capture_coverage", "feedback_type": "love_it"},
        )
        assert response.status_code == 422

    async def test_metadata(self, client):
        response = await client.get("/sandbox/insights/metadata/activity_intervals")
        assert response.status_code == 200
        assert response.json()["title"] == "Activity Duration Records"


class TestReflectionAPI:
    async def test_crud(self, client):
        created = await client.post(
            "/sandbox/reflections", json={"content": "Slow morning", "user_tags": ["morning"]}
        )
        assert created.status_code == 201
        reflection_id = created.json()["id"]

        updated = await client.patch(f"/sandbox/reflections/{reflection_id}", json={"content": "Slow start"})
        assert updated.json()["content"] == "Slow start"
        assert (await client.get("/sandbox/reflections/tags")).json() == ["morning"]

        deleted = await client.delete(f"/sandbox/reflections/{reflection_id}")
        assert deleted.status_code == 204
        assert (await client.get(f"/sandbox/reflections/{reflection_id}")).status_code == 404
        assert (await client.get("/sandbox/reflections")).json() == []

    async def test_empty_content(self, client):
        response = await client.post("/sandbox/reflections", json={"content": "   "})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "EmptyReflectionError"
