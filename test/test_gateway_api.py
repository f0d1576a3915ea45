"""
Тесты HTTP шлюза: командный протокол, упрощённый запрос, сессии, синтез речи.
"""
import httpx
import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock

from app.core.dependencies import (
    get_context_repository,
    get_dispatcher,
    get_session_store,
    get_speech_service,
)
from app.core.errors import PersistenceError
from app.main import app
from app.repositories.context_repository import ContextRepository
from app.services.speech_service import DisabledSpeechService

from conftest import SESSION_ID

pytestmark = pytest.mark.database


@pytest_asyncio.fixture
async def client(dispatcher, repository, session_store):
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_context_repository] = lambda: repository
    app.dependency_overrides[get_session_store] = lambda: session_store
    app.dependency_overrides[get_speech_service] = DisabledSpeechService
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


class TestExecuteEndpoint:

    @pytest.mark.asyncio
    async def test_query_envelope(self, client, assistant):
        response = await client.post("/mcp/execute", json={
            "method": "query", "params": {"query": "What's on today?"}, "sessionId": SESSION_ID,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["result"] == assistant.result
        assert data["context"] == {"hasHistory": False, "historyCount": 0, "preferences": {}}

    @pytest.mark.asyncio
    async def test_preferences_roundtrip(self, client):
        await client.post("/mcp/execute", json={
            "method": "save_preference", "params": {"key": "tone", "value": "formal"}, "sessionId": SESSION_ID,
        })

        response = await client.post("/mcp/execute", json={"method": "get_preferences", "sessionId": SESSION_ID})

        assert response.status_code == 200
        assert response.json() == {"result": {"tone": "formal"}}

    @pytest.mark.asyncio
    async def test_missing_session(self, client):
        response = await client.post("/mcp/execute", json={"method": "get_context", "params": {}})

        assert response.status_code == 401
        assert response.json() == {"error": "sessionId is required"}

    @pytest.mark.asyncio
    async def test_invalid_session(self, client):
        response = await client.post("/mcp/execute", json={"method": "get_context", "sessionId": "session_nope"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid session"}

    @pytest.mark.asyncio
    async def test_unknown_method(self, client):
        response = await client.post("/mcp/execute", json={"method": "launch", "sessionId": SESSION_ID})

        assert response.status_code == 400
        assert response.json() == {"error": "Unknown method: launch"}

    @pytest.mark.asyncio
    async def test_malformed_envelope(self, client):
        response = await client.post("/mcp/execute", json={"sessionId": SESSION_ID})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error.startswith("Invalid request")
        assert "method" in error
        assert "detail" not in response.json()

    @pytest.mark.asyncio
    async def test_null_params(self, client):
        response = await client.post("/mcp/execute", json={
            "method": "get_context", "params": None, "sessionId": SESSION_ID,
        })

        assert response.status_code == 200
        assert response.json() == {"result": {}}

    @pytest.mark.asyncio
    async def test_missing_parameter(self, client):
        response = await client.post("/mcp/execute", json={
            "method": "save_preference", "params": {}, "sessionId": SESSION_ID,
        })

        assert response.status_code == 400
        assert response.json() == {"error": "key is required"}

    @pytest.mark.asyncio
    async def test_upstream_error(self, client, assistant):
        assistant.error = RuntimeError("Maps API unavailable")

        response = await client.post("/mcp/execute", json={
            "method": "query", "params": {"query": "traffic"}, "sessionId": SESSION_ID,
        })

        assert response.status_code == 502
        assert response.json() == {"error": "Maps API unavailable"}


class TestQueryEndpoint:

    @pytest.mark.asyncio
    async def test_flat_response_with_header_session(self, client, repository, assistant):
        assistant.result = {
            "type": "weather",
            "content": "Sunny",
            "weather": {"temp": 21},
            "events": [],
        }

        response = await client.post(
            "/api/query",
            json={"query": "Weather?", "currentLocation": "Madrid"},
            headers={"X-Session-Id": SESSION_ID},
        )

        assert response.status_code == 200
        assert response.json() == {"type": "weather", "content": "Sunny", "weather": {"temp": 21}, "events": []}
        assert assistant.calls[-1]["location"] == "Madrid"
        assert (await repository.get_context(SESSION_ID))["lastWeather"] == {"temp": 21}

    @pytest.mark.asyncio
    async def test_session_in_body(self, client):
        response = await client.post("/api/query", json={"query": "hi", "sessionId": SESSION_ID})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_query_required(self, client):
        response = await client.post("/api/query", json={}, headers={"X-Session-Id": SESSION_ID})

        assert response.status_code == 400
        assert response.json() == {"error": "Query is required"}

    @pytest.mark.asyncio
    async def test_no_session(self, client):
        response = await client.post("/api/query", json={"query": "hi"})
        assert response.status_code == 401


class TestAuthEndpoints:

    @pytest.mark.asyncio
    async def test_create_and_read_session(self, client, session_store):
        response = await client.post("/auth/session", json={"credential": {"access_token": "new"}})

        assert response.status_code == 200
        session_id = response.json()["sessionId"]
        assert session_id.startswith("session_")

        response = await client.get(f"/auth/tokens/{session_id}")
        assert response.json() == {"tokens": {"access_token": "new"}}

    @pytest.mark.asyncio
    async def test_unknown_tokens(self, client):
        response = await client.get("/auth/tokens/session_missing")

        assert response.status_code == 404
        assert response.json() == {"error": "Session not found"}

    @pytest.mark.asyncio
    async def test_delete_session(self, client, session_store):
        response = await client.delete(f"/auth/session/{SESSION_ID}")

        assert response.status_code == 200
        assert await session_store.get(SESSION_ID) is None


class TestHealthAndDebug:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/mcp/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"

    @pytest.mark.asyncio
    async def test_health_unhealthy(self, client):
        broken = MagicMock(spec=ContextRepository)
        broken.ping = AsyncMock(side_effect=PersistenceError("Database ping failed"))
        app.dependency_overrides[get_context_repository] = lambda: broken

        response = await client.get("/mcp/health")

        assert response.status_code == 503
        assert response.json()["database"] == "disconnected"

    @pytest.mark.asyncio
    async def test_debug_context(self, client):
        await client.post("/mcp/execute", json={
            "method": "query", "params": {"query": "hello"}, "sessionId": SESSION_ID,
        })

        response = await client.get(f"/mcp/debug/context/{SESSION_ID}")

        data = response.json()
        assert data["historyCount"] == 2
        assert data["context"]["conversationCount"] == 1
        assert data["collections"] == {"hasContext": True, "hasHistory": True, "hasPreferences": False}


class TestSpeechEndpoints:

    @pytest.mark.asyncio
    async def test_tts_unavailable(self, client):
        response = await client.post("/api/speech/tts", json={"text": "Hello"})

        assert response.status_code == 503
        assert response.json()["error"] == "Text-to-speech not available"

    @pytest.mark.asyncio
    async def test_tts_audio(self, client):
        speech = MagicMock()
        speech.text_to_speech = AsyncMock(return_value=b"ID3-audio")
        app.dependency_overrides[get_speech_service] = lambda: speech

        response = await client.post("/api/speech/tts", json={"text": "Hello", "voiceId": "v1"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "audio/mpeg"
        assert response.content == b"ID3-audio"
        speech.text_to_speech.assert_awaited_once_with("Hello", voice_id="v1", model_id=None)

    @pytest.mark.asyncio
    async def test_tts_requires_text(self, client):
        response = await client.post("/api/speech/tts", json={})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_voices(self, client):
        response = await client.get("/api/speech/voices")
        assert response.json() == {"voices": []}


def test_openapi_paths():
    schema = app.openapi()
    assert schema["info"]["title"] == "Workspace Assistant API"
    for path in ("/mcp/execute", "/mcp/health", "/api/query", "/api/speech/tts", "/auth/session"):
        assert path in schema["paths"]


@pytest.mark.asyncio
async def test_persistence_error_on_explicit_command(client, repository, monkeypatch):
    monkeypatch.setattr(repository, "save_context", AsyncMock(side_effect=PersistenceError("Failed to save context")))

    response = await client.post("/mcp/execute", json={
        "method": "save_context", "params": {"context": {"a": 1}}, "sessionId": SESSION_ID,
    })

    assert response.status_code == 503
    assert response.json() == {"error": "Failed to save context"}
