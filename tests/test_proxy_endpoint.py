import pytest
from httpx import AsyncClient, ASGITransport

from text2sql_chat.main import create_app
from text2sql_chat.services.proxy_service import ProxyService
from text2sql_chat.store.chat_store import ChatStore
from fakes import FakeUpstream, FakeClient

UPSTREAM_RESPONSE = {
    "output": "SELECT * FROM users",
    "explanation": "Lists all users",
    "results": [{"id": 1, "name": "Ada"}],
    "conversationID": "conv-1",
    "databaseType": "postgres",
}


def build_app(settings, upstream: FakeUpstream):
    return create_app(
        settings=settings,
        store=ChatStore(),
        client=FakeClient(),
        proxy_service=ProxyService(settings, transport=upstream.transport),
    )


@pytest.mark.asyncio
async def test_proxy_strips_results_when_not_requested(settings):
    upstream = FakeUpstream((200, dict(UPSTREAM_RESPONSE)))
    app = build_app(settings, upstream)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/api/text2sql", json={"prompt": "x", "runQuery": False})

    assert response.status_code == 200
    data = response.json()
    assert "results" not in data
    assert data["output"] == "SELECT * FROM users"
    assert data["explanation"] == "Lists all users"
    assert data["conversationID"] == "conv-1"

    # Executed upstream anyway
    assert upstream.json_body()["runQuery"] is True


@pytest.mark.asyncio
async def test_proxy_returns_results_when_requested(settings):
    upstream = FakeUpstream((200, dict(UPSTREAM_RESPONSE)))
    app = build_app(settings, upstream)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/text2sql",
            json={"prompt": "SELECT 1", "runQuery": True, "limit": 500, "conversationID": "conv-1", "mode": "one-shot"},
        )

    assert response.status_code == 200
    assert response.json()["results"] == [{"id": 1, "name": "Ada"}]


@pytest.mark.asyncio
async def test_proxy_injects_credentials_and_connection(settings):
    upstream = FakeUpstream((200, dict(UPSTREAM_RESPONSE)))
    app = build_app(settings, upstream)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        await client.post(
            "/api/text2sql",
            json={"prompt": "x", "limit": 100, "mode": "conversational", "connectionID": "client-conn"},
        )

    sent = upstream.requests[0]
    assert str(sent.url) == "https://upstream.test/api/external/generate-sql"
    assert sent.headers["authorization"] == "Bearer test-key"
    assert upstream.json_body() == {
        "prompt": "x",
        "limit": 100,
        "mode": "conversational",
        "connectionID": "conn-123",
        "runQuery": True,
    }


@pytest.mark.asyncio
async def test_proxy_keeps_client_connection_without_server_default(settings):
    settings = settings.model_copy(update={"TEXT2SQL_CONNECTION_ID": None})
    upstream = FakeUpstream((200, dict(UPSTREAM_RESPONSE)))
    app = build_app(settings, upstream)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        await client.post("/api/text2sql", json={"prompt": "x", "connectionID": "client-conn"})

    assert upstream.json_body()["connectionID"] == "client-conn"


@pytest.mark.asyncio
async def test_missing_api_key_fails_before_upstream_call(settings):
    settings = settings.model_copy(update={"TEXT2SQL_API_KEY": ""})
    upstream = FakeUpstream((200, dict(UPSTREAM_RESPONSE)))
    app = build_app(settings, upstream)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/api/text2sql", json={"prompt": "x"})

    assert response.status_code == 500
    assert response.json() == {"error": "TEXT2SQL_API_KEY is not configured"}
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_upstream_failure_is_generic_500(settings):
    upstream = FakeUpstream((502, {"message": "bad gateway"}))
    app = build_app(settings, upstream)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/api/text2sql", json={"prompt": "x"})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to process request"}


@pytest.mark.asyncio
async def test_proxy_passes_unknown_fields_through(settings):
    upstream = FakeUpstream((200, dict(UPSTREAM_RESPONSE)))
    app = build_app(settings, upstream)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/api/text2sql", json={"prompt": "x", "temperature": 0.2})

    assert response.status_code == 200
    assert upstream.json_body() == {
        "prompt": "x",
        "temperature": 0.2,
        "connectionID": "conn-123",
        "runQuery": True,
    }


@pytest.mark.asyncio
async def test_proxy_forwards_values_as_sent(settings):
    upstream = FakeUpstream((200, dict(UPSTREAM_RESPONSE)))
    app = build_app(settings, upstream)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/api/text2sql", json={"prompt": "", "mode": "batch", "limit": 0})

    assert response.status_code == 200
    sent = upstream.json_body()
    assert sent["prompt"] == ""
    assert sent["mode"] == "batch"
    assert sent["limit"] == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("content", [b"not json", b"[1, 2]", b"null"])
async def test_unreadable_body_is_generic_500(settings, content):
    upstream = FakeUpstream()
    app = build_app(settings, upstream)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/text2sql", content=content, headers={"Content-Type": "application/json"}
        )

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to process request"}
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_health_and_root(settings):
    app = build_app(settings, FakeUpstream())

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        health = await client.get("/api/health")
        root = await client.get("/")

    assert health.status_code == 200
    assert health.json() == {
        "status": "ok",
        "upstream": "https://upstream.test",
        "api_key_configured": True,
    }
    assert root.json()["proxy"] == "/api/text2sql"
