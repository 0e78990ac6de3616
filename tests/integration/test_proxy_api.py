from __future__ import annotations

import pytest

import keypool.modules.proxy.service as proxy_module
from keypool.core.clients.upstream import UpstreamResponse, UpstreamUnavailableError
from keypool.core.config.settings import get_settings

pytestmark = pytest.mark.integration

ACCESS_TOKEN = "client-access-token"
UPSTREAM_KEYS = {"AIzaTestKeyAlpha000001", "AIzaTestKeyBravo000002"}
PRO_PATH = "/v1beta/models/gemini-2.5-pro:generateContent"


def _install_upstream(monkeypatch, status_code: int = 200, body: bytes = b'{"candidates":[]}'):
    calls: list[dict] = []

    async def fake_forward(**kwargs):
        calls.append(kwargs)
        return UpstreamResponse(
            status_code=status_code,
            headers={"Content-Type": "application/json", "X-Upstream": "1"},
            body=body,
        )

    monkeypatch.setattr(proxy_module, "forward_request", fake_forward)
    return calls


@pytest.mark.asyncio
async def test_liveness_endpoints(async_client):
    for path in ("/", "/index.html"):
        response = await async_client.get(path)
        assert response.status_code == 200
        assert response.text == "Proxy is Running!"

    health = await async_client.get("/health")
    assert health.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_missing_access_token_is_bad_request(async_client, monkeypatch):
    calls = _install_upstream(monkeypatch)

    response = await async_client.post(PRO_PATH, json={})

    assert response.status_code == 400
    assert "x-goog-api-key" in response.text
    assert calls == []


@pytest.mark.asyncio
async def test_unknown_access_token_is_unauthorized(async_client, monkeypatch):
    calls = _install_upstream(monkeypatch)

    response = await async_client.post(PRO_PATH, json={}, headers={"x-goog-api-key": "nope"})

    assert response.status_code == 401
    assert response.text == "Unauthorized"
    assert calls == []


@pytest.mark.asyncio
async def test_forwards_with_pool_credential(async_client, monkeypatch):
    calls = _install_upstream(monkeypatch)

    response = await async_client.post(
        f"{PRO_PATH}?alt=sse",
        content=b'{"contents":[]}',
        headers={
            "content-type": "application/json",
            "x-goog-api-key": ACCESS_TOKEN,
            "x-request-id": "req-123",
        },
    )

    assert response.status_code == 200
    assert response.json() == {"candidates": []}
    assert response.headers["referrer-policy"] == "no-referrer"
    assert response.headers["x-upstream"] == "1"
    assert response.headers["x-request-id"] == "req-123"
    assert len(calls) == 1
    call = calls[0]
    assert call["credential"] in UPSTREAM_KEYS
    assert call["method"] == "POST"
    assert call["path"] == PRO_PATH
    assert call["query"] == "alt=sse"
    assert call["body"] == b'{"contents":[]}'


@pytest.mark.asyncio
async def test_pool_exhaustion_returns_429_with_retry_hint(async_client, monkeypatch):
    calls = _install_upstream(monkeypatch)
    headers = {"x-goog-api-key": ACCESS_TOKEN}

    first = await async_client.post(PRO_PATH, json={}, headers=headers)
    second = await async_client.post(PRO_PATH, json={}, headers=headers)
    third = await async_client.post(PRO_PATH, json={}, headers=headers)

    assert first.status_code == second.status_code == 200
    assert {call["credential"] for call in calls} == UPSTREAM_KEYS
    assert third.status_code == 429
    assert third.text == "All keys for gemini-2.5-pro are rate-limited. Try again later."
    assert 0 < int(third.headers["retry-after"]) <= 60


@pytest.mark.asyncio
async def test_cooldowns_are_per_model(async_client, monkeypatch):
    _install_upstream(monkeypatch)
    headers = {"x-goog-api-key": ACCESS_TOKEN}

    for _ in range(2):
        assert (await async_client.post(PRO_PATH, json={}, headers=headers)).status_code == 200

    flash = await async_client.post(
        "/v1beta/models/gemini-2.5-flash:generateContent",
        json={},
        headers=headers,
    )
    assert flash.status_code == 200


@pytest.mark.asyncio
async def test_upstream_error_is_passed_through(async_client, monkeypatch):
    _install_upstream(monkeypatch, status_code=400, body=b'{"error":{"message":"bad input"}}')

    response = await async_client.post(PRO_PATH, json={}, headers={"x-goog-api-key": ACCESS_TOKEN})

    assert response.status_code == 400
    assert response.json() == {"error": {"message": "bad input"}}


@pytest.mark.asyncio
async def test_transport_failure_is_bad_gateway(async_client, monkeypatch):
    async def failing_forward(**kwargs):
        raise UpstreamUnavailableError("connection reset by peer")

    monkeypatch.setattr(proxy_module, "forward_request", failing_forward)

    response = await async_client.post(PRO_PATH, json={}, headers={"x-goog-api-key": ACCESS_TOKEN})

    assert response.status_code == 502
    assert "connection reset by peer" in response.text


@pytest.mark.asyncio
async def test_throttled_key_is_skipped_afterwards(async_client, monkeypatch):
    calls = _install_upstream(monkeypatch, status_code=429, body=b'{"error":{"code":429}}')
    headers = {"x-goog-api-key": ACCESS_TOKEN}

    first = await async_client.post(PRO_PATH, json={}, headers=headers)
    second = await async_client.post(PRO_PATH, json={}, headers=headers)
    third = await async_client.post(PRO_PATH, json={}, headers=headers)

    assert first.status_code == second.status_code == 429
    assert calls[0]["credential"] != calls[1]["credential"]
    assert third.status_code == 429
    assert third.text.startswith("All keys for gemini-2.5-pro")
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_missing_credentials_is_config_error(async_client, monkeypatch):
    _install_upstream(monkeypatch)
    monkeypatch.setenv("KEYPOOL_API_KEYS", "")
    get_settings.cache_clear()

    response = await async_client.post(PRO_PATH, json={}, headers={"x-goog-api-key": ACCESS_TOKEN})

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "config_missing"
