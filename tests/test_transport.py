import json

import httpx
import pytest

from event_ingest.services.transport import HttpTransportBridge, NullTransport, transport_retry_policy

BASE_URL = "http://sidecar.test"


def bridge_for(handler, sleeps: list[float] | None = None) -> HttpTransportBridge:
    policy = transport_retry_policy()

    async def record_sleep(delay):
        if sleeps is not None:
            sleeps.append(delay)

    policy.sleep = record_sleep
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return HttpTransportBridge(BASE_URL, retry_policy=policy, http_client=client)


@pytest.mark.asyncio
async def test_send_text_posts_to_messages():
    requests = []

    def handler(request: httpx.Request):
        requests.append(request)
        return httpx.Response(200, json={"ok": True})

    bridge = bridge_for(handler)
    assert await bridge.send_text("120363@g.us", "שלום") is True
    await bridge.close()

    assert requests[0].method == "POST"
    assert requests[0].url.path == "/messages"
    assert json.loads(requests[0].content) == {"chatId": "120363@g.us", "text": "שלום"}


@pytest.mark.asyncio
async def test_contact_lookups():
    paths = []

    def handler(request: httpx.Request):
        paths.append(request.url.path)
        if request.url.path.endswith("/lookup"):
            return httpx.Response(200, json={"phone": "972541112233@c.us"})
        return httpx.Response(200, json={})

    bridge = bridge_for(handler)
    assert await bridge.resolve_contact_phone("827@lid") is None
    assert await bridge.lookup_contact_phone("827@lid") == "972541112233@c.us"

    assert paths == ["/contacts/827@lid", "/contacts/827@lid/lookup"]


@pytest.mark.asyncio
async def test_server_error_is_retried():
    statuses = iter([500, 502, 200])
    sleeps: list[float] = []

    def handler(request: httpx.Request):
        status = next(statuses)
        body = {"name": "קהילת חיפה"} if status == 200 else {"error": "busy"}
        return httpx.Response(status, json=body)

    bridge = bridge_for(handler, sleeps)

    assert await bridge.get_group_name("120363@g.us") == "קהילת חיפה"
    assert sleeps == [0.5, 1.0]


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    calls = []

    def handler(request: httpx.Request):
        calls.append(request)
        return httpx.Response(404, json={"error": "unknown group"})

    bridge = bridge_for(handler)

    assert await bridge.get_group_name("missing@g.us") is None
    assert await bridge.send_text("missing@g.us", "x") is False
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_connection_failure_surfaces_as_none():
    def handler(request: httpx.Request):
        raise httpx.ConnectError("connection refused", request=request)

    bridge = bridge_for(handler)

    assert await bridge.resolve_contact_phone("827@lid") is None


@pytest.mark.asyncio
async def test_null_transport():
    transport = NullTransport()
    assert await transport.send_text("g", "x") is False
    assert await transport.get_group_name("g") is None
    assert await transport.resolve_contact_phone("c") is None
