"""Tests for the order-management HTTP client and credential propagation."""
import asyncio
import json

import httpx
import pytest

from app.erp.client import ERPClient, ERPErrorKind, ERPResult
from app.erp.credentials import credential_scope, get_request_credential

from conftest import ACME, PARSLEY


class Recorder:
    """MockTransport handler recording requests and replying from a route table."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": "no route"})
        return handler(request)


def _client(recorder: Recorder, token=None) -> ERPClient:
    return ERPClient(
        base_url="http://erp.test/api",
        default_token=token,
        timeout=5,
        transport=httpx.MockTransport(recorder),
    )


async def test_search_parties_sends_query_and_request_credential():
    recorder = Recorder({("GET", "/api/sales/customer"): lambda r: httpx.Response(200, json=[ACME])})
    client = _client(recorder, token="")

    with credential_scope("user-token-1"):
        result = await client.search_parties("acme", limit=10)

    assert result.success
    assert result.data[0]["id"] == "cust-001"
    request = recorder.requests[0]
    assert request.headers["Authorization"] == "Bearer user-token-1"
    assert request.url.params["search"] == "acme"
    assert request.url.params["limit"] == "10"


async def test_default_token_used_without_request_credential():
    recorder = Recorder({("GET", "/api/product/product"): lambda r: httpx.Response(200, json=[PARSLEY])})
    client = _client(recorder, token="service-token")

    result = await client.search_items("parsley", limit=5)

    assert result.success
    assert recorder.requests[0].headers["Authorization"] == "Bearer service-token"


async def test_missing_credential_fails_without_io():
    recorder = Recorder()
    client = _client(recorder, token="")

    result = await client.get_party("cust-001")

    assert not result.success
    assert result.error_kind == ERPErrorKind.AUTH
    assert recorder.requests == []


@pytest.mark.parametrize(
    "status,kind",
    [(401, ERPErrorKind.AUTH), (403, ERPErrorKind.AUTH), (404, ERPErrorKind.NOT_FOUND), (500, ERPErrorKind.HTTP)],
)
async def test_http_status_classification(status, kind):
    recorder = Recorder({
        ("GET", "/api/sales/customer/cust-9"): lambda r: httpx.Response(status, json={"message": "nope"}),
    })
    client = _client(recorder, token="t")

    result = await client.get_party("cust-9")

    assert not result.success
    assert result.error_kind == kind
    assert result.error == f"{status} - nope"


async def test_timeout_is_a_connection_error():
    def boom(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client(Recorder({("GET", "/api/product/product"): boom}), token="t")

    result = await client.search_items("basil", limit=5)

    assert result.error_kind == ERPErrorKind.TIMEOUT
    assert result.is_connection_error
    assert result.technical_error("item search failed").startswith("Technical error (connection):")


async def test_network_failure_is_a_connection_error():
    def refused(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(Recorder({("GET", "/api/sales/customer"): refused}), token="t")

    result = await client.search_parties("acme", limit=10)

    assert result.error_kind == ERPErrorKind.NETWORK
    assert "connection refused" in result.error


async def test_malformed_bodies():
    recorder = Recorder({
        ("GET", "/api/sales/customer"): lambda r: httpx.Response(200, content=b"<html>"),
        ("GET", "/api/sales/customer/cust-1"): lambda r: httpx.Response(200, json=[1, 2]),
        ("GET", "/api/product/product"): lambda r: httpx.Response(200, json={"items": []}),
    })
    client = _client(recorder, token="t")

    not_json = await client.search_parties("x", limit=1)
    not_record = await client.get_party("cust-1")
    not_list = await client.search_items("x", limit=1)

    assert not_json.error_kind == ERPErrorKind.MALFORMED
    assert not_record.error_kind == ERPErrorKind.MALFORMED
    assert not_list.error_kind == ERPErrorKind.MALFORMED


async def test_create_sales_order_puts_payload():
    def created(request):
        body = json.loads(request.content)
        return httpx.Response(200, json={"id": "o-1", "internal_id": "SO-1", "status": body["status"]})

    recorder = Recorder({("PUT", "/api/sales/order"): created})
    client = _client(recorder, token="t")
    payload = {
        "customer_id": "cust-001",
        "status": "draft",
        "products": [{"id": PARSLEY["id"], "extra_id": "PARSLEY 12 - RAW", "name": "Parsley", "uom": "kg"}],
    }

    result = await client.create_sales_order(payload)

    assert result.success
    assert result.data["internal_id"] == "SO-1"
    assert json.loads(recorder.requests[0].content)["customer_id"] == "cust-001"


async def test_create_sales_order_rejects_incomplete_lines_locally():
    recorder = Recorder()
    client = _client(recorder, token="t")

    result = await client.create_sales_order({"products": [{"id": "x", "extra_id": "", "name": "n", "uom": "kg"}]})

    assert result.error_kind == ERPErrorKind.MALFORMED
    assert recorder.requests == []


def test_technical_error_labels():
    auth = ERPResult.fail(ERPErrorKind.AUTH, "401 - expired")
    other = ERPResult.fail(ERPErrorKind.HTTP, "500 - boom")

    assert auth.technical_error("x").startswith("Technical error (authorization): x:")
    assert other.technical_error("x") == "Technical error: x: 500 - boom"


async def test_concurrent_requests_keep_their_own_credential():
    seen = {}

    def echo(request):
        seen[request.url.params["search"]] = request.headers["Authorization"]
        return httpx.Response(200, json=[])

    client = _client(Recorder({("GET", "/api/sales/customer"): echo}), token="")

    async def as_user(user: str):
        with credential_scope(f"token-{user}"):
            await asyncio.sleep(0)
            await client.search_parties(user, limit=1)
            assert get_request_credential() == f"token-{user}"

    await asyncio.gather(*(as_user(u) for u in ("alice", "bob", "carol")))

    assert seen == {
        "alice": "Bearer token-alice",
        "bob": "Bearer token-bob",
        "carol": "Bearer token-carol",
    }
    assert get_request_credential() is None


async def test_spawned_task_inherits_credential():
    async def read():
        return get_request_credential()

    with credential_scope("inherited"):
        task = asyncio.create_task(read())

    assert await task == "inherited"
