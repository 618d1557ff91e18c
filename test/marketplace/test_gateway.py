import asyncio
import json
from typing import Any, Dict, List

import httpx
import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

from marketplace.errors import CollaboratorError, ObjectNotFoundError, ValidationError
from marketplace.gateway import GatewayClient
from marketplace.orders import (
    fetch_deals_by_order_hash,
    fetch_order,
    fetch_published_order_by_hash,
    publish_order,
    unpublish_order,
)
from marketplace.orders.typed_data import hash_typed_data

ORDER_HASH = "0x" + "0a" * 32

CHALLENGE = {
    "types": {
        "EIP712Domain": [
            {"name": "name", "type": "string"},
            {"name": "version", "type": "string"},
            {"name": "chainId", "type": "uint256"},
        ],
        "Challenge": [{"name": "challenge", "type": "string"}],
    },
    "domain": {"name": "iExec Gateway", "version": "1", "chainId": 134},
    "primaryType": "Challenge",
    "message": {"challenge": "xyz"},
}


class GatewayStub:
    def __init__(self, routes: Dict[str, Any]) -> None:
        self.routes = routes
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"ok": False, "error": "not found"})
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)

    def body(self, index: int) -> Dict[str, Any]:
        return json.loads(self.requests[index].content)


def _client(market, stub: GatewayStub) -> GatewayClient:
    return GatewayClient("https://gateway.test/", 134, signer=market.signer, transport=httpx.MockTransport(stub))


def test_authorization_signs_gateway_challenge(market) -> None:
    stub = GatewayStub({"/challenge": {"ok": True, "data": CHALLENGE}})
    credential = asyncio.run(_client(market, stub).authorization(market.REQUESTER))

    challenge_hash, signature, address = credential.split("_")
    assert challenge_hash == hash_typed_data(CHALLENGE)
    assert address == market.REQUESTER
    recovered = Account.recover_message(encode_typed_data(full_message=CHALLENGE), signature=signature)
    assert recovered == market.REQUESTER
    assert stub.requests[0].url.params["chainId"] == "134"
    assert stub.requests[0].url.params["address"] == market.REQUESTER


def test_publish_order_posts_signed_order(market) -> None:
    request = market.sign(market.request_order(), market.REQUESTER_KEY)
    stub = GatewayStub(
        {
            "/challenge": {"ok": True, "data": CHALLENGE},
            "/requestorders/publish": {"ok": True, "saved": {"orderHash": ORDER_HASH}},
        }
    )
    assert asyncio.run(publish_order(market.context, _client(market, stub), request)) == ORDER_HASH

    publish = stub.requests[1]
    assert publish.headers["authorization"].endswith("_" + market.REQUESTER)
    body = stub.body(1)
    assert body["chainId"] == "134"
    assert body["order"]["sign"] == request.sign


def test_publish_requires_signed_order(market) -> None:
    stub = GatewayStub({})
    with pytest.raises(ValidationError, match="must be signed"):
        asyncio.run(publish_order(market.context, _client(market, stub), market.request_order()))
    assert stub.requests == []


def test_unpublish_order(market) -> None:
    stub = GatewayStub(
        {
            "/challenge": {"ok": True, "data": CHALLENGE},
            "/apporders/unpublish": {"ok": True, "unpublished": ORDER_HASH},
        }
    )
    assert asyncio.run(unpublish_order(market.context, _client(market, stub), "apporder", ORDER_HASH)) == ORDER_HASH
    assert stub.body(1)["orderHash"] == ORDER_HASH


def test_fetch_order_round_trips_published_entry(market) -> None:
    request = market.sign(market.request_order(), market.REQUESTER_KEY)
    stub = GatewayStub({"/requestorders": {"ok": True, "orders": [{"orderHash": ORDER_HASH, "order": request.to_dict()}]}})

    fetched = asyncio.run(fetch_order(_client(market, stub), "requestorder", ORDER_HASH))

    assert fetched == request
    body = stub.body(0)
    assert body["find"] == {"orderHash": ORDER_HASH}
    assert body["limit"] == 1
    assert body["sort"] == {"publicationTimestamp": -1}


def test_fetch_unknown_order(market) -> None:
    stub = GatewayStub({"/apporders": {"ok": True, "orders": []}})
    client = _client(market, stub)
    assert asyncio.run(fetch_published_order_by_hash(client, "apporder", ORDER_HASH)) is None
    with pytest.raises(ObjectNotFoundError):
        asyncio.run(fetch_order(client, "apporder", ORDER_HASH))


def test_fetch_deals_by_order_hash(market) -> None:
    stub = GatewayStub({"/deals": {"ok": True, "count": 12, "deals": [{"dealid": "0x" + "de" * 32}]}})
    result = asyncio.run(fetch_deals_by_order_hash(_client(market, stub), "workerpoolorder", ORDER_HASH))
    assert result["count"] == 12
    assert len(result["deals"]) == 1
    assert stub.body(0)["find"] == {"workerpoolHash": ORDER_HASH}


def test_gateway_rejection_and_http_errors(market) -> None:
    stub = GatewayStub(
        {
            "/apporders": {"ok": False, "error": "bad request"},
            "/deals": httpx.Response(502, text="bad gateway"),
        }
    )
    client = _client(market, stub)
    with pytest.raises(CollaboratorError, match="bad request"):
        asyncio.run(fetch_published_order_by_hash(client, "apporder", ORDER_HASH))
    with pytest.raises(CollaboratorError) as excinfo:
        asyncio.run(fetch_deals_by_order_hash(client, "apporder", ORDER_HASH))
    assert excinfo.value.status == 502
    assert excinfo.value.service == "gateway"


def test_transport_failure_is_wrapped(market) -> None:
    def fail(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = GatewayClient("https://gateway.test", 134, transport=httpx.MockTransport(fail))
    with pytest.raises(CollaboratorError, match="refused"):
        asyncio.run(client.find_one("apporders", {}))


def test_write_calls_need_a_signer() -> None:
    client = GatewayClient("https://gateway.test", 134, transport=httpx.MockTransport(GatewayStub({})))
    with pytest.raises(CollaboratorError, match="signer is required"):
        asyncio.run(client.authorization("0x" + "12" * 20))
