import asyncio

import httpx
import pytest
from eth_account import Account
from eth_account.messages import encode_defunct

from marketplace.errors import CollaboratorError
from marketplace.sms import SmsClient, web2_secret_challenge

OWNER = "0x" + "12" * 20


def _client(handler, signer=None) -> SmsClient:
    return SmsClient("https://sms.test", signer=signer, transport=httpx.MockTransport(handler))


def test_check_web2_secret_maps_status_codes() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/secrets/web2"
        known = request.url.params["secretName"] == "known"
        return httpx.Response(204 if known else 404)

    client = _client(handler)
    assert asyncio.run(client.check_web2_secret(OWNER, "known")) is True
    assert asyncio.run(client.check_web2_secret(OWNER, "missing")) is False


def test_check_web3_secret_passes_address() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.params["secretAddress"])
        return httpx.Response(200)

    assert asyncio.run(_client(handler).check_web3_secret(OWNER)) is True
    assert seen == [OWNER]


def test_server_errors_are_collaborator_errors() -> None:
    client = _client(lambda request: httpx.Response(500))
    with pytest.raises(CollaboratorError) as excinfo:
        asyncio.run(client.check_web3_secret(OWNER))
    assert excinfo.value.service == "sms"
    assert excinfo.value.status == 500


def test_push_web2_secret_signs_challenge(market) -> None:
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["signature"] = request.headers["Authorization"]
        captured["body"] = request.content
        return httpx.Response(204)

    pushed = asyncio.run(_client(handler, market.signer).push_web2_secret(market.REQUESTER, "api-key", "s3cr3t"))

    assert pushed is True
    assert captured["body"] == b"s3cr3t"
    message = encode_defunct(primitive=web2_secret_challenge(market.REQUESTER, "api-key", "s3cr3t"))
    assert Account.recover_message(message, signature=captured["signature"]) == market.REQUESTER


def test_push_existing_secret_returns_false(market) -> None:
    client = _client(lambda request: httpx.Response(409), market.signer)
    assert asyncio.run(client.push_web2_secret(market.REQUESTER, "api-key", "value")) is False
