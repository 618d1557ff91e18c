import asyncio
import json
from typing import List, Set, Tuple

import pytest

from marketplace.errors import MissingSecretError, TagConsistencyError
from marketplace.orders import check_order_requirements
from marketplace.orders.requirements import parse_app_framework


class FakeSecrets:
    def __init__(self, web2: Set[Tuple[str, str]] = frozenset(), web3: Set[str] = frozenset()) -> None:
        self.web2 = {(owner.lower(), name) for owner, name in web2}
        self.web3 = {address.lower() for address in web3}
        self.calls: List[Tuple[str, ...]] = []

    async def check_web2_secret(self, owner: str, name: str) -> bool:
        self.calls.append(("web2", owner.lower(), name))
        return (owner.lower(), name) in self.web2

    async def check_web3_secret(self, address: str) -> bool:
        self.calls.append(("web3", address.lower()))
        return address.lower() in self.web3


def _enclave(framework: str) -> str:
    return "0x" + json.dumps({"framework": framework, "version": "v5"}).encode().hex()


def test_parse_app_framework() -> None:
    assert parse_app_framework("0x") is None
    assert parse_app_framework(_enclave("SCONE")) == "scone"
    assert parse_app_framework("0x" + b"not json".hex()) is None


def test_inconsistent_tag_fails_before_any_secret_check(market) -> None:
    secrets = FakeSecrets()
    with pytest.raises(TagConsistencyError):
        asyncio.run(check_order_requirements(market.context, market.app_order(tag=["scone"]), secrets_checker=secrets))
    assert secrets.calls == []


def test_framework_must_match_app_enclave(market) -> None:
    market.ledger.set("app", "m_appMREnclave", _enclave("gramine"), at=market.APP)
    with pytest.raises(TagConsistencyError, match="expected 'gramine', got 'scone'"):
        asyncio.run(check_order_requirements(market.context, market.app_order(tag=["tee", "scone"])))
    asyncio.run(check_order_requirements(market.context, market.app_order(tag=["tee", "gramine"])))


def test_tee_dataset_order_requires_dataset_key(market) -> None:
    order = market.dataset_order(tag=["tee", "scone"])
    with pytest.raises(MissingSecretError, match="Dataset encryption key"):
        asyncio.run(check_order_requirements(market.context, order, secrets_checker=FakeSecrets()))
    asyncio.run(
        check_order_requirements(market.context, order, secrets_checker=FakeSecrets(web3={market.DATASET}))
    )


def test_requester_secrets_need_tee(market) -> None:
    order = market.request_order(params={"iexec_secrets": {"1": "api-key"}})
    with pytest.raises(TagConsistencyError, match="iexec_secrets"):
        asyncio.run(check_order_requirements(market.context, order, secrets_checker=FakeSecrets()))


def test_tee_request_checks_storage_token_then_dataset_then_aliases(market) -> None:
    order = market.request_order(
        tag=["tee", "scone"],
        params={"iexec_secrets": {"1": "api-key"}},
    )
    requester = market.REQUESTER

    with pytest.raises(MissingSecretError) as excinfo:
        asyncio.run(check_order_requirements(market.context, order, secrets_checker=FakeSecrets()))
    assert excinfo.value.secret == "iexec-result-iexec-ipfs-token"

    storage = {(requester, "iexec-result-iexec-ipfs-token")}
    with pytest.raises(MissingSecretError, match="Dataset encryption key"):
        asyncio.run(check_order_requirements(market.context, order, secrets_checker=FakeSecrets(web2=storage)))

    with pytest.raises(MissingSecretError) as excinfo:
        asyncio.run(
            check_order_requirements(
                market.context, order, secrets_checker=FakeSecrets(web2=storage, web3={market.DATASET})
            )
        )
    assert excinfo.value.secret == "api-key"

    complete = FakeSecrets(web2=storage | {(requester, "api-key")}, web3={market.DATASET})
    asyncio.run(check_order_requirements(market.context, order, secrets_checker=complete))


def test_result_encryption_requires_beneficiary_key(market) -> None:
    order = market.request_order(params={"iexec_result_encryption": True})
    with pytest.raises(MissingSecretError, match="Beneficiary result encryption key"):
        asyncio.run(check_order_requirements(market.context, order, secrets_checker=FakeSecrets()))
    secrets = FakeSecrets(web2={(market.REQUESTER, "iexec-result-encryption-public-key")})
    asyncio.run(check_order_requirements(market.context, order, secrets_checker=secrets))


def test_secret_checks_are_skipped_without_checker(market, caplog) -> None:
    order = market.request_order(tag=["tee", "scone"], params={"iexec_secrets": {"1": "api-key"}})
    with caplog.at_level("WARNING", logger="marketplace.orders.requirements"):
        asyncio.run(check_order_requirements(market.context, order))
    assert "secret checks skipped" in caplog.text
