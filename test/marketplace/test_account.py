import asyncio

import pytest

from marketplace import account, hub
from marketplace.config import ChainConfig
from marketplace.errors import (
    ConfirmationError,
    NotAuthorized,
    ObjectNotFoundError,
    PreconditionError,
    ValidationError,
)
from marketplace.ledger import ChainContext


def test_show_account_defaults_to_signer(market) -> None:
    assert asyncio.run(account.show_account(market.context)) == {"stake": 100, "locked": 0}
    other = asyncio.run(account.show_account(market.context, market.APP_OWNER))
    assert other == {"stake": 0, "locked": 0}


def test_native_deposit_sends_value_in_wei(market) -> None:
    market.ledger.emit("hub", "deposit", {"event": "Transfer", "args": {}})
    result = asyncio.run(account.deposit(market.context, "1 RLC"))

    sent = market.ledger.sent[0]
    assert (sent.contract, sent.method, sent.args) == ("hub", "deposit", ())
    assert sent.tx_options["value"] == 10**9 * 10**9
    assert result == {"amount": 10**9, "txHash": "0x%064x" % 1}


def test_token_deposit_uses_approve_and_call(market) -> None:
    config = ChainConfig(name="token", chain_id=65535, hub_address=market.HUB, is_native=False)
    context = ChainContext(market.ledger, config, signer=market.signer)
    market.ledger.emit(
        "token",
        "approveAndCall",
        {"event": "Approval", "args": {}},
        {"event": "Transfer", "args": {}},
    )
    asyncio.run(account.deposit(context, 25))

    sent = market.ledger.sent[0]
    assert (sent.contract, sent.method) == ("token", "approveAndCall")
    assert sent.args == (market.HUB, 25, "0x")
    assert "value" not in sent.tx_options


def test_deposit_requires_transfer_event(market) -> None:
    with pytest.raises(ConfirmationError, match="Transfer"):
        asyncio.run(account.deposit(market.context, 1))


@pytest.mark.parametrize("amount", [0, "0 RLC"])
def test_deposit_rejects_zero(market, amount) -> None:
    with pytest.raises(ValidationError):
        asyncio.run(account.deposit(market.context, amount))


def test_enterprise_deposit_requires_whitelist(enterprise_market) -> None:
    enterprise_market.kyc.clear()
    with pytest.raises(NotAuthorized) as excinfo:
        asyncio.run(account.deposit(enterprise_market.context, 1))
    assert excinfo.value.role == "account"
    assert enterprise_market.ledger.sent == []


def test_withdraw_within_stake(market) -> None:
    market.ledger.emit("hub", "withdraw", {"event": "Transfer", "args": {}})
    result = asyncio.run(account.withdraw(market.context, 40))
    assert market.ledger.sent[0].args == (40,)
    assert result["amount"] == 40


def test_withdraw_above_stake(market) -> None:
    with pytest.raises(PreconditionError, match="Withdraw amount exceed account balance"):
        asyncio.run(account.withdraw(market.context, 101))
    assert market.ledger.sent == []


def test_hub_reads(market) -> None:
    assert asyncio.run(hub.count_category(market.context)) == 5
    assert asyncio.run(hub.get_timeout_ratio(market.context)) == 10
    assert asyncio.run(hub.show_category(market.context, 1)) == {
        "id": 1,
        "name": "S",
        "description": "small",
        "workClockTimeRef": 300,
    }
    with pytest.raises(ObjectNotFoundError):
        asyncio.run(hub.show_category(market.context, 5))
    assert hub.get_network(market.context) == {"chainId": 134, "isNative": True}
