import asyncio

import pytest
from web3 import Web3

from marketplace.constants import NULL_ADDRESS
from marketplace.deals import compute_task_id, show_deal
from marketplace.errors import ObjectNotFoundError, ValidationError

DEALID = "0x" + "de" * 32


def test_compute_task_id_is_solidity_keccak() -> None:
    expected = Web3.keccak(bytes.fromhex("de" * 32) + (3).to_bytes(32, "big")).hex()
    assert compute_task_id(DEALID, 3).removeprefix("0x") == expected.removeprefix("0x")
    assert compute_task_id(DEALID, 0) != compute_task_id(DEALID, 1)


def test_compute_task_id_validates_inputs() -> None:
    with pytest.raises(ValidationError):
        compute_task_id("0x1234", 0)
    with pytest.raises(ValidationError):
        compute_task_id(DEALID, -1)


def test_show_deal_lists_tasks_and_final_time(market) -> None:
    start = int(market.clock.now)
    market.ledger.set("hub", "viewDeal", market.deal(botFirst=2, botSize=3, startTime=start))

    deal = asyncio.run(show_deal(market.context, DEALID.upper().replace("0X", "0x")))

    assert deal["dealid"] == DEALID
    assert deal["finalTime"] == start + 10 * 300
    assert deal["deadlineReached"] is False
    assert deal["tasks"] == {idx: compute_task_id(DEALID, idx) for idx in (2, 3, 4)}


def test_show_deal_past_final_time(market) -> None:
    market.ledger.set("hub", "viewDeal", market.deal(startTime=int(market.clock.now) - 3000))
    assert asyncio.run(show_deal(market.context, DEALID))["deadlineReached"] is True


def test_show_unknown_deal(market) -> None:
    market.ledger.set(
        "hub", "viewDeal", market.deal(app={"pointer": NULL_ADDRESS, "owner": NULL_ADDRESS, "price": 0})
    )
    with pytest.raises(ObjectNotFoundError, match="No deal found"):
        asyncio.run(show_deal(market.context, DEALID))
