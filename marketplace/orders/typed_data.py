"""EIP-712 typed-data construction and order hashing.

The member order of every order type comes from :data:`OrderKind.spec` and
mirrors the on-chain struct layout; the resulting hash is the identifier the
clerk contract uses to track consumed volume.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from web3 import Web3

from ..codec import bytes32_to_bytes, normalize_address
from ..constants import (
    EIP712_DOMAIN_MEMBERS,
    EIP712_DOMAIN_NAME,
    EIP712_DOMAIN_VERSION,
    NULL_ADDRESS,
    NULL_BYTES,
    NULL_BYTES32,
)
from ..errors import ValidationError
from .models import Order, OrderKind

TypedData = Dict[str, Any]


def eip712_domain(chain_id: int, verifying_contract: str) -> Dict[str, Any]:
    return {
        "name": EIP712_DOMAIN_NAME,
        "version": EIP712_DOMAIN_VERSION,
        "chainId": int(chain_id),
        "verifyingContract": normalize_address(verifying_contract, name="verifyingContract"),
    }


def order_types(kind: OrderKind) -> Dict[str, List[Dict[str, str]]]:
    return {
        "EIP712Domain": [{"name": name, "type": type_} for name, type_ in EIP712_DOMAIN_MEMBERS],
        kind.spec.primary_type: [{"name": name, "type": type_} for name, type_ in kind.spec.members],
    }


def order_message(order: Order) -> Dict[str, Any]:
    """Order fields converted to the python types the encoder expects."""

    message: Dict[str, Any] = {}
    for (name, type_), value in zip(order.kind.spec.members, order.struct_values()):
        message[name] = bytes32_to_bytes(value) if type_ == "bytes32" else value
    return message


def build_typed_data(order: Order, domain: Mapping[str, Any]) -> TypedData:
    kind = order.kind
    return {
        "types": order_types(kind),
        "domain": dict(domain),
        "primaryType": kind.spec.primary_type,
        "message": order_message(order),
    }


def _signable(typed_data: TypedData) -> SignableMessage:
    return encode_typed_data(full_message=typed_data)


def hash_typed_data(typed_data: TypedData) -> str:
    signable = _signable(typed_data)
    digest = Web3.keccak(b"\x19" + signable.version + signable.header + signable.body)
    return "0x" + bytes(digest).hex()


def compute_order_hash(order: Order, domain: Mapping[str, Any]) -> str:
    """Return the bytes32 order hash under ``domain``.

    Pure function of the order fields (salt included) and the domain; the
    domain must carry the live clerk address as ``verifyingContract``.
    """

    return hash_typed_data(build_typed_data(order, domain))


def recover_order_signer(order: Order, domain: Mapping[str, Any]) -> Optional[str]:
    """Address recovered from ``order.sign``; ``None`` when it cannot be recovered."""

    if order.sign is None:
        return None
    try:
        return Account.recover_message(_signable(build_typed_data(order, domain)), signature=order.sign)
    except Exception:  # malformed signature bytes
        return None


def order_to_struct(order: Order) -> List[Any]:
    return list(order.struct_values())


def signed_order_to_struct(order: Order) -> List[Any]:
    """Positional array expected by the match and cancel transactions."""

    if not order.is_signed:
        raise ValidationError(f"{order.kind.value} is not signed")
    return order_to_struct(order) + [order.sign]


def null_dataset_struct() -> List[Any]:
    """Struct sent in place of a dataset order when the request needs none."""

    return [
        NULL_ADDRESS,
        0,
        0,
        NULL_BYTES32,
        NULL_ADDRESS,
        NULL_ADDRESS,
        NULL_ADDRESS,
        NULL_BYTES32,
        NULL_BYTES,
    ]
