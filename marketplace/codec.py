"""Normalization helpers for amounts, addresses, identifiers and tags.

All functions are pure: they never touch the network and raise
:class:`~marketplace.errors.ValidationError` on malformed input.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional, Sequence, Union

from web3 import Web3

from .constants import AMOUNT_UNITS, NULL_ADDRESS, TAG_BITS, TEE_FRAMEWORKS, TEE_TAG
from .errors import TagConsistencyError, ValidationError

_UINT256_MAX = (1 << 256) - 1
_BYTES32_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")
_HEX_PATTERN = re.compile(r"^0x([0-9a-fA-F]{2})*$")
_AMOUNT_PATTERN = re.compile(r"^\s*([0-9]+(?:\.[0-9]+)?)\s*([A-Za-z]+)?\s*$")

_TAG_NAMES = {name: bit for bit, name in TAG_BITS.items()}

TagInput = Union[str, Sequence[str], int, bytes]


# ---------------------------------------------------------------------------
# Numbers and amounts

def normalize_uint256(value: Any, *, name: str = "value") -> int:
    """Return ``value`` as an int in the uint256 range."""

    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an unsigned integer")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError as exc:
            raise ValidationError(f"{name} must be an unsigned integer, got {value!r}") from exc
    else:
        raise ValidationError(f"{name} must be an unsigned integer, got {type(value).__name__}")
    if parsed < 0 or parsed > _UINT256_MAX:
        raise ValidationError(f"{name} is out of the uint256 range")
    return parsed


def parse_amount(value: Any, *, default_unit: str = "nRLC") -> int:
    """Convert a human friendly amount into nRLC.

    Accepts ints, numeric strings (interpreted in ``default_unit``) and
    ``"<number> <unit>"`` strings such as ``"1.5 RLC"``.
    """

    if isinstance(value, bool):
        raise ValidationError("amount must be a number")
    if isinstance(value, int):
        if value < 0:
            raise ValidationError("amount must be positive")
        return value
    if not isinstance(value, str):
        raise ValidationError(f"amount must be an int or a string, got {type(value).__name__}")
    match = _AMOUNT_PATTERN.match(value)
    if match is None:
        raise ValidationError(f"Invalid amount {value!r}")
    number, unit = match.group(1), match.group(2) or default_unit
    multiplier = AMOUNT_UNITS.get(unit.lower())
    if multiplier is None:
        raise ValidationError(f"Invalid amount unit {unit!r}, expected one of nRLC, RLC")
    try:
        scaled = Decimal(number) * multiplier
    except InvalidOperation as exc:  # pragma: no cover - guarded by the regex
        raise ValidationError(f"Invalid amount {value!r}") from exc
    if scaled != scaled.to_integral_value():
        raise ValidationError(f"Amount {value!r} is not a whole number of nRLC")
    return normalize_uint256(int(scaled), name="amount")


def format_amount(nrlc: int, unit: str = "RLC") -> str:
    """Format an nRLC amount in ``unit`` without trailing zeros."""

    multiplier = AMOUNT_UNITS.get(unit.lower())
    if multiplier is None:
        raise ValidationError(f"Invalid amount unit {unit!r}")
    value = Decimal(int(nrlc)) / Decimal(multiplier)
    text = format(value.normalize(), "f")
    return text


# ---------------------------------------------------------------------------
# Addresses and hex identifiers

def normalize_address(value: Any, *, name: str = "address") -> str:
    if not isinstance(value, str) or not Web3.is_address(value):
        raise ValidationError(f"{name} must be a 0x-prefixed 20-byte address, got {value!r}")
    return Web3.to_checksum_address(value)


def is_null_address(value: Optional[str]) -> bool:
    return value is None or value.lower() == NULL_ADDRESS


def same_address(left: Optional[str], right: Optional[str]) -> bool:
    return (left or NULL_ADDRESS).lower() == (right or NULL_ADDRESS).lower()


def normalize_bytes32(value: Any, *, name: str = "bytes32") -> str:
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 32:
            raise ValidationError(f"{name} must be 32 bytes long")
        return "0x" + bytes(value).hex()
    if not isinstance(value, str) or not _BYTES32_PATTERN.match(value):
        raise ValidationError(f"{name} must be a 0x-prefixed 32-byte hex string, got {value!r}")
    return value.lower()


def normalize_hex(value: Any, *, name: str = "bytes") -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if not isinstance(value, str) or not _HEX_PATTERN.match(value):
        raise ValidationError(f"{name} must be a 0x-prefixed hex string")
    return value.lower()


def bytes32_to_bytes(value: str) -> bytes:
    return bytes.fromhex(normalize_bytes32(value)[2:])


# ---------------------------------------------------------------------------
# Tags

def tag_to_int(tag: TagInput) -> int:
    if isinstance(tag, int) and not isinstance(tag, bool):
        if tag < 0 or tag > _UINT256_MAX:
            raise ValidationError("tag is out of the bytes32 range")
        return tag
    return int(encode_tag(tag), 16)


def int_to_tag(value: int) -> str:
    return "0x" + format(value, "064x")


def encode_tag(tags: TagInput) -> str:
    """Encode tag names (or a raw bytes32 tag) into the bytes32 wire format."""

    if isinstance(tags, (bytes, bytearray)):
        return normalize_bytes32(tags, name="tag")
    if isinstance(tags, int) and not isinstance(tags, bool):
        return int_to_tag(tag_to_int(tags))
    if isinstance(tags, str):
        text = tags.strip()
        if text.startswith("0x"):
            return normalize_bytes32(text, name="tag")
        names: Iterable[str] = [part.strip() for part in text.split(",") if part.strip()]
    else:
        names = tags
    value = 0
    for name in names:
        if not isinstance(name, str):
            raise ValidationError(f"Invalid tag {name!r}")
        bit = _TAG_NAMES.get(name.strip().lower())
        if bit is None:
            raise ValidationError(f"Unknown tag {name}")
        value |= 1 << bit
    return int_to_tag(value)


def decode_tag(tag: TagInput) -> List[str]:
    """Return the tag names set in ``tag``, in bit order."""

    value = tag_to_int(tag)
    names: List[str] = []
    bit = 0
    while value >> bit:
        if (value >> bit) & 1:
            name = TAG_BITS.get(bit)
            if name is None:
                raise ValidationError(f"Unknown bit {bit} in tag")
            names.append(name)
        bit += 1
    return names


def _known_names(value: int) -> List[str]:
    return [name for bit, name in sorted(TAG_BITS.items()) if (value >> bit) & 1]


def missing_tag_names(required: TagInput, offered: TagInput) -> List[str]:
    """Names of the bits set in ``required`` but not in ``offered``."""

    missing = tag_to_int(required) & ~tag_to_int(offered)
    names: List[str] = []
    bit = 0
    while missing >> bit:
        if (missing >> bit) & 1:
            names.append(TAG_BITS.get(bit, str(bit)))
        bit += 1
    return names


def tag_framework(tag: TagInput) -> Optional[str]:
    """Return the TEE framework selected by ``tag`` if any."""

    names = _known_names(tag_to_int(tag))
    for framework in TEE_FRAMEWORKS:
        if framework in names:
            return framework
    return None


def check_tag_consistency(tag: TagInput) -> None:
    """Ensure the TEE flag and the framework sub-tags are used together."""

    names = _known_names(tag_to_int(tag))
    frameworks = [name for name in names if name in TEE_FRAMEWORKS]
    if len(frameworks) > 1:
        raise TagConsistencyError(
            f"tee framework tags are exclusive ({' and '.join(repr(f) for f in frameworks)})"
        )
    if TEE_TAG in names and not frameworks:
        choices = "|".join(repr(framework) for framework in TEE_FRAMEWORKS)
        raise TagConsistencyError(f"'tee' tag must be used with a tee framework ({choices})")
    if frameworks and TEE_TAG not in names:
        raise TagConsistencyError(f"{frameworks[0]!r} tag must be used with 'tee' tag")


def has_tee(tag: TagInput) -> bool:
    return bool(tag_to_int(tag) & (1 << _TAG_NAMES[TEE_TAG]))
