"""Protocol constants shared across the marketplace client."""

from __future__ import annotations

from typing import Dict, Tuple

NULL_ADDRESS = "0x0000000000000000000000000000000000000000"
NULL_BYTES32 = "0x" + "0" * 64
NULL_BYTES = "0x"

EIP712_DOMAIN_NAME = "iExecODB"
EIP712_DOMAIN_VERSION = "3.0-alpha"

EIP712_DOMAIN_MEMBERS: Tuple[Tuple[str, str], ...] = (
    ("name", "string"),
    ("version", "string"),
    ("chainId", "uint256"),
    ("verifyingContract", "address"),
)

# 1 RLC == 10**9 nRLC
NRLC_DECIMALS = 9
AMOUNT_UNITS: Dict[str, int] = {
    "nrlc": 1,
    "rlc": 10**NRLC_DECIMALS,
}

# bit index -> tag name; scone and gramine are mutually exclusive frameworks
TAG_BITS: Dict[int, str] = {
    0: "tee",
    1: "scone",
    2: "gramine",
    8: "gpu",
}
TEE_TAG = "tee"
TEE_FRAMEWORKS: Tuple[str, ...] = ("scone", "gramine")

TASK_STATUS_NAMES: Dict[int, str] = {
    0: "UNSET",
    1: "ACTIVE",
    2: "REVEALING",
    3: "COMPLETED",
    4: "FAILED",
    5: "INTERRUPTED",
}
TASK_TIMEOUT_STATUS = "TIMEOUT"
STATUS_UNSET = 0
STATUS_ACTIVE = 1
STATUS_REVEALING = 2
STATUS_COMPLETED = 3
STATUS_FAILED = 4
STATUS_INTERRUPTED = 5
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_FAILED})

FLAVOUR_STANDARD = "standard"
FLAVOUR_ENTERPRISE = "enterprise"

# secret names registered with the secret management service
RESULT_ENCRYPTION_KEY_SECRET = "iexec-result-encryption-public-key"
STORAGE_TOKEN_SECRETS: Dict[str, str] = {
    "ipfs": "iexec-result-iexec-ipfs-token",
    "dropbox": "iexec-result-dropbox-token",
}
DEFAULT_STORAGE_PROVIDER = "ipfs"
