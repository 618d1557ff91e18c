"""Chain configuration for the marketplace client."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .constants import FLAVOUR_ENTERPRISE, FLAVOUR_STANDARD
from .errors import ValidationError

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "chains.yaml"
DEFAULT_IPFS_GATEWAY = "https://ipfs-gateway.v8-bellecour.iex.ec"

ENV_CHAIN = "MARKETPLACE_CHAIN"
ENV_CONFIG = "MARKETPLACE_CONFIG"
ENV_PRIVATE_KEY = "MARKETPLACE_PRIVATE_KEY"
_ENV_OVERRIDES = {
    "rpc_url": "MARKETPLACE_RPC_URL",
    "hub_address": "MARKETPLACE_HUB_ADDRESS",
    "gateway_url": "MARKETPLACE_GATEWAY_URL",
    "sms_url": "MARKETPLACE_SMS_URL",
}


def _is_address(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("0x") and len(value) == 42


@dataclass
class ChainConfig:
    """Endpoints and protocol settings of one chain."""

    name: str
    chain_id: int
    hub_address: str
    rpc_url: Optional[str] = None
    gateway_url: Optional[str] = None
    sms_url: Optional[str] = None
    ipfs_gateway_url: str = DEFAULT_IPFS_GATEWAY
    flavour: str = FLAVOUR_STANDARD
    is_native: bool = False
    confirms: int = 1
    poll_interval_seconds: float = 5.0
    tx_options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValidationError("name must be a non-empty string")
        if not isinstance(self.chain_id, int) or self.chain_id <= 0:
            raise ValidationError("chain_id must be a positive integer")
        if not _is_address(self.hub_address):
            raise ValidationError("hub_address must be a 0x-prefixed 20-byte address")
        if self.flavour not in (FLAVOUR_STANDARD, FLAVOUR_ENTERPRISE):
            raise ValidationError(f"flavour must be {FLAVOUR_STANDARD!r} or {FLAVOUR_ENTERPRISE!r}")
        if not isinstance(self.confirms, int) or self.confirms < 1:
            raise ValidationError("confirms must be a positive integer")
        if self.poll_interval_seconds <= 0:
            raise ValidationError("poll_interval_seconds must be positive")
        for key in ("rpc_url", "gateway_url", "sms_url", "ipfs_gateway_url"):
            value = getattr(self, key)
            if value is not None:
                setattr(self, key, value.rstrip("/"))

    @property
    def is_enterprise(self) -> bool:
        return self.flavour == FLAVOUR_ENTERPRISE

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "ChainConfig":
        def _resolve(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in data:
                    return data[key]
            return default

        chain_id = _resolve("chain_id", "chainId", "id")
        if chain_id is None:
            raise ValidationError(f"chain {name!r} is missing chain_id")
        return cls(
            name=str(name),
            chain_id=int(chain_id),
            hub_address=str(_resolve("hub_address", "hubAddress", "hub", default="")),
            rpc_url=_resolve("rpc_url", "rpcURL", "host"),
            gateway_url=_resolve("gateway_url", "iexecGatewayURL", "gatewayUrl"),
            sms_url=_resolve("sms_url", "smsURL", "smsUrl"),
            ipfs_gateway_url=_resolve("ipfs_gateway_url", "ipfsGatewayURL", default=DEFAULT_IPFS_GATEWAY),
            flavour=str(_resolve("flavour", default=FLAVOUR_STANDARD)),
            is_native=bool(_resolve("is_native", "isNative", "native", default=False)),
            confirms=int(_resolve("confirms", default=1)),
            poll_interval_seconds=float(_resolve("poll_interval_seconds", "pollIntervalSeconds", default=5.0)),
            tx_options=dict(_resolve("tx_options", "txOptions", default={}) or {}),
        )

    def with_env(self, environ: Optional[Mapping[str, str]] = None) -> "ChainConfig":
        env = os.environ if environ is None else environ
        updates = {key: env[var] for key, var in _ENV_OVERRIDES.items() if env.get(var)}
        return replace(self, **updates) if updates else self


def _read(path: str | Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(Path(path).read_text()) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ValidationError(f"cannot read chain configuration from {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValidationError("chain configuration must be a mapping")
    return data


def _parse_chains(data: Mapping[str, Any]) -> Dict[str, ChainConfig]:
    chains = data.get("chains")
    if chains is None:
        chains = {key: value for key, value in data.items() if key != "default"}
    if not isinstance(chains, dict):
        raise ValidationError("chains must be a mapping of name to settings")
    return {str(name): ChainConfig.from_mapping(str(name), conf or {}) for name, conf in chains.items()}


def load_chains(path: str | Path) -> Dict[str, ChainConfig]:
    """Load every chain declared in a YAML file."""

    return _parse_chains(_read(path))


def load_config(
    path: str | Path | None = None,
    chain: Optional[str] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> ChainConfig:
    """Resolve the active chain from file, defaults and environment overrides."""

    env = os.environ if environ is None else environ
    config_path = Path(path or env.get(ENV_CONFIG) or DEFAULT_CONFIG_PATH)
    data = _read(config_path)
    chains = _parse_chains(data)
    selected = chain or env.get(ENV_CHAIN) or data.get("default")
    if selected is None:
        if len(chains) != 1:
            raise ValidationError("no chain selected and the configuration declares several chains")
        selected = next(iter(chains))
    try:
        config = chains[str(selected)]
    except KeyError as exc:
        raise ValidationError(f"unknown chain {selected!r}, expected one of {', '.join(sorted(chains))}") from exc
    return config.with_env(env)
