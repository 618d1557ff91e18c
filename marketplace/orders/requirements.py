"""Advisory checks run before signing an order.

These checks do not depend on balances or consumed volume. They catch
configurations that would be accepted on-chain but fail later, while a worker
executes the task: inconsistent TEE tags, a framework the app was not built
for, or secrets that were never registered with the secret management service.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol

from ..codec import check_tag_consistency, has_tee, is_null_address, tag_framework
from ..constants import DEFAULT_STORAGE_PROVIDER, RESULT_ENCRYPTION_KEY_SECRET, STORAGE_TOKEN_SECRETS
from ..errors import MissingSecretError, TagConsistencyError, ValidationError
from .models import AppOrder, DatasetOrder, Order, OrderKind, RequestOrder

if TYPE_CHECKING:  # pragma: no cover
    from ..ledger import ChainContext

logger = logging.getLogger(__name__)


class SecretsChecker(Protocol):
    """Read side of the secret management service."""

    async def check_web2_secret(self, owner: str, name: str) -> bool:  # pragma: no cover - protocol
        """Whether ``owner`` registered the named secret."""

    async def check_web3_secret(self, address: str) -> bool:  # pragma: no cover - protocol
        """Whether the owner of the resource at ``address`` registered its key."""


def parse_app_framework(mrenclave: Any) -> Optional[str]:
    """Framework declared in the app's enclave descriptor, lowercased."""

    if not mrenclave or mrenclave == "0x":
        return None
    raw = bytes.fromhex(mrenclave[2:]) if isinstance(mrenclave, str) else bytes(mrenclave)
    try:
        descriptor = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.warning("app enclave descriptor is not valid JSON, framework check skipped")
        return None
    framework = descriptor.get("framework") if isinstance(descriptor, dict) else None
    return framework.lower() if isinstance(framework, str) else None


async def app_framework(context: "ChainContext", app: str) -> Optional[str]:
    return parse_app_framework(await context.call("app", "m_appMREnclave", at=app))


def _check_framework(declared: Optional[str], tag: str) -> None:
    requested = tag_framework(tag)
    if declared is None or requested is None:
        return
    if declared != requested:
        raise TagConsistencyError(
            f"Tag mismatch the TEE framework specified by app (expected {declared!r}, got {requested!r})"
        )


async def _check_dataset_secret(secrets: SecretsChecker, dataset: str) -> None:
    if not await secrets.check_web3_secret(dataset):
        raise MissingSecretError(
            f"Dataset encryption key is not set for dataset {dataset} in the SMS. Dataset decryption will fail.",
            owner=dataset,
        )


async def _check_request_secrets(secrets: SecretsChecker, order: RequestOrder) -> None:
    params: Dict[str, Any] = order.params_dict()
    tee = has_tee(order.tag)

    requester_secrets = params.get("iexec_secrets") or {}
    if requester_secrets and not tee:
        raise TagConsistencyError("Requester secrets (iexec_secrets) require the 'tee' tag")
    if not isinstance(requester_secrets, dict):
        raise ValidationError("iexec_secrets must map secret indexes to secret names")

    if tee:
        provider = params.get("iexec_result_storage_provider", DEFAULT_STORAGE_PROVIDER)
        token = STORAGE_TOKEN_SECRETS.get(provider)
        if token is None:
            raise ValidationError(f"Unsupported result storage provider {provider!r}")
        if not await secrets.check_web2_secret(order.requester, token):
            raise MissingSecretError(
                f"Requester storage token is not set for selected provider {provider!r}. "
                "Result archive upload will fail.",
                owner=order.requester,
                secret=token,
            )
        if not is_null_address(order.dataset):
            await _check_dataset_secret(secrets, order.dataset)

    if params.get("iexec_result_encryption") is True:
        if not await secrets.check_web2_secret(order.beneficiary, RESULT_ENCRYPTION_KEY_SECRET):
            raise MissingSecretError(
                "Beneficiary result encryption key is not set in the SMS. Result encryption will fail.",
                owner=order.beneficiary,
                secret=RESULT_ENCRYPTION_KEY_SECRET,
            )

    for index in sorted(requester_secrets, key=str):
        alias = requester_secrets[index]
        if not await secrets.check_web2_secret(order.requester, str(alias)):
            raise MissingSecretError(
                f"Requester secret {alias!r} (index {index}) is not set for requester {order.requester} "
                "in the SMS. Requester secret provisioning will fail.",
                owner=order.requester,
                secret=str(alias),
            )


async def check_order_requirements(
    context: "ChainContext",
    order: Order,
    *,
    secrets_checker: Optional[SecretsChecker] = None,
) -> None:
    """Fail fast on tag or secret configurations that would break execution."""

    check_tag_consistency(order.tag)

    if isinstance(order, (AppOrder, RequestOrder)):
        _check_framework(await app_framework(context, order.app), order.tag)

    if secrets_checker is None:
        if order.kind in (OrderKind.REQUEST, OrderKind.DATASET) and has_tee(order.tag):
            logger.warning("no secret management client configured, %s secret checks skipped", order.kind.value)
        return

    if isinstance(order, DatasetOrder) and has_tee(order.tag):
        await _check_dataset_secret(secrets_checker, order.dataset)
    elif isinstance(order, RequestOrder):
        await _check_request_secrets(secrets_checker, order)
