"""Error taxonomy for the marketplace client.

Every failure raised by this package derives from :class:`MarketplaceError` and
carries a stable ``code`` so callers can branch on the failure kind without
parsing messages. The families are:

``ValidationError``
    malformed input, raised before any I/O.
``ObjectNotFoundError``
    the ledger has no such order, deal, task or resource.
``PreconditionError``
    the input is well formed but the operation cannot succeed against the
    current ledger state (match preflight failures, stake, signer, whitelist).
``ConfirmationError``
    a transaction landed without emitting the expected event.
``CollaboratorError``
    transport failures talking to the ledger, gateway or secret service.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional


class MarketplaceError(RuntimeError):
    """Base class for all marketplace client failures."""

    code = "MARKETPLACE_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class ValidationError(MarketplaceError):
    code = "VALIDATION_ERROR"


class ObjectNotFoundError(MarketplaceError):
    code = "NOT_FOUND"

    def __init__(self, object_name: str, object_id: str, chain_id: Optional[int] = None) -> None:
        chain = f" on chain {chain_id}" if chain_id is not None else ""
        super().__init__(f"No {object_name} found for id {object_id}{chain}")
        self.object_name = object_name
        self.object_id = object_id
        self.chain_id = chain_id


class ConfirmationError(MarketplaceError):
    code = "NOT_CONFIRMED"

    def __init__(self, event: str, tx_hash: Optional[str] = None) -> None:
        super().__init__(f"{event} not confirmed")
        self.event = event
        self.tx_hash = tx_hash


class CollaboratorError(MarketplaceError):
    code = "COLLABORATOR_ERROR"

    def __init__(self, message: str, *, service: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.service = service
        self.status = status


class PreconditionError(MarketplaceError):
    code = "PRECONDITION_FAILED"


class InvalidSigner(PreconditionError):
    code = "INVALID_SIGNER"

    def __init__(self, kind: str, expected: str, got: str) -> None:
        role = "requester" if kind == "requestorder" else "resource owner"
        super().__init__(f"Invalid order signer, must be the {role} ({expected}), got {got}")
        self.kind = kind
        self.expected = expected
        self.got = got


class AlreadyCanceled(PreconditionError):
    code = "ALREADY_CANCELED"

    def __init__(self, kind: str, order_hash: str) -> None:
        super().__init__(f"{kind} {order_hash} is already canceled or fully consumed")
        self.kind = kind
        self.order_hash = order_hash


class TagConsistencyError(PreconditionError):
    code = "TAG_INCONSISTENT"


class MissingSecretError(PreconditionError):
    code = "MISSING_SECRET"

    def __init__(self, message: str, *, owner: str, secret: Optional[str] = None) -> None:
        super().__init__(message)
        self.owner = owner
        self.secret = secret


class ResourceNotDeployed(PreconditionError):
    code = "RESOURCE_NOT_DEPLOYED"

    def __init__(self, kind: str, address: str) -> None:
        super().__init__(f"No {kind} deployed at address {address}")
        self.kind = kind
        self.address = address


class InvalidSignature(PreconditionError):
    code = "INVALID_SIGNATURE"

    def __init__(self, kind: str, expected: Optional[str] = None, recovered: Optional[str] = None) -> None:
        detail = f" (expected {expected}, recovered {recovered})" if expected else ""
        super().__init__(f"Invalid {kind} signature{detail}")
        self.kind = kind
        self.expected = expected
        self.recovered = recovered


class AddressMismatch(PreconditionError):
    code = "ADDRESS_MISMATCH"

    def __init__(self, field: str, request_value: str, peer_value: str) -> None:
        super().__init__(
            f"{field} mismatch between requestorder ({request_value}) and {field}order ({peer_value})"
        )
        self.field = field
        self.request_value = request_value
        self.peer_value = peer_value


class RestrictionViolation(PreconditionError):
    code = "RESTRICTION_VIOLATION"

    def __init__(self, kind: str, field: str, restriction: str, actual: str) -> None:
        super().__init__(f"{kind}.{field} restricts matching to {restriction}, got {actual}")
        self.kind = kind
        self.field = field
        self.restriction = restriction
        self.actual = actual


class CategoryMismatch(PreconditionError):
    code = "CATEGORY_MISMATCH"

    def __init__(self, request_category: int, workerpool_category: int) -> None:
        super().__init__(
            f"Category mismatch between requestorder ({request_category}) "
            f"and workerpoolorder ({workerpool_category})"
        )
        self.request_category = request_category
        self.workerpool_category = workerpool_category


class TrustTooLow(PreconditionError):
    code = "TRUST_TOO_LOW"

    def __init__(self, expected: int, got: int) -> None:
        super().__init__(f"workerpoolorder trust is too low (expected {expected}, got {got})")
        self.expected = expected
        self.got = got


class MissingTags(PreconditionError):
    code = "MISSING_TAGS"

    def __init__(self, kind: str, tags: Iterable[Any]) -> None:
        self.kind = kind
        self.tags = [str(tag) for tag in tags]
        super().__init__(f"Missing tags [{','.join(self.tags)}] in {kind}")


class PriceTooHigh(PreconditionError):
    code = "PRICE_TOO_HIGH"

    def __init__(self, resource: str, expected: int, got: int) -> None:
        super().__init__(
            f"{resource}order price ({got}) is greater than requestorder {resource}maxprice ({expected})"
        )
        self.resource = resource
        self.expected = expected
        self.got = got


class OrderFullyConsumed(PreconditionError):
    code = "ORDER_FULLY_CONSUMED"

    def __init__(self, kind: str, order_hash: Optional[str] = None) -> None:
        super().__init__(f"{kind} is fully consumed")
        self.kind = kind
        self.order_hash = order_hash


class InsufficientStakeError(PreconditionError):
    code = "INSUFFICIENT_STAKE"

    def __init__(self, message: str, *, role: str, required: int, available: int) -> None:
        super().__init__(message)
        self.role = role
        self.required = required
        self.available = available

    @property
    def shortfall(self) -> int:
        return max(0, self.required - self.available)


class NotAuthorized(PreconditionError):
    code = "NOT_AUTHORIZED"

    def __init__(self, role: str, address: str) -> None:
        super().__init__(f"{role} {address} is not authorized to interact with the marketplace")
        self.role = role
        self.address = address
