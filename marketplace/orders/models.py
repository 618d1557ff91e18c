"""Order models for the four marketplace order kinds."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from ..codec import encode_tag, normalize_address, normalize_bytes32, normalize_hex, normalize_uint256, parse_amount
from ..constants import NULL_ADDRESS, NULL_BYTES, NULL_BYTES32
from ..errors import ValidationError

StructMembers = Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class OrderSpec:
    """Static description of an order kind."""

    primary_type: str
    members: StructMembers
    resource_field: Optional[str]
    cancel_method: str
    cancel_event: str
    api_endpoint: str
    deal_field: str


class OrderKind(str, Enum):
    """Enumerated order kinds, valued by their wire name."""

    APP = "apporder"
    DATASET = "datasetorder"
    WORKERPOOL = "workerpoolorder"
    REQUEST = "requestorder"

    @property
    def spec(self) -> OrderSpec:
        return _ORDER_SPECS[self]

    @property
    def resource(self) -> str:
        """Resource name without the ``order`` suffix (``app``, ``dataset``...)."""

        return self.value[: -len("order")]

    @classmethod
    def parse(cls, value: Union[str, "OrderKind"]) -> "OrderKind":
        try:
            return cls(value)
        except ValueError as exc:
            raise ValidationError(f"Invalid order kind {value!r}") from exc


# The member order mirrors the on-chain struct layout and is part of the
# typed-data type string; it must never be reordered.
_ORDER_SPECS: Dict[OrderKind, OrderSpec] = {
    OrderKind.APP: OrderSpec(
        primary_type="AppOrder",
        members=(
            ("app", "address"),
            ("appprice", "uint256"),
            ("volume", "uint256"),
            ("tag", "bytes32"),
            ("datasetrestrict", "address"),
            ("workerpoolrestrict", "address"),
            ("requesterrestrict", "address"),
            ("salt", "bytes32"),
        ),
        resource_field="app",
        cancel_method="cancelAppOrder",
        cancel_event="ClosedAppOrder",
        api_endpoint="apporders",
        deal_field="appHash",
    ),
    OrderKind.DATASET: OrderSpec(
        primary_type="DatasetOrder",
        members=(
            ("dataset", "address"),
            ("datasetprice", "uint256"),
            ("volume", "uint256"),
            ("tag", "bytes32"),
            ("apprestrict", "address"),
            ("workerpoolrestrict", "address"),
            ("requesterrestrict", "address"),
            ("salt", "bytes32"),
        ),
        resource_field="dataset",
        cancel_method="cancelDatasetOrder",
        cancel_event="ClosedDatasetOrder",
        api_endpoint="datasetorders",
        deal_field="datasetHash",
    ),
    OrderKind.WORKERPOOL: OrderSpec(
        primary_type="WorkerpoolOrder",
        members=(
            ("workerpool", "address"),
            ("workerpoolprice", "uint256"),
            ("volume", "uint256"),
            ("tag", "bytes32"),
            ("category", "uint256"),
            ("trust", "uint256"),
            ("apprestrict", "address"),
            ("datasetrestrict", "address"),
            ("requesterrestrict", "address"),
            ("salt", "bytes32"),
        ),
        resource_field="workerpool",
        cancel_method="cancelWorkerpoolOrder",
        cancel_event="ClosedWorkerpoolOrder",
        api_endpoint="workerpoolorders",
        deal_field="workerpoolHash",
    ),
    OrderKind.REQUEST: OrderSpec(
        primary_type="RequestOrder",
        members=(
            ("app", "address"),
            ("appmaxprice", "uint256"),
            ("dataset", "address"),
            ("datasetmaxprice", "uint256"),
            ("workerpool", "address"),
            ("workerpoolmaxprice", "uint256"),
            ("requester", "address"),
            ("volume", "uint256"),
            ("tag", "bytes32"),
            ("category", "uint256"),
            ("trust", "uint256"),
            ("beneficiary", "address"),
            ("callback", "address"),
            ("params", "string"),
            ("salt", "bytes32"),
        ),
        resource_field=None,
        cancel_method="cancelRequestOrder",
        cancel_event="ClosedRequestOrder",
        api_endpoint="requestorders",
        deal_field="requestHash",
    ),
}


class _Order(BaseModel):
    """Common behaviour of all order kinds."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    KIND: ClassVar[OrderKind]

    volume: int = Field(..., ge=1)
    tag: str = NULL_BYTES32
    salt: Optional[str] = None
    sign: Optional[str] = None

    @field_validator("volume", mode="before")
    @classmethod
    def check_volume(cls, value: Any) -> int:
        return normalize_uint256(value, name="volume")

    @field_validator("tag", mode="before")
    @classmethod
    def check_tag(cls, value: Any) -> str:
        return encode_tag(value)

    @field_validator("salt", mode="before")
    @classmethod
    def check_salt(cls, value: Any) -> Optional[str]:
        return None if value is None else normalize_bytes32(value, name="salt")

    @field_validator("sign", mode="before")
    @classmethod
    def check_sign(cls, value: Any) -> Optional[str]:
        if value is None or value == NULL_BYTES:
            return None
        return normalize_hex(value, name="sign")

    @property
    def kind(self) -> OrderKind:
        return self.KIND

    @property
    def is_signed(self) -> bool:
        return self.salt is not None and self.sign is not None

    def struct_values(self) -> List[Any]:
        """Field values in the canonical on-chain order."""

        if self.salt is None:
            raise ValidationError(f"{self.KIND.value} is missing a salt")
        return [getattr(self, name) for name, _type in self.KIND.spec.members]

    def to_dict(self) -> Dict[str, Any]:
        """JSON friendly representation, as exchanged with the gateway."""

        return self.model_dump(exclude_none=True)


def _address_validator(*fields: str):
    def _validate(cls, value: Any, info) -> str:  # type: ignore[no-untyped-def]
        return normalize_address(value, name=info.field_name)

    return field_validator(*fields, mode="before")(_validate)


def _price_validator(*fields: str):
    def _validate(cls, value: Any) -> int:  # type: ignore[no-untyped-def]
        return parse_amount(value)

    return field_validator(*fields, mode="before")(_validate)


def _uint_validator(*fields: str):
    def _validate(cls, value: Any, info) -> int:  # type: ignore[no-untyped-def]
        return normalize_uint256(value, name=info.field_name)

    return field_validator(*fields, mode="before")(_validate)


class AppOrder(_Order):
    KIND: ClassVar[OrderKind] = OrderKind.APP

    app: str
    appprice: int
    datasetrestrict: str = NULL_ADDRESS
    workerpoolrestrict: str = NULL_ADDRESS
    requesterrestrict: str = NULL_ADDRESS

    check_addresses = _address_validator("app", "datasetrestrict", "workerpoolrestrict", "requesterrestrict")
    check_prices = _price_validator("appprice")

    @property
    def price(self) -> int:
        return self.appprice


class DatasetOrder(_Order):
    KIND: ClassVar[OrderKind] = OrderKind.DATASET

    dataset: str
    datasetprice: int
    apprestrict: str = NULL_ADDRESS
    workerpoolrestrict: str = NULL_ADDRESS
    requesterrestrict: str = NULL_ADDRESS

    check_addresses = _address_validator("dataset", "apprestrict", "workerpoolrestrict", "requesterrestrict")
    check_prices = _price_validator("datasetprice")

    @property
    def price(self) -> int:
        return self.datasetprice


class WorkerpoolOrder(_Order):
    KIND: ClassVar[OrderKind] = OrderKind.WORKERPOOL

    workerpool: str
    workerpoolprice: int
    category: int
    trust: int = 0
    apprestrict: str = NULL_ADDRESS
    datasetrestrict: str = NULL_ADDRESS
    requesterrestrict: str = NULL_ADDRESS

    check_addresses = _address_validator("workerpool", "apprestrict", "datasetrestrict", "requesterrestrict")
    check_prices = _price_validator("workerpoolprice")
    check_uints = _uint_validator("category", "trust")

    @property
    def price(self) -> int:
        return self.workerpoolprice


class RequestOrder(_Order):
    KIND: ClassVar[OrderKind] = OrderKind.REQUEST

    app: str
    appmaxprice: int
    dataset: str = NULL_ADDRESS
    datasetmaxprice: int = 0
    workerpool: str = NULL_ADDRESS
    workerpoolmaxprice: int
    requester: str
    category: int
    trust: int = 0
    beneficiary: str
    callback: str = NULL_ADDRESS
    params: str = ""

    check_addresses = _address_validator("app", "dataset", "workerpool", "requester", "beneficiary", "callback")
    check_prices = _price_validator("appmaxprice", "datasetmaxprice", "workerpoolmaxprice")
    check_uints = _uint_validator("category", "trust")

    @field_validator("params", mode="before")
    @classmethod
    def check_params(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, Mapping):
            return json.dumps(dict(value), separators=(",", ":"))
        if not isinstance(value, str):
            raise ValidationError("params must be a string or a mapping")
        return value

    def params_dict(self) -> Dict[str, Any]:
        """Decoded ``params``; an empty or non-object value yields ``{}``."""

        if not self.params:
            return {}
        try:
            parsed = json.loads(self.params)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"requestorder params is not valid JSON: {exc}") from exc
        if not isinstance(parsed, dict):
            raise ValidationError("requestorder params must be a JSON object")
        return parsed


Order = Union[AppOrder, DatasetOrder, WorkerpoolOrder, RequestOrder]

ORDER_CLASSES: Dict[OrderKind, Type[_Order]] = {
    OrderKind.APP: AppOrder,
    OrderKind.DATASET: DatasetOrder,
    OrderKind.WORKERPOOL: WorkerpoolOrder,
    OrderKind.REQUEST: RequestOrder,
}


def _build(cls: Type[_Order], payload: Mapping[str, Any]) -> Any:
    try:
        return cls(**dict(payload))
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid {cls.KIND.value}: {exc}") from exc


def parse_order(kind: Union[str, OrderKind], payload: Mapping[str, Any]) -> Order:
    """Build the model for ``kind`` from a raw mapping (gateway JSON, files)."""

    if not isinstance(payload, Mapping):
        raise ValidationError(f"{kind} must be a mapping")
    return _build(ORDER_CLASSES[OrderKind.parse(kind)], payload)


def create_apporder(
    *,
    app: str,
    appprice: Any,
    volume: Any,
    tag: Any = NULL_BYTES32,
    datasetrestrict: str = NULL_ADDRESS,
    workerpoolrestrict: str = NULL_ADDRESS,
    requesterrestrict: str = NULL_ADDRESS,
) -> AppOrder:
    return _build(AppOrder, dict(
        app=app,
        appprice=appprice,
        volume=volume,
        tag=tag,
        datasetrestrict=datasetrestrict,
        workerpoolrestrict=workerpoolrestrict,
        requesterrestrict=requesterrestrict,
    ))


def create_datasetorder(
    *,
    dataset: str,
    datasetprice: Any,
    volume: Any,
    tag: Any = NULL_BYTES32,
    apprestrict: str = NULL_ADDRESS,
    workerpoolrestrict: str = NULL_ADDRESS,
    requesterrestrict: str = NULL_ADDRESS,
) -> DatasetOrder:
    return _build(DatasetOrder, dict(
        dataset=dataset,
        datasetprice=datasetprice,
        volume=volume,
        tag=tag,
        apprestrict=apprestrict,
        workerpoolrestrict=workerpoolrestrict,
        requesterrestrict=requesterrestrict,
    ))


def create_workerpoolorder(
    *,
    workerpool: str,
    workerpoolprice: Any,
    volume: Any,
    category: Any,
    trust: Any = 0,
    tag: Any = NULL_BYTES32,
    apprestrict: str = NULL_ADDRESS,
    datasetrestrict: str = NULL_ADDRESS,
    requesterrestrict: str = NULL_ADDRESS,
) -> WorkerpoolOrder:
    return _build(WorkerpoolOrder, dict(
        workerpool=workerpool,
        workerpoolprice=workerpoolprice,
        volume=volume,
        category=category,
        trust=trust,
        tag=tag,
        apprestrict=apprestrict,
        datasetrestrict=datasetrestrict,
        requesterrestrict=requesterrestrict,
    ))


def create_requestorder(
    *,
    app: str,
    appmaxprice: Any,
    workerpoolmaxprice: Any,
    requester: str,
    volume: Any,
    category: Any,
    workerpool: str = NULL_ADDRESS,
    dataset: str = NULL_ADDRESS,
    datasetmaxprice: Any = 0,
    beneficiary: Optional[str] = None,
    params: Any = "",
    callback: str = NULL_ADDRESS,
    trust: Any = 0,
    tag: Any = NULL_BYTES32,
) -> RequestOrder:
    return _build(RequestOrder, dict(
        app=app,
        appmaxprice=appmaxprice,
        dataset=dataset,
        datasetmaxprice=datasetmaxprice,
        workerpool=workerpool,
        workerpoolmaxprice=workerpoolmaxprice,
        requester=requester,
        beneficiary=beneficiary or requester,
        volume=volume,
        params=params,
        callback=callback,
        category=category,
        trust=trust,
        tag=tag,
    ))
