"""Order model, hashing, signing and match preflight."""

from .market import (
    fetch_deals_by_order_hash,
    fetch_order,
    fetch_published_order_by_hash,
    match_orders,
    publish_order,
    unpublish_order,
)
from .matching import MatchValidator, check_matchable
from .models import (
    AppOrder,
    DatasetOrder,
    Order,
    OrderKind,
    RequestOrder,
    WorkerpoolOrder,
    create_apporder,
    create_datasetorder,
    create_requestorder,
    create_workerpoolorder,
    parse_order,
)
from .requirements import check_order_requirements
from .signing import cancel_order, get_remaining_volume, sign_order
from .typed_data import compute_order_hash, null_dataset_struct, signed_order_to_struct

__all__ = [
    "AppOrder",
    "DatasetOrder",
    "MatchValidator",
    "Order",
    "OrderKind",
    "RequestOrder",
    "WorkerpoolOrder",
    "cancel_order",
    "check_matchable",
    "check_order_requirements",
    "compute_order_hash",
    "create_apporder",
    "create_datasetorder",
    "create_requestorder",
    "create_workerpoolorder",
    "fetch_deals_by_order_hash",
    "fetch_order",
    "fetch_published_order_by_hash",
    "get_remaining_volume",
    "match_orders",
    "null_dataset_struct",
    "parse_order",
    "publish_order",
    "sign_order",
    "signed_order_to_struct",
    "unpublish_order",
]
