"""Off-chain client for the compute marketplace.

Orders are built, hashed and signed in :mod:`marketplace.orders`, matched
against live ledger state through :class:`~marketplace.ledger.ChainContext`,
and followed to completion with :mod:`marketplace.observer`.
"""

from .config import ChainConfig, load_config
from .errors import MarketplaceError
from .ledger import ChainContext, Web3Ledger
from .signers import LocalAccountSigner, TypedDataSigner

__all__ = [
    "ChainConfig",
    "ChainContext",
    "LocalAccountSigner",
    "MarketplaceError",
    "TypedDataSigner",
    "Web3Ledger",
    "load_config",
]

__version__ = "0.1.0"
