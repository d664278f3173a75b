from .store import PortfolioStore, ChainInfo, TokenInfo, normalize_address
from .schema import SCHEMA

__all__ = [
    "PortfolioStore",
    "ChainInfo",
    "TokenInfo",
    "normalize_address",
    "SCHEMA",
]
