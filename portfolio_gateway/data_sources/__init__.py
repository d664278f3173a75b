from .base import UpstreamClient
from .etherscan import EtherscanClient, NO_TRANSACTIONS_TIMESTAMP
from .debank import (
    DebankClient,
    ChainBalance,
    TotalBalance,
    TokenBalance,
)

__all__ = [
    "UpstreamClient",
    "EtherscanClient",
    "NO_TRANSACTIONS_TIMESTAMP",
    "DebankClient",
    "ChainBalance",
    "TotalBalance",
    "TokenBalance",
]
