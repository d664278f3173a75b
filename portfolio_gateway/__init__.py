"""
Portfolio Gateway
Account age, multi-chain balances and named-token totals for blockchain addresses.
"""

__version__ = "0.1.0"
