"""
Portfolio Store
Chain and token metadata, cached account ages and named-token mappings.

Every method raises ``StorageError`` on backend failure. A missing account-age
record is reported as ``None``, never as an error.
"""

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel

from ..infrastructure.database import DatabasePool
from .schema import SCHEMA

logger = logging.getLogger("PortfolioStore")


class ChainInfo(BaseModel):
    id: str
    community_id: int
    name: str
    native_token_id: str
    logo_url: str


class TokenInfo(BaseModel):
    id: str
    chain: str
    name: str
    symbol: str
    decimals: int
    logo_url: str
    protocol_id: str
    is_core: bool


def normalize_address(address: str) -> str:
    """Store keys are lower-case; providers treat addresses case-insensitively."""
    return address.lower()


class PortfolioStore:
    """Narrow read/write interface over the database pool"""

    def __init__(self, db: DatabasePool):
        self.db = db

    async def init_schema(self):
        """Create tables that do not exist yet"""
        await self.db.execute_script(SCHEMA)
        logger.info("Store schema ready")

    async def get_chain_ids(self) -> List[str]:
        result = await self.db.execute("SELECT id FROM chain ORDER BY id")
        return [row["id"] for row in result]

    async def get_chains(self) -> List[ChainInfo]:
        result = await self.db.execute(
            """
            SELECT id, community_id, name, native_token_id, logo_url FROM chain
            ORDER BY id
            """
        )
        return [ChainInfo.model_validate(row) for row in result]

    async def get_tokens(self) -> List[TokenInfo]:
        """Loads all the stored tokens."""
        result = await self.db.execute(
            """
            SELECT id, chain, name, symbol, decimals, logo_url, protocol_id, is_core FROM token
            ORDER BY chain, id
            """
        )
        return [TokenInfo.model_validate(row) for row in result]

    async def get_account_age(self, address: str) -> Optional[int]:
        result = await self.db.execute(
            "SELECT activation_time FROM user_info WHERE id = ?",
            (normalize_address(address),),
        )
        row = result.first()
        return int(row["activation_time"]) if row else None

    async def put_account_age(self, address: str, activation_time: int):
        # First write wins; a cached age is never rewritten
        await self.db.execute(
            """
            INSERT INTO user_info (id, activation_time)
            VALUES (?, ?)
            ON CONFLICT (id) DO NOTHING
            """,
            (normalize_address(address), activation_time),
        )

    async def get_named_token_chain_map(self, name: str) -> Dict[str, str]:
        """
        Token ids of a named (vote) token keyed by chain id.

        Only chains present in the chain table are returned. An unknown name
        yields an empty mapping.
        """
        result = await self.db.execute(
            """
            SELECT v.chain_id, v.token_id FROM vote_token v
            JOIN chain c ON c.id = v.chain_id
            WHERE v.name = ?
            ORDER BY v.chain_id
            """,
            (name,),
        )
        return {row["chain_id"]: row["token_id"] for row in result}
