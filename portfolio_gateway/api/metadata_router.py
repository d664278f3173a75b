"""
Metadata Router - stored chain and token lists
"""
from typing import List

from fastapi import APIRouter, Depends

from ..services.aggregation_gateway import AggregationGateway
from ..storage.store import ChainInfo, TokenInfo
from .dependencies import get_gateway

router = APIRouter(prefix="/api/v1", tags=["Metadata"])


@router.get("/chain/list", response_model=List[ChainInfo])
async def chain_list(gateway: AggregationGateway = Depends(get_gateway)):
    return await gateway.list_chains()


@router.get("/token/list", response_model=List[TokenInfo])
async def token_list(gateway: AggregationGateway = Depends(get_gateway)):
    return await gateway.list_tokens()
