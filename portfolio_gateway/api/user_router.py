"""
User Router - account age and balance queries for one address
"""
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..data_sources.debank import TokenBalance, TotalBalance
from ..services.aggregation_gateway import AggregationGateway
from .dependencies import get_gateway

router = APIRouter(prefix="/api/v1/user", tags=["User"])


class AccountInfo(BaseModel):
    activation_time: int


class NamedTokenAmount(BaseModel):
    amount: float


class ChainUsdBalance(BaseModel):
    chain_id: str
    usd_value: float


@router.get("/", response_model=AccountInfo)
async def account_info(
    id: str = Query(..., min_length=1, description="Account address"),
    gateway: AggregationGateway = Depends(get_gateway),
):
    """
    Activation time (first transaction timestamp) of the account.
    Accounts without transactions report 9223372036854775807.
    """
    activation_time = await gateway.resolve_account_age(id)
    return AccountInfo(activation_time=activation_time)


@router.get("/total_balance", response_model=TotalBalance)
async def total_balance(
    id: str = Query(..., min_length=1, description="Account address"),
    gateway: AggregationGateway = Depends(get_gateway),
):
    """USD balance over supported chains only."""
    return await gateway.total_balance(id)


@router.get("/token", response_model=TokenBalance)
async def token_balance(
    id: str = Query(..., min_length=1, description="Account address"),
    chain_id: str = Query(..., min_length=1),
    token_id: str = Query(..., min_length=1),
    gateway: AggregationGateway = Depends(get_gateway),
):
    return await gateway.token_balance(id, chain_id, token_id)


@router.get("/chain_balance", response_model=ChainUsdBalance)
async def chain_balance(
    id: str = Query(..., min_length=1, description="Account address"),
    chain_id: str = Query(..., min_length=1),
    gateway: AggregationGateway = Depends(get_gateway),
):
    usd_value = await gateway.chain_balance(id, chain_id)
    return ChainUsdBalance(chain_id=chain_id, usd_value=usd_value)


@router.get("/vote_token_amount", response_model=NamedTokenAmount)
async def vote_token_amount(
    id: str = Query(..., min_length=1, description="Account address"),
    token_name: str = Query(..., min_length=1, description="Named (vote) token, e.g. a governance symbol"),
    gateway: AggregationGateway = Depends(get_gateway),
):
    """Amount of a named token summed over every chain it exists on."""
    amount = await gateway.named_token_balance(id, token_name)
    return NamedTokenAmount(amount=amount)
