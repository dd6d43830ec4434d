"""
API routes for entry-fee payments.
"""

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import PlayerIdentity, get_database, get_player_identity, get_required_wallet_auth
from app.api.schemas.common import SuccessResponse
from app.api.schemas.payments import CreateIntentRequest, SubmitTransactionRequest
from app.core.config import ChainConfig
from app.core.exceptions import NotFoundError
from app.services.bsc_client import get_bsc_client
from app.services.payment_service import get_payment_service
from app.utils.validation import normalize_tx_hash

router = APIRouter()


def _intent_data(intent) -> dict:
    data = intent.to_dict()
    data["chain_id"] = ChainConfig.CHAIN_ID
    data["chain_id_hex"] = ChainConfig.CHAIN_ID_HEX
    data["token_contract"] = ChainConfig.USDT_CONTRACT
    data["token_decimals"] = ChainConfig.USDT_DECIMALS
    return data


@router.post("/intents", response_model=SuccessResponse, status_code=201)
async def create_payment_intent(
    request: CreateIntentRequest,
    player: PlayerIdentity = Depends(get_player_identity),
    db: AsyncSession = Depends(get_database)
):
    """Reserve an order for the entry fee the wallet is about to send."""
    intent = await get_payment_service(db).create_payment_intent(
        player.wallet, request.case_number, is_admin=player.is_admin
    )
    return SuccessResponse(data=_intent_data(intent))


@router.get("/intents/{order_id}", response_model=SuccessResponse)
async def get_payment_intent(
    order_id: str = Path(..., pattern=r"^CASE-\d+-\d+$"),
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    intent = await get_payment_service(db).get_intent_by_order(order_id)
    if not intent or intent.expected_from_address != wallet:
        raise NotFoundError(f"Payment intent not found: {order_id}", {"order_id": order_id})
    return SuccessResponse(data=_intent_data(intent))


@router.post("/submit", response_model=SuccessResponse)
async def submit_transaction(
    request: SubmitTransactionRequest,
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    intent = await get_payment_service(db).submit_transaction(
        request.order_id, wallet, normalize_tx_hash(request.tx_hash)
    )
    return SuccessResponse(message="Transaction submitted", data=_intent_data(intent))


@router.get("/status/{tx_hash}", response_model=SuccessResponse)
async def check_game_payment_status(
    tx_hash: str = Path(...),
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    """
    Poll a submitted payment.

    Returns ``completed`` with the game id, ``confirming`` with the
    confirmation count, or ``failed``.
    """
    service = get_payment_service(db, get_bsc_client())
    result = await service.check_game_payment_status(normalize_tx_hash(tx_hash))
    return SuccessResponse(data=result)
