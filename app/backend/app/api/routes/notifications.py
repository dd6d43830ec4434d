"""
API routes for player notifications.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_database, get_required_wallet_auth
from app.api.schemas.common import SuccessResponse
from app.services.notification_service import get_notification_service

router = APIRouter()


@router.get("", response_model=SuccessResponse)
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    notifications = await get_notification_service(db).list_for_wallet(wallet, unread_only=unread_only, limit=limit)
    return SuccessResponse(data=[n.to_dict() for n in notifications])


@router.post("/read-all", response_model=SuccessResponse)
async def mark_all_read(
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    updated = await get_notification_service(db).mark_all_read(wallet)
    return SuccessResponse(data={"updated": updated})


@router.post("/{notification_id}/read", response_model=SuccessResponse)
async def mark_read(
    notification_id: int = Path(..., ge=1),
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    notification = await get_notification_service(db).mark_read(notification_id, wallet)
    return SuccessResponse(data=notification.to_dict())


@router.delete("", response_model=SuccessResponse)
async def clear_notifications(
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    deleted = await get_notification_service(db).delete_for_wallet(wallet)
    return SuccessResponse(data={"deleted": deleted})
