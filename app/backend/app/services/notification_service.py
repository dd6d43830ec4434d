"""
In-app notification inbox for players and admins.
"""

from typing import List, Optional

from sqlalchemy import select, update, delete, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from app.models.notification import Notification
from app.core.exceptions import NotFoundError

logger = structlog.get_logger(__name__)

DEFAULT_TYPE = "trade_completed"


class NotificationService:
    """Writes and reads notifications."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="notification_service")

    async def notify_player(
        self,
        wallet: str,
        title: str,
        message: str,
        amount: Optional[float] = None,
        type: str = DEFAULT_TYPE
    ) -> bool:
        """Write a player notification; failures are logged, never raised."""
        created = await self._insert(Notification(
            wallet_address=wallet,
            type=type,
            title=title,
            message=message,
            amount=amount,
            read=False,
            is_admin=False,
        ))
        if created:
            self.logger.debug("Player notification written", wallet=wallet, title=title)
        return created

    async def notify_admin(
        self,
        title: str,
        message: str,
        amount: Optional[float] = None,
        wallet: Optional[str] = None,
        type: str = DEFAULT_TYPE
    ) -> bool:
        """Write an admin notification; failures are logged, never raised."""
        created = await self._insert(Notification(
            wallet_address=wallet,
            type=type,
            title=title,
            message=message,
            amount=amount,
            read=False,
            is_admin=True,
        ))
        if created:
            self.logger.debug("Admin notification written", title=title)
        return created

    async def _insert(self, notification: Notification) -> bool:
        """
        Flush one notification inside a savepoint.

        A failed insert rolls back to the savepoint only, so the caller's
        game or reward changes in the same transaction are kept.
        """
        try:
            async with self.db.begin_nested():
                self.db.add(notification)
                await self.db.flush()
        except SQLAlchemyError as e:
            self.logger.error(
                "Failed to write notification",
                wallet=notification.wallet_address,
                is_admin=notification.is_admin,
                title=notification.title,
                error=str(e)
            )
            return False
        return True

    async def list_for_wallet(self, wallet: str, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        query = select(Notification).where(
            Notification.wallet_address == wallet,
            Notification.is_admin.is_(False)
        )
        if unread_only:
            query = query.where(Notification.read.is_(False))
        query = query.order_by(desc(Notification.created_at), desc(Notification.id)).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_admin(self, unread_only: bool = False, limit: int = 100) -> List[Notification]:
        query = select(Notification).where(Notification.is_admin.is_(True))
        if unread_only:
            query = query.where(Notification.read.is_(False))
        query = query.order_by(desc(Notification.created_at), desc(Notification.id)).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def mark_read(self, notification_id: int, wallet: Optional[str] = None) -> Notification:
        """Mark one notification read. ``wallet`` restricts to the owner's inbox."""
        notification = await self.db.get(Notification, notification_id)
        if notification is None or (wallet is not None and notification.wallet_address != wallet):
            raise NotFoundError(
                f"Notification not found: {notification_id}",
                {"notification_id": notification_id}
            )
        notification.read = True
        await self.db.flush()
        return notification

    async def mark_all_read(self, wallet: str) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(
                Notification.wallet_address == wallet,
                Notification.is_admin.is_(False),
                Notification.read.is_(False)
            )
            .values(read=True)
        )
        return result.rowcount or 0

    async def delete_for_wallet(self, wallet: str) -> int:
        result = await self.db.execute(
            delete(Notification).where(Notification.wallet_address == wallet)
        )
        return result.rowcount or 0


def get_notification_service(db: AsyncSession) -> NotificationService:
    """Get notification service instance."""
    return NotificationService(db)
