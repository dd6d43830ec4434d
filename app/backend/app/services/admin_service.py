"""
Admin bookkeeping service.
Payout queues (scatter wins, NFT sales, manual payouts), the trophy catalogue,
game settings and data resets.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select, delete, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from app.core.config import settings
from app.core.exceptions import NotFoundError, ValidationError, GameStateError
from app.game.levels import MAX_LEVEL, get_tier
from app.models.base import utcnow
from app.models.game import Game, GameStatus, FINISHED_STATUSES
from app.models.game_settings import GameSettings, GAME_TYPE
from app.models.leaderboard import LeaderboardPeriod
from app.models.notification import Notification
from app.models.payment import PaymentIntent, PendingGamePayment
from app.models.payout import ManualPayout, NFTSaleRequest, PayoutStatus, ScatterWin
from app.models.profile import PlayerProfile
from app.models.trophy import PlayerTrophy, Trophy
from .progression_service import DEFAULT_TROPHY_BTC_PRICES

logger = structlog.get_logger(__name__)

SETTINGS_FIELDS = (
    "entry_fee",
    "game_wallet_address",
    "purchases_locked",
    "allow_admin_during_lock",
    "scatter_consecutive_wins",
)


def default_game_settings() -> GameSettings:
    """Transient settings built from the environment."""
    return GameSettings(
        game_type=GAME_TYPE,
        entry_fee=settings.default_entry_fee,
        game_wallet_address=settings.default_game_wallet,
        purchases_locked=False,
        allow_admin_during_lock=False,
        scatter_consecutive_wins=settings.default_scatter_consecutive_wins,
    )


async def load_game_settings(db: AsyncSession) -> GameSettings:
    """Stored settings row, or environment defaults when none exists."""
    result = await db.execute(select(GameSettings).where(GameSettings.game_type == GAME_TYPE))
    row = result.scalar_one_or_none()
    return row if row is not None else default_game_settings()


class AdminService:
    """Service for admin operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="admin_service")

    async def _get_or_404(self, model, row_id: int, label: str):
        row = await self.db.get(model, row_id)
        if row is None:
            raise NotFoundError(f"{label} not found: {row_id}", {"id": row_id})
        return row

    # ============================================================================
    # SCATTER WINS
    # ============================================================================

    async def list_scatter_wins(self, status: Optional[str] = None) -> List[ScatterWin]:
        query = select(ScatterWin).order_by(desc(ScatterWin.created_at), desc(ScatterWin.id))
        if status:
            query = query.where(ScatterWin.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def mark_scatter_paid(self, scatter_id: int, payout_tx_hash: Optional[str] = None) -> ScatterWin:
        scatter = await self._get_or_404(ScatterWin, scatter_id, "Scatter win")
        scatter.status = PayoutStatus.PAID.value
        scatter.paid_date = utcnow()
        scatter.payout_tx_hash = payout_tx_hash
        await self.db.flush()
        self.logger.info("Scatter win paid", scatter_id=scatter_id, amount=scatter.total_winnings)
        return scatter

    async def delete_scatter_win(self, scatter_id: int) -> None:
        scatter = await self._get_or_404(ScatterWin, scatter_id, "Scatter win")
        await self.db.delete(scatter)
        await self.db.flush()
        self.logger.info("Scatter win deleted", scatter_id=scatter_id)

    # ============================================================================
    # NFT SALES
    # ============================================================================

    async def list_nft_sales(self, status: Optional[str] = None) -> List[NFTSaleRequest]:
        query = select(NFTSaleRequest).order_by(desc(NFTSaleRequest.request_date), desc(NFTSaleRequest.id))
        if status:
            query = query.where(NFTSaleRequest.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def mark_nft_sale_paid(self, sale_id: int, payout_tx_hash: Optional[str] = None) -> NFTSaleRequest:
        sale = await self._get_or_404(NFTSaleRequest, sale_id, "NFT sale request")
        if sale.status == PayoutStatus.CANCELLED.value:
            raise GameStateError("Cancelled sale requests cannot be paid", {"id": sale_id})
        sale.status = PayoutStatus.PAID.value
        sale.paid_date = utcnow()
        sale.payout_tx_hash = payout_tx_hash
        await self.db.flush()
        self.logger.info("NFT sale paid", sale_id=sale_id, usdt=sale.total_usdt_value)
        return sale

    async def cancel_nft_sale(self, sale_id: int) -> NFTSaleRequest:
        sale = await self._get_or_404(NFTSaleRequest, sale_id, "NFT sale request")
        if sale.status == PayoutStatus.PAID.value:
            raise GameStateError("Paid sale requests cannot be cancelled", {"id": sale_id})
        sale.status = PayoutStatus.CANCELLED.value
        await self.db.flush()
        self.logger.info("NFT sale cancelled", sale_id=sale_id)
        return sale

    async def delete_nft_sale(self, sale_id: int) -> None:
        sale = await self._get_or_404(NFTSaleRequest, sale_id, "NFT sale request")
        await self.db.delete(sale)
        await self.db.flush()

    # ============================================================================
    # MANUAL PAYOUTS
    # ============================================================================

    async def list_manual_payouts(self) -> List[ManualPayout]:
        result = await self.db.execute(
            select(ManualPayout).order_by(desc(ManualPayout.date), desc(ManualPayout.id))
        )
        return list(result.scalars().all())

    async def create_manual_payout(
        self,
        wallet: str,
        amount: float,
        currency: str = "USDT",
        reason: Optional[str] = None,
        tx_hash: Optional[str] = None,
        player_name: Optional[str] = None
    ) -> ManualPayout:
        if amount is None or amount <= 0:
            raise ValidationError("Payout amount must be positive", {"amount": amount})

        payout = ManualPayout(
            wallet_address=wallet.lower(),
            player_name=player_name,
            amount=amount,
            currency=currency,
            reason=reason,
            tx_hash=tx_hash,
            date=utcnow(),
        )
        self.db.add(payout)
        await self.db.flush()
        self.logger.info("Manual payout recorded", wallet=payout.wallet_address, amount=amount, currency=currency)
        return payout

    async def delete_manual_payout(self, payout_id: int) -> None:
        payout = await self._get_or_404(ManualPayout, payout_id, "Manual payout")
        await self.db.delete(payout)
        await self.db.flush()

    # ============================================================================
    # TROPHIES
    # ============================================================================

    async def list_trophies(self) -> List[Trophy]:
        result = await self.db.execute(select(Trophy).order_by(Trophy.level))
        return list(result.scalars().all())

    async def upsert_trophy(
        self,
        level: int,
        god_name: Optional[str] = None,
        nft_image_url: Optional[str] = None,
        btc_sale_price: Optional[float] = None
    ) -> Trophy:
        if not 0 <= level <= MAX_LEVEL:
            raise ValidationError("Trophy level out of range", {"level": level})

        result = await self.db.execute(select(Trophy).where(Trophy.level == level))
        trophy = result.scalar_one_or_none()
        if trophy is None:
            trophy = Trophy(level=level, god_name=god_name or get_tier(level).name, btc_sale_price=0.0)
            self.db.add(trophy)
        elif god_name:
            trophy.god_name = god_name

        if nft_image_url is not None:
            trophy.nft_image_url = nft_image_url
        if btc_sale_price is not None:
            if btc_sale_price < 0:
                raise ValidationError("BTC price cannot be negative", {"btc_sale_price": btc_sale_price})
            trophy.btc_sale_price = btc_sale_price

        await self.db.flush()
        self.logger.info("Trophy saved", level=level)
        return trophy

    async def seed_trophy_catalogue(self) -> int:
        """Create missing catalogue rows with the default god names and prices."""
        result = await self.db.execute(select(Trophy.level))
        existing = set(result.scalars().all())

        created = 0
        for level in range(MAX_LEVEL + 1):
            if level in existing:
                continue
            self.db.add(Trophy(
                level=level,
                god_name=get_tier(level).name,
                btc_sale_price=DEFAULT_TROPHY_BTC_PRICES.get(level, 0.0),
            ))
            created += 1

        await self.db.flush()
        self.logger.info("Trophy catalogue seeded", created=created)
        return created

    async def delete_trophy(self, level: int) -> None:
        result = await self.db.execute(select(Trophy).where(Trophy.level == level))
        trophy = result.scalar_one_or_none()
        if trophy is None:
            raise NotFoundError(f"Trophy not found for level {level}", {"level": level})
        await self.db.delete(trophy)
        await self.db.flush()

    async def list_player_trophies(self, wallet: Optional[str] = None) -> List[PlayerTrophy]:
        query = select(PlayerTrophy).order_by(PlayerTrophy.wallet_address, PlayerTrophy.trophy_level)
        if wallet:
            query = query.where(PlayerTrophy.wallet_address == wallet.lower())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def award_player_trophy(self, wallet: str, level: int) -> PlayerTrophy:
        if not 0 <= level <= MAX_LEVEL:
            raise ValidationError("Trophy level out of range", {"level": level})

        wallet = wallet.lower()
        existing = await self.db.execute(
            select(PlayerTrophy).where(
                PlayerTrophy.wallet_address == wallet,
                PlayerTrophy.trophy_level == level
            )
        )
        trophy = existing.scalar_one_or_none()
        if trophy:
            return trophy

        catalogue = await self.db.execute(select(Trophy).where(Trophy.level == level))
        entry = catalogue.scalar_one_or_none()
        trophy = PlayerTrophy(
            wallet_address=wallet,
            trophy_level=level,
            god_name=entry.god_name if entry else get_tier(level).name,
            earned_date=utcnow(),
            nft_image_url=entry.nft_image_url if entry else None,
        )
        self.db.add(trophy)
        await self.db.flush()
        self.logger.info("Trophy awarded by admin", wallet=wallet, level=level)
        return trophy

    async def delete_player_trophy(self, trophy_id: int) -> None:
        trophy = await self._get_or_404(PlayerTrophy, trophy_id, "Player trophy")
        await self.db.delete(trophy)
        await self.db.flush()

    # ============================================================================
    # GAME SETTINGS
    # ============================================================================

    async def get_game_settings(self) -> GameSettings:
        return await load_game_settings(self.db)

    async def update_game_settings(self, **changes: Any) -> GameSettings:
        """Update the settings row, creating it on first write."""
        unknown = set(changes) - set(SETTINGS_FIELDS)
        if unknown:
            raise ValidationError("Unknown game settings", {"fields": sorted(unknown)})

        if changes.get("entry_fee") is not None and changes["entry_fee"] <= 0:
            raise ValidationError("Entry fee must be positive", {"entry_fee": changes["entry_fee"]})
        if changes.get("scatter_consecutive_wins") is not None and changes["scatter_consecutive_wins"] < 1:
            raise ValidationError(
                "Scatter consecutive wins must be at least 1",
                {"scatter_consecutive_wins": changes["scatter_consecutive_wins"]}
            )

        result = await self.db.execute(select(GameSettings).where(GameSettings.game_type == GAME_TYPE))
        row = result.scalar_one_or_none()
        if row is None:
            row = default_game_settings()
            self.db.add(row)

        for field, value in changes.items():
            if value is None:
                continue
            if field == "game_wallet_address":
                value = value.lower()
            setattr(row, field, value)

        await self.db.flush()
        self.logger.info("Game settings updated", fields=sorted(k for k, v in changes.items() if v is not None))
        return row

    # ============================================================================
    # RESETS
    # ============================================================================

    async def reset_all_game_data(self) -> Dict[str, int]:
        """Delete every game, leaderboard period, profile and player trophy."""
        counts = {}
        for name, model in (
            ("games", Game),
            ("leaderboard_periods", LeaderboardPeriod),
            ("profiles", PlayerProfile),
            ("player_trophies", PlayerTrophy),
        ):
            result = await self.db.execute(delete(model))
            counts[name] = result.rowcount or 0

        self.logger.warning("All game data reset", **counts)
        return counts

    async def reset_wallet(self, wallet: str) -> Dict[str, int]:
        """Delete one wallet's games, profile, trophies and notifications."""
        wallet = wallet.lower()
        counts = {}
        for name, model in (
            ("games", Game),
            ("profiles", PlayerProfile),
            ("player_trophies", PlayerTrophy),
            ("notifications", Notification),
        ):
            result = await self.db.execute(
                delete(model).where(func.lower(model.wallet_address) == wallet)
            )
            counts[name] = result.rowcount or 0

        self.logger.warning("Wallet data reset", wallet=wallet, **counts)
        return counts

    # ============================================================================
    # DASHBOARD
    # ============================================================================

    async def get_dashboard_stats(self) -> Dict[str, Any]:
        active = await self.db.execute(
            select(func.count(Game.id)).where(Game.game_status == GameStatus.ACTIVE.value)
        )
        finished = await self.db.execute(
            select(func.count(Game.id)).where(Game.game_status.in_(FINISHED_STATUSES))
        )
        winnings = await self.db.execute(
            select(func.coalesce(func.sum(Game.final_winnings), 0.0)).where(Game.game_status.in_(FINISHED_STATUSES))
        )
        fees = await self.db.execute(select(func.coalesce(func.sum(Game.game_fee), 0.0)))
        players = await self.db.execute(select(func.count(PlayerProfile.id)))
        paid_out = await self.db.execute(
            select(func.coalesce(func.sum(LeaderboardPeriod.total_paid_usd), 0.0))
        )
        pending_scatter = await self.db.execute(
            select(func.count(ScatterWin.id)).where(ScatterWin.status == PayoutStatus.PENDING.value)
        )
        pending_sales = await self.db.execute(
            select(func.count(NFTSaleRequest.id)).where(NFTSaleRequest.status == PayoutStatus.PENDING.value)
        )
        pending_payments = await self.db.execute(
            select(func.count(PendingGamePayment.id)).where(PendingGamePayment.status == "pending")
        )
        intents = await self.db.execute(select(func.count(PaymentIntent.id)))

        return {
            "active_games": active.scalar_one(),
            "finished_games": finished.scalar_one(),
            "total_winnings": float(winnings.scalar_one()),
            "total_fees_collected": float(fees.scalar_one()),
            "total_players": players.scalar_one(),
            "total_leaderboard_paid_usd": float(paid_out.scalar_one()),
            "pending_scatter_wins": pending_scatter.scalar_one(),
            "pending_nft_sales": pending_sales.scalar_one(),
            "pending_game_payments": pending_payments.scalar_one(),
            "payment_intents": intents.scalar_one(),
        }


def get_admin_service(db: AsyncSession) -> AdminService:
    """Get admin service instance."""
    return AdminService(db)
