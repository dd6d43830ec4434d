"""
Player progression service.
Applies game results to profiles, keeps trophies in line with completed levels
and handles the level 9 branch (sell trophies or continue for 1 BTC).
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from app.game.levels import (
    MARKETPLACE_LEVEL,
    MAX_LEVEL,
    get_tier,
    get_completed_level_from_xp,
    get_completed_level_numbers,
    get_level_from_xp,
    get_xp_progress,
)
from app.models.base import utcnow
from app.models.game import Game
from app.models.payout import NFTSaleRequest, PayoutStatus, ScatterWin
from app.models.profile import PlayerProfile
from app.models.trophy import PlayerTrophy, Trophy
from app.core.exceptions import GameStateError, PlayerNotFoundError, ValidationError
from .notification_service import NotificationService

logger = structlog.get_logger(__name__)

# Marketplace buyback price per trophy level when the catalogue has none
DEFAULT_TROPHY_BTC_PRICES = {
    0: 0.000011,
    1: 0.000033,
    2: 0.000056,
    3: 0.00010,
    4: 0.00016,
    5: 0.00022,
    6: 0.00033,
    7: 0.00045,
    8: 0.00072,
    9: 0.0011,
}

SELLABLE_LEVELS = range(0, MARKETPLACE_LEVEL + 1)


class ProgressionService:
    """Service for XP, levels and trophies."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="progression_service")
        self.notifications = NotificationService(db)

    # ============================================================================
    # PROFILES
    # ============================================================================

    async def get_profile(self, wallet: str) -> Optional[PlayerProfile]:
        """Oldest profile for the wallet, matched case-insensitively."""
        result = await self.db.execute(
            select(PlayerProfile)
            .where(func.lower(PlayerProfile.wallet_address) == wallet.lower())
            .order_by(PlayerProfile.created_at, PlayerProfile.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_or_create_profile(self, wallet: str, player_name: Optional[str] = None) -> PlayerProfile:
        profile = await self.get_profile(wallet)
        if profile:
            if player_name and not profile.player_name:
                profile.player_name = player_name
            return profile

        profile = PlayerProfile(
            wallet_address=wallet.lower(),
            player_name=player_name,
            total_xp=0,
            current_level=0,
            god_name=get_tier(0).name,
            total_games_played=0,
            total_winnings=0.0,
            scatter_pending=False,
            chose_continue_after_level9=False,
        )
        self.db.add(profile)
        await self.db.flush()
        self.logger.info("Player profile created", wallet=profile.wallet_address)
        return profile

    async def rename_player(self, wallet: str, player_name: str) -> PlayerProfile:
        profile = await self.get_or_create_profile(wallet)
        profile.player_name = player_name.strip()
        await self.db.flush()
        return profile

    async def _require_profile(self, wallet: str) -> PlayerProfile:
        profile = await self.get_profile(wallet)
        if not profile:
            raise PlayerNotFoundError(wallet)
        return profile

    # ============================================================================
    # GAME RESULTS
    # ============================================================================

    async def apply_game_result(self, wallet: str, xp_earned: int, winnings: float) -> Dict[str, Any]:
        """
        Add a finished game to the profile and award new trophies.

        Returns:
            Dict with ``profile``, ``new_levels`` (newly completed level
            numbers) and ``marketplace_unlocked``.
        """
        profile = await self.get_or_create_profile(wallet)

        before = set(get_completed_level_numbers(profile.total_xp))

        profile.total_xp = (profile.total_xp or 0) + max(int(xp_earned), 0)
        profile.total_winnings = (profile.total_winnings or 0.0) + (winnings or 0.0)
        profile.total_games_played = (profile.total_games_played or 0) + 1
        self._refresh_level(profile)

        new_levels = [level for level in get_completed_level_numbers(profile.total_xp) if level not in before]
        for level in new_levels:
            await self._award_trophy(profile.wallet_address, level)

        marketplace_unlocked = MARKETPLACE_LEVEL in new_levels
        await self.db.flush()

        self.logger.info(
            "Game result applied",
            wallet=profile.wallet_address,
            xp_earned=xp_earned,
            total_xp=profile.total_xp,
            completed_level=profile.current_level,
            new_levels=new_levels
        )

        return {
            "profile": profile,
            "new_levels": new_levels,
            "marketplace_unlocked": marketplace_unlocked,
        }

    def _refresh_level(self, profile: PlayerProfile) -> None:
        completed = get_completed_level_from_xp(profile.total_xp)
        profile.current_level = completed.level
        profile.god_name = completed.name

    async def _award_trophy(self, wallet: str, level: int) -> Optional[PlayerTrophy]:
        """Award the trophy for ``level`` unless the player already holds it."""
        existing = await self.db.execute(
            select(PlayerTrophy).where(
                PlayerTrophy.wallet_address == wallet,
                PlayerTrophy.trophy_level == level
            )
        )
        if existing.scalar_one_or_none():
            return None

        catalogue = await self._get_catalogue_trophy(level)
        trophy = PlayerTrophy(
            wallet_address=wallet,
            trophy_level=level,
            god_name=get_tier(level).name,
            earned_date=utcnow(),
            nft_image_url=catalogue.nft_image_url if catalogue else None,
        )
        self.db.add(trophy)
        await self.db.flush()

        await self.notifications.notify_player(
            wallet,
            title=f"New level unlocked: {trophy.god_name}!",
            message=f"You completed level {level} and earned the {trophy.god_name} trophy.",
            type="level_up"
        )
        self.logger.info("Trophy awarded", wallet=wallet, level=level)
        return trophy

    async def _get_catalogue_trophy(self, level: int) -> Optional[Trophy]:
        result = await self.db.execute(select(Trophy).where(Trophy.level == level))
        return result.scalar_one_or_none()

    async def get_player_trophies(self, wallet: str) -> List[PlayerTrophy]:
        result = await self.db.execute(
            select(PlayerTrophy)
            .where(PlayerTrophy.wallet_address == wallet.lower())
            .order_by(PlayerTrophy.trophy_level)
        )
        return list(result.scalars().all())

    # ============================================================================
    # ADMIN LEVEL TOOLS
    # ============================================================================

    async def set_player_level(
        self,
        wallet: str,
        target_level: int,
        exact_xp: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Force a player's XP to a level threshold (or an exact amount) and
        rebuild trophies to match.
        """
        if not 0 <= target_level <= MAX_LEVEL:
            raise ValidationError("Target level out of range", {"target_level": target_level})
        if exact_xp is not None and exact_xp < 0:
            raise ValidationError("XP cannot be negative", {"exact_xp": exact_xp})

        profile = await self.get_or_create_profile(wallet)
        profile.total_xp = exact_xp if exact_xp is not None else get_tier(target_level).xp_required
        self._refresh_level(profile)

        await self.db.execute(delete(PlayerTrophy).where(PlayerTrophy.wallet_address == profile.wallet_address))
        await self.db.flush()

        awarded = 0
        for level in get_completed_level_numbers(profile.total_xp):
            if await self._award_trophy(profile.wallet_address, level):
                awarded += 1

        await self.db.flush()
        self.logger.info(
            "Player level set",
            wallet=profile.wallet_address,
            total_xp=profile.total_xp,
            trophies_awarded=awarded
        )

        return {
            "message": f"{profile.wallet_address} set to {profile.total_xp} XP ({profile.god_name})",
            "total_xp": profile.total_xp,
            "current_level": profile.current_level,
            "god_name": profile.god_name,
            "trophies_awarded": awarded,
        }

    async def merge_duplicate_profiles(self) -> Dict[str, Any]:
        """
        Merge profiles whose wallets differ only by case.

        The oldest profile survives with XP, games and winnings summed; games,
        trophies and scatter wins move to its lower-cased wallet.
        """
        result = await self.db.execute(
            select(PlayerProfile).order_by(PlayerProfile.created_at, PlayerProfile.id)
        )
        groups: Dict[str, List[PlayerProfile]] = {}
        for profile in result.scalars().all():
            groups.setdefault(profile.wallet_address.lower(), []).append(profile)

        merged = []
        for wallet, profiles in groups.items():
            if len(profiles) < 2 and profiles[0].wallet_address == wallet:
                continue

            keeper, duplicates = profiles[0], profiles[1:]
            aliases = {p.wallet_address for p in profiles if p.wallet_address != wallet}

            for duplicate in duplicates:
                keeper.total_xp = (keeper.total_xp or 0) + (duplicate.total_xp or 0)
                keeper.total_games_played = (keeper.total_games_played or 0) + (duplicate.total_games_played or 0)
                keeper.total_winnings = (keeper.total_winnings or 0.0) + (duplicate.total_winnings or 0.0)
                keeper.scatter_pending = keeper.scatter_pending or duplicate.scatter_pending
                keeper.player_name = keeper.player_name or duplicate.player_name
                await self.db.delete(duplicate)

            keeper.wallet_address = wallet
            self._refresh_level(keeper)

            if aliases:
                await self._repoint_wallet_rows(aliases, wallet)

            for level in get_completed_level_numbers(keeper.total_xp):
                await self._award_trophy(wallet, level)

            merged.append({
                "wallet_address": wallet,
                "player_name": keeper.player_name,
                "merged_from": len(profiles),
                "new_total_xp": keeper.total_xp,
                "new_god_name": keeper.god_name,
            })

        await self.db.flush()
        self.logger.info("Duplicate profiles merged", groups=len(merged))

        return {
            "success": True,
            "message": f"Merged {len(merged)} duplicate profile group(s)",
            "merged": merged,
        }

    async def _repoint_wallet_rows(self, aliases: set, wallet: str) -> None:
        await self.db.execute(
            update(Game).where(Game.wallet_address.in_(aliases)).values(wallet_address=wallet)
        )
        await self.db.execute(
            update(ScatterWin).where(ScatterWin.wallet_address.in_(aliases)).values(wallet_address=wallet)
        )

        held = await self.db.execute(
            select(PlayerTrophy.trophy_level).where(PlayerTrophy.wallet_address == wallet)
        )
        held_levels = set(held.scalars().all())

        alias_trophies = await self.db.execute(
            select(PlayerTrophy).where(PlayerTrophy.wallet_address.in_(aliases))
        )
        for trophy in alias_trophies.scalars().all():
            if trophy.trophy_level in held_levels:
                await self.db.delete(trophy)
            else:
                trophy.wallet_address = wallet
                held_levels.add(trophy.trophy_level)
        await self.db.flush()

    # ============================================================================
    # LEVEL 9 BRANCH
    # ============================================================================

    async def sell_trophies(self, wallet: str, btc_usd_rate: float) -> NFTSaleRequest:
        """
        Sell trophies 0-9 back to the house and restart from level 0.

        Creates a pending NFTSaleRequest priced at the BTC rate.
        """
        if not btc_usd_rate or btc_usd_rate <= 0:
            raise ValidationError("BTC price unavailable", {"btc_usd_rate": btc_usd_rate})

        profile = await self._require_profile(wallet)
        completed = get_completed_level_numbers(profile.total_xp)
        if not completed or completed[-1] < MARKETPLACE_LEVEL:
            raise GameStateError(
                "Trophies can only be sold after completing level 9",
                {"completed_level": completed[-1] if completed else None}
            )

        trophies = [t for t in await self.get_player_trophies(profile.wallet_address) if t.trophy_level in SELLABLE_LEVELS]
        catalogue = await self.db.execute(select(Trophy).where(Trophy.level.in_(list(SELLABLE_LEVELS))))
        prices = {t.level: t.btc_sale_price for t in catalogue.scalars().all() if t.btc_sale_price}

        sold = []
        for trophy in trophies:
            btc_price = prices.get(trophy.trophy_level, DEFAULT_TROPHY_BTC_PRICES[trophy.trophy_level])
            sold.append({
                "level": trophy.trophy_level,
                "god_name": trophy.god_name,
                "btc_price": btc_price,
                "usdt_value": round(btc_price * btc_usd_rate, 2),
            })

        total_btc = sum(item["btc_price"] for item in sold)
        total_usdt = round(sum(item["usdt_value"] for item in sold), 2)

        sale = NFTSaleRequest(
            wallet_address=profile.wallet_address,
            player_name=profile.player_name or "Anonymous",
            nfts_sold=sold,
            total_btc_value=total_btc,
            total_usdt_value=total_usdt,
            status=PayoutStatus.PENDING.value,
            request_date=utcnow(),
        )
        self.db.add(sale)

        await self.db.execute(
            delete(PlayerTrophy).where(
                PlayerTrophy.wallet_address == profile.wallet_address,
                PlayerTrophy.trophy_level.in_(list(SELLABLE_LEVELS))
            )
        )
        profile.total_xp = 0
        profile.chose_continue_after_level9 = False
        self._refresh_level(profile)
        await self.db.flush()

        await self.notifications.notify_player(
            profile.wallet_address,
            title="Trophies sold!",
            message=f"You sold {len(sold)} trophies for {total_btc:.6f} BTC (${total_usdt:,.2f}). Admin will process payment.",
            amount=total_usdt
        )
        await self.notifications.notify_admin(
            title="NFT Sale - Payment Pending",
            message=f"Player {sale.player_name} sold {len(sold)} trophies for ${total_usdt:,.2f}. Check NFT Sales panel to process payment.",
            amount=total_usdt,
            wallet=profile.wallet_address
        )

        self.logger.info(
            "Trophies sold",
            wallet=profile.wallet_address,
            trophies=len(sold),
            total_btc=total_btc,
            total_usdt=total_usdt
        )
        return sale

    # ============================================================================
    # QUERY METHODS
    # ============================================================================

    async def get_profile_summary(self, wallet: str) -> Dict[str, Any]:
        """Profile with both the current and the completed level."""
        profile = await self._require_profile(wallet)
        progress = get_xp_progress(profile.total_xp)
        trophies = await self.get_player_trophies(profile.wallet_address)

        return {
            "wallet_address": profile.wallet_address,
            "player_name": profile.player_name,
            "total_xp": profile.total_xp,
            "total_games_played": profile.total_games_played,
            "total_winnings": profile.total_winnings,
            "current_tier": get_level_from_xp(profile.total_xp).to_dict(),
            "completed_tier": get_completed_level_from_xp(profile.total_xp).to_dict(),
            "completed_levels": get_completed_level_numbers(profile.total_xp),
            "progress": {
                "current": progress["current"].to_dict(),
                "next": progress["next"].to_dict(),
                "progress": progress["progress"],
                "xp_to_next": progress["xp_to_next"],
            },
            "trophies": [t.to_dict() for t in trophies],
            "scatter_pending": bool(profile.scatter_pending),
            "chose_continue_after_level9": bool(profile.chose_continue_after_level9),
        }


def get_progression_service(db: AsyncSession) -> ProgressionService:
    """Get progression service instance."""
    return ProgressionService(db)
