"""
Tests for the game service: creation checks, play and settlement.
"""

import pytest
from sqlalchemy import select

from app.core.exceptions import (
    ConflictError,
    GameOwnershipError,
    GameStateError,
    PaymentError,
    PaymentNotConfirmedError,
    TransactionReplayError,
    ValidationError,
)
from app.game import engine
from app.models.game import GameStatus
from app.models.game_settings import GameSettings, GAME_TYPE
from app.models.notification import Notification
from app.models.payment import IntentStatus, PendingGamePayment
from app.services import notification_service
from app.services.game_service import GameService, serialize_game
from app.services.progression_service import ProgressionService

from .conftest import PLAYER, OTHER_PLAYER, add_confirmed_intent, tx_hash


async def start_game(db, wallet=PLAYER, n=1, case_number=26):
    await add_confirmed_intent(db, wallet, tx_hash(n), case_number=case_number)
    service = GameService(db)
    game = await service.create_verified_game(wallet, case_number, 0.01, tx_hash(n))
    # Ordered board: case k holds PRIZE_AMOUNTS[k - 1]
    game.case_amounts = list(engine.PRIZE_AMOUNTS)
    await db.flush()
    return service, game


async def open_cases(service, game, count, wallet=PLAYER):
    result = None
    for case_number in range(1, engine.TOTAL_CASES + 1):
        if len(game.opened_cases) >= count:
            break
        if case_number == game.player_case_number or case_number in game.opened_cases:
            continue
        result = await service.open_case(game.id, wallet, case_number)
    return result


@pytest.mark.asyncio
async def test_create_verified_game(db):
    """A confirmed intent creates an active game with a shuffled board."""
    await add_confirmed_intent(db, PLAYER, tx_hash(1))
    db.add(PendingGamePayment(wallet_address=PLAYER, tx_hash=tx_hash(1), case_number=7, amount=0.01, status="pending"))
    await db.flush()

    game = await GameService(db).create_verified_game(PLAYER, 7, 0.01, tx_hash(1))

    assert game.is_active
    assert game.player_case_number == 7
    assert sorted(game.case_amounts) == sorted(engine.PRIZE_AMOUNTS)
    assert game.game_fee == 0.01

    pending = await db.execute(select(PendingGamePayment).where(PendingGamePayment.tx_hash == tx_hash(1)))
    assert pending.scalar_one().status == "confirmed"


@pytest.mark.asyncio
async def test_create_requires_confirmed_intent(db):
    service = GameService(db)
    with pytest.raises(PaymentError):
        await service.create_verified_game(PLAYER, 7, 0.01, tx_hash(1))

    intent = await add_confirmed_intent(db, PLAYER, tx_hash(2))
    intent.status = IntentStatus.CONFIRMING.value
    await db.flush()
    with pytest.raises(PaymentNotConfirmedError):
        await service.create_verified_game(PLAYER, 7, 0.01, tx_hash(2))


@pytest.mark.asyncio
async def test_create_rejects_other_wallet_and_bad_case(db):
    await add_confirmed_intent(db, PLAYER, tx_hash(1))
    service = GameService(db)
    with pytest.raises(PaymentError):
        await service.create_verified_game(OTHER_PLAYER, 7, 0.01, tx_hash(1))
    with pytest.raises(ValidationError):
        await service.create_verified_game(PLAYER, 27, 0.01, tx_hash(1))


@pytest.mark.asyncio
async def test_amount_mismatch_is_only_logged(db):
    await add_confirmed_intent(db, PLAYER, tx_hash(1), amount=0.01)
    game = await GameService(db).create_verified_game(PLAYER, 3, 5.0, tx_hash(1))
    assert game.game_fee == 0.01


@pytest.mark.asyncio
async def test_replayed_transaction_is_rejected(db):
    service, game = await start_game(db)
    await open_cases(service, game, 6)
    await service.accept_deal(game.id, PLAYER)

    with pytest.raises(TransactionReplayError):
        await service.create_verified_game(PLAYER, 5, 0.01, tx_hash(1))


@pytest.mark.asyncio
async def test_second_active_game_is_rejected(db):
    service, _ = await start_game(db, n=1)
    await add_confirmed_intent(db, PLAYER, tx_hash(2))
    with pytest.raises(ConflictError):
        await service.create_verified_game(PLAYER, 5, 0.01, tx_hash(2))


@pytest.mark.asyncio
async def test_locked_purchases(db):
    db.add(GameSettings(
        game_type=GAME_TYPE,
        entry_fee=0.01,
        game_wallet_address="0x508d61ad3f1559679bfae3942508b4cf7767935a",
        purchases_locked=True,
        allow_admin_during_lock=True,
        scatter_consecutive_wins=3,
    ))
    await add_confirmed_intent(db, PLAYER, tx_hash(1))
    service = GameService(db)

    with pytest.raises(GameStateError):
        await service.create_verified_game(PLAYER, 5, 0.01, tx_hash(1))

    game = await service.create_verified_game(PLAYER, 5, 0.01, tx_hash(1), is_admin=True)
    assert game.is_active


@pytest.mark.asyncio
async def test_ownership_is_enforced(db):
    service, game = await start_game(db)
    with pytest.raises(GameOwnershipError):
        await service.open_case(game.id, OTHER_PLAYER, 2)


@pytest.mark.asyncio
async def test_open_case_records_offer(db):
    service, game = await start_game(db)
    result = await open_cases(service, game, 6)

    assert result["should_show_offer"]
    assert result["round"] == 1
    assert result["opened_amount"] == engine.PRIZE_AMOUNTS[5]
    assert game.pending_offer["amount"] == result["banker_offer"]
    assert game.current_round == 2


@pytest.mark.asyncio
async def test_accept_deal_settles_game(db):
    service, game = await start_game(db)
    await open_cases(service, game, 6)
    offer = game.pending_offer["amount"]

    result = await service.accept_deal(game.id, PLAYER)

    assert result["deal_accepted"]
    assert result["final_winnings"] == offer
    assert game.game_status == GameStatus.DEAL_ACCEPTED.value
    assert game.deal_accepted_at_round == 1
    assert game.completed_at is not None

    profile = await ProgressionService(db).get_profile(PLAYER)
    assert profile.total_games_played == 1
    assert profile.total_xp == game.xp_earned

    notes = await db.execute(select(Notification))
    titles = {n.title for n in notes.scalars().all()}
    assert "Deal Accepted!" in titles


@pytest.mark.asyncio
async def test_failed_notification_keeps_settlement(db, monkeypatch):
    """A notification row that cannot be written must not roll back the finished game."""
    service, game = await start_game(db)
    await open_cases(service, game, 6)

    def unwritable_notification(**fields):
        return Notification(**{**fields, "message": None})

    monkeypatch.setattr(notification_service, "Notification", unwritable_notification)

    result = await service.accept_deal(game.id, PLAYER)
    await db.commit()
    await db.refresh(game)

    assert result["deal_accepted"]
    assert game.game_status == GameStatus.DEAL_ACCEPTED.value
    assert game.completed_at is not None
    profile = await ProgressionService(db).get_profile(PLAYER)
    assert profile.total_games_played == 1

    notes = await db.execute(select(Notification))
    assert notes.scalars().all() == []


@pytest.mark.asyncio
async def test_refusals_add_xp(db):
    service, game = await start_game(db)
    await open_cases(service, game, 6)
    await service.refuse_offer(game.id, PLAYER)
    await open_cases(service, game, 11)

    result = await service.accept_deal(game.id, PLAYER)
    assert game.offers_refused == 1
    # 500 for a 205,035 deal plus one refusal
    assert result["final_winnings"] == 205035
    assert result["xp_earned"] == 600


@pytest.mark.asyncio
async def test_final_decision_keep_top_prize(db):
    """Player case 26 holds $1,000,000 on the ordered board."""
    service, game = await start_game(db, case_number=26)
    await open_cases(service, game, 24)

    with pytest.raises(GameStateError):
        await service.open_case(game.id, PLAYER, 25)

    result = await service.final_decision(game.id, PLAYER, keep_original=True)

    assert result["final_winnings"] == 1000000
    assert result["won_case_number"] == 26
    assert result["kept_original"] is True
    # 5000 base + 7 refused offers
    assert result["xp_earned"] == 5700
    assert game.game_status == GameStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_finished_game_rejects_actions(db):
    service, game = await start_game(db)
    await open_cases(service, game, 6)
    await service.accept_deal(game.id, PLAYER)

    with pytest.raises(GameStateError):
        await service.open_case(game.id, PLAYER, 20)
    with pytest.raises(GameStateError):
        await service.accept_deal(game.id, PLAYER)


@pytest.mark.asyncio
async def test_serialize_hides_unopened_cases(db):
    service, game = await start_game(db)
    await open_cases(service, game, 2)

    data = serialize_game(game)
    assert set(data["revealed_amounts"]) == {"1", "2"}
    assert len(data["remaining_amounts"]) == 24

    await open_cases(service, game, 6)
    await service.accept_deal(game.id, PLAYER)
    assert len(serialize_game(game)["revealed_amounts"]) == 26


@pytest.mark.asyncio
async def test_continue_after_level9(db):
    progression = ProgressionService(db)
    await progression.set_player_level(PLAYER, 10)
    service, game = await start_game(db)

    result = await service.continue_after_level9(PLAYER)
    assert result["active_game_id"] == game.id
    assert game.continuing_after_level9

    await open_cases(service, game, 6)
    await service.refuse_offer(game.id, PLAYER)
    await open_cases(service, game, 11)
    deal = await service.accept_deal(game.id, PLAYER)
    assert deal["xp_earned"] == 525
    assert game.offers_refused == 1


@pytest.mark.asyncio
async def test_continue_requires_level9(db):
    await ProgressionService(db).get_or_create_profile(PLAYER)
    with pytest.raises(GameStateError):
        await GameService(db).continue_after_level9(PLAYER)
