"""
HTTP tests: authentication, error mapping and the payment-to-game flow.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from app.api.main import create_app, status_for_exception
from app.api.routes import payments as payment_routes
from app.core.config import settings
from app.core.exceptions import (
    BlockchainError,
    GameOwnershipError,
    InvalidCaseError,
    PaymentNotConfirmedError,
    TransactionReplayError,
)

from .conftest import PLAYER, OTHER_PLAYER, ADMIN, FakeChainClient, tx_hash

API = settings.api_v1_prefix


def auth(wallet):
    return {"Authorization": f"Bearer {wallet}"}


@pytest.fixture
async def client(database):
    app = create_app(use_lifespan=False)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http


@pytest.fixture
def chain(monkeypatch):
    fake = FakeChainClient()
    monkeypatch.setattr(payment_routes, "get_bsc_client", lambda: fake)
    return fake


async def start_paid_game(client, chain, wallet=PLAYER, case_number=13, n=1):
    intent = await client.post(f"{API}/payments/intents", json={"case_number": case_number}, headers=auth(wallet))
    assert intent.status_code == 201
    order_id = intent.json()["data"]["order_id"]

    submitted = await client.post(
        f"{API}/payments/submit",
        json={"order_id": order_id, "tx_hash": tx_hash(n)},
        headers=auth(wallet)
    )
    assert submitted.status_code == 200

    chain.receipts[tx_hash(n)] = {"verified": True, "failed": False, "confirmations": 6, "block_number": 994}
    status = await client.get(f"{API}/payments/status/{tx_hash(n)}", headers=auth(wallet))
    assert status.json()["data"]["status"] == "completed"
    return status.json()["data"]["game_id"]


def test_exception_status_mapping():
    assert status_for_exception(InvalidCaseError(3, "already opened")) == 400
    assert status_for_exception(GameOwnershipError(PLAYER, 1)) == 403
    assert status_for_exception(TransactionReplayError(tx_hash(1))) == 409
    assert status_for_exception(PaymentNotConfirmedError(tx_hash(1), "PENDING")) == 402
    assert status_for_exception(BlockchainError("down")) == 502


@pytest.mark.asyncio
async def test_health_and_root(client):
    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["services"]["database"] == "healthy"

    root = await client.get("/")
    assert root.json()["success"]


@pytest.mark.asyncio
async def test_wallet_auth_required(client):
    response = await client.get(f"{API}/games/active")
    assert response.status_code == 401

    response = await client.get(f"{API}/games/active", headers=auth("not-a-wallet"))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_admin_routes_require_admin_wallet(client):
    assert (await client.get(f"{API}/admin/stats", headers=auth(PLAYER))).status_code == 403

    response = await client.get(f"{API}/admin/stats", headers=auth(ADMIN))
    assert response.status_code == 200
    assert response.json()["data"]["active_games"] == 0


@pytest.mark.asyncio
async def test_payment_intent_response(client):
    response = await client.post(f"{API}/payments/intents", json={"case_number": 5}, headers=auth(PLAYER))
    data = response.json()["data"]

    assert data["status"] == "PENDING"
    assert data["chain_id"] == 56
    assert data["expected_to_address"] == settings.default_game_wallet.lower()

    fetched = await client.get(f"{API}/payments/intents/{data['order_id']}", headers=auth(PLAYER))
    assert fetched.status_code == 200
    hidden = await client.get(f"{API}/payments/intents/{data['order_id']}", headers=auth(OTHER_PLAYER))
    assert hidden.status_code == 404


@pytest.mark.asyncio
async def test_invalid_case_number_is_rejected(client):
    response = await client.post(f"{API}/payments/intents", json={"case_number": 27}, headers=auth(PLAYER))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_paid_game_flow(client, chain):
    game_id = await start_paid_game(client, chain)

    game = (await client.get(f"{API}/games/{game_id}", headers=auth(PLAYER))).json()["data"]
    assert game["player_case_number"] == 13
    assert game["revealed_amounts"] == {}

    opened = None
    for case_number in (1, 2, 3, 4, 5, 6):
        opened = await client.post(f"{API}/games/{game_id}/open", json={"case_number": case_number}, headers=auth(PLAYER))
        assert opened.status_code == 200
    data = opened.json()["data"]
    assert data["should_show_offer"]
    assert data["game"]["pending_offer"] == data["banker_offer"]

    deal = await client.post(f"{API}/games/{game_id}/deal", headers=auth(PLAYER))
    assert deal.status_code == 200
    assert deal.json()["data"]["final_winnings"] == data["banker_offer"]
    assert deal.json()["data"]["game"]["game_status"] == "deal_accepted"

    profile = (await client.get(f"{API}/players/me", headers=auth(PLAYER))).json()["data"]
    assert profile["total_games_played"] == 1


@pytest.mark.asyncio
async def test_game_errors_map_to_status_codes(client, chain):
    game_id = await start_paid_game(client, chain)

    own_case = await client.post(f"{API}/games/{game_id}/open", json={"case_number": 13}, headers=auth(PLAYER))
    assert own_case.status_code == 400
    assert own_case.json()["error_code"] == "GAME_STATE_ERROR"

    foreign = await client.get(f"{API}/games/{game_id}", headers=auth(OTHER_PLAYER))
    assert foreign.status_code == 403

    missing = await client.get(f"{API}/games/9999", headers=auth(PLAYER))
    assert missing.status_code == 404

    no_offer = await client.post(f"{API}/games/{game_id}/deal", headers=auth(PLAYER))
    assert no_offer.status_code == 400


@pytest.mark.asyncio
async def test_replayed_hash_conflicts(client, chain):
    await start_paid_game(client, chain)

    intent = await client.post(f"{API}/payments/intents", json={"case_number": 2}, headers=auth(PLAYER))
    response = await client.post(
        f"{API}/payments/submit",
        json={"order_id": intent.json()["data"]["order_id"], "tx_hash": tx_hash(1)},
        headers=auth(PLAYER)
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_leaderboard_endpoints(client):
    started = await client.post(f"{API}/leaderboard/periods", headers=auth(ADMIN))
    assert started.status_code == 201
    period_id = started.json()["data"]["id"]

    await client.put(f"{API}/players/me", json={"player_name": "Alice"}, headers=auth(PLAYER))

    board = (await client.get(f"{API}/leaderboard")).json()["data"]
    assert board["period"]["period_number"] == 1
    assert board["period"]["time_remaining"]["days"] in (29, 30)
    assert board["rankings"][0]["player_name"] == "Alice"

    paused = await client.post(f"{API}/leaderboard/periods/{period_id}/toggle-pause", headers=auth(ADMIN))
    assert paused.json()["message"] == "Period paused"

    forbidden = await client.post(f"{API}/leaderboard/periods", headers=auth(PLAYER))
    assert forbidden.status_code == 403


@pytest.mark.asyncio
async def test_admin_settings_lock_purchases(client):
    updated = await client.put(f"{API}/admin/settings", json={"purchases_locked": True}, headers=auth(ADMIN))
    assert updated.status_code == 200

    blocked = await client.post(f"{API}/payments/intents", json={"case_number": 5}, headers=auth(PLAYER))
    assert blocked.status_code == 400


@pytest.mark.asyncio
async def test_sell_trophies_without_price(client):
    response = await client.post(f"{API}/players/me/sell-trophies", json={}, headers=auth(PLAYER))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_notifications_flow(client, chain):
    game_id = await start_paid_game(client, chain)
    for case_number in (1, 2, 3, 4, 5, 6):
        await client.post(f"{API}/games/{game_id}/open", json={"case_number": case_number}, headers=auth(PLAYER))
    await client.post(f"{API}/games/{game_id}/deal", headers=auth(PLAYER))

    notes = (await client.get(f"{API}/notifications", headers=auth(PLAYER))).json()["data"]
    assert any(n["title"] == "Deal Accepted!" for n in notes)

    await client.post(f"{API}/notifications/read-all", headers=auth(PLAYER))
    unread = (await client.get(f"{API}/notifications?unread_only=true", headers=auth(PLAYER))).json()["data"]
    assert unread == []
