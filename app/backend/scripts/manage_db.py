#!/usr/bin/env python3
"""
Database management script for the Deal or No Deal backend.
"""

import asyncio
import sys

import typer
from rich.console import Console
from rich.table import Table

from app.core.database import init_database, close_database, get_async_session, DatabaseManager
from app.core.logging import setup_logging, get_logger
from app.services.admin_service import get_admin_service
from app.services.leaderboard_service import get_leaderboard_service

console = Console()
logger = get_logger(__name__)
app = typer.Typer(help="Database management commands")


@app.command()
def init():
    """Initialize database with tables."""
    async def _init():
        setup_logging()
        await init_database()
        await DatabaseManager.create_tables()
        await close_database()
        console.print("✅ Database initialized successfully!")

    asyncio.run(_init())


@app.command()
def drop():
    """Drop all tables."""
    confirm = typer.confirm("Are you sure you want to drop all tables?")
    if not confirm:
        console.print("❌ Operation cancelled")
        return

    async def _drop():
        setup_logging()
        await init_database()
        await DatabaseManager.drop_tables()
        await close_database()
        console.print("🗑️ All tables dropped!")

    asyncio.run(_drop())


@app.command()
def seed(
    start_period: bool = typer.Option(True, help="Open the first leaderboard period if none is active")
):
    """Seed the trophy catalogue, game settings and the first leaderboard period."""
    console.print("🌱 Seeding database...")

    async def _seed():
        setup_logging()
        await init_database()

        async with get_async_session() as db:
            admin = get_admin_service(db)
            created = await admin.seed_trophy_catalogue()
            game_settings = await admin.update_game_settings()

            period = None
            if start_period:
                leaderboard = get_leaderboard_service(db)
                period = await leaderboard.get_active_period() or await leaderboard.start_new_period()

        table = Table(title="Seed Results")
        table.add_column("Item", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Trophies created", str(created))
        table.add_row("Entry fee (USDT)", str(game_settings.entry_fee))
        table.add_row("Game wallet", game_settings.game_wallet_address)
        table.add_row("Active period", str(period.period_number) if period else "-")
        console.print(table)

        await close_database()
        console.print("✅ Database seeded successfully!")

    asyncio.run(_seed())


@app.command()
def health():
    """Check database health."""
    async def _health():
        setup_logging()
        await init_database()

        report = await DatabaseManager.health_check()
        await close_database()

        if report["status"] == "healthy":
            console.print(f"✅ Database is healthy ({report['driver']}, {report['latency_ms']} ms)")
        else:
            console.print(f"❌ Database health check failed: {report.get('error')}")
            sys.exit(1)

    asyncio.run(_health())


@app.command()
def tables():
    """Show row counts per table."""
    async def _tables():
        setup_logging()
        await init_database()
        counts = await DatabaseManager.table_counts()
        await close_database()

        table = Table(title="Tables")
        table.add_column("Table", style="cyan")
        table.add_column("Rows", style="green", justify="right")
        for name, rows in counts.items():
            table.add_row(name, str(rows))
        console.print(table)

    asyncio.run(_tables())


@app.command()
def stats():
    """Show game statistics."""
    async def _stats():
        setup_logging()
        await init_database()

        async with get_async_session() as db:
            data = await get_admin_service(db).get_dashboard_stats()
        await close_database()

        table = Table(title="Game Statistics")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        for key, value in data.items():
            table.add_row(key.replace("_", " ").title(), str(value))
        console.print(table)

    asyncio.run(_stats())


if __name__ == "__main__":
    app()
