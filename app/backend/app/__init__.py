"""
Deal or No Deal Backend Application

Backend service for the Deal or No Deal game that provides:
- Server-side game rounds, banker offers and XP progression
- USDT entry-fee verification on BNB Smart Chain
- Monthly XP leaderboard with payout bookkeeping
- REST API for players and admins
"""

__version__ = "0.1.0"
