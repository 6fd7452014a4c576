"""
Cross-Venue Funding Rate Arbitrage
==================================
Holds opposite-sign perpetual positions on Extended (Starknet) and
Pacifica (Solana) when their funding rates diverge.

Strategy:
- Compare funding rates of the same asset on both venues every hour
- When the difference is large enough and prices agree: SHORT the
  high-rate venue, LONG the low-rate venue
- Close any leg whose side no longer matches the funding direction
"""

__version__ = "0.1.0"
