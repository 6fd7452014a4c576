#!/usr/bin/env python3
"""
Cross-Venue Funding Rate Arbitrage Bot
======================================
Exploits funding rate differentials between Extended (Starknet) and
Pacifica (Solana).

Usage:
    # Dry run (default - orders are signed but not sent)
    python -m funding_arb.bot_funding_arb --dry-run

    # Live trading
    python -m funding_arb.bot_funding_arb --live

    # Single cycle now
    python -m funding_arb.bot_funding_arb --dry-run --once

    # Custom size and pairs
    python -m funding_arb.bot_funding_arb --live --size 50 --pairs ETH-USD:ETH SOL-USD:SOL

Strategy:
    1. Every hour at :28 IST, compare funding rates on both venues
    2. Close legs that are on the wrong side of the funding direction
    3. When funding diff is high enough and prices agree:
       SHORT the high-rate venue, LONG the low-rate venue
    4. If the second leg fails, close the first leg again

Required Environment Variables:
    EXTENDED_API_KEY, EXTENDED_STARK_PRIVATE_KEY, EXTENDED_STARK_PUBLIC_KEY, EXTENDED_VAULT_ID
    PACIFICA_PRIVATE_KEY, PACIFICA_WALLET_ADDRESS
"""

import argparse
import asyncio
import logging
import os
from datetime import datetime

from dotenv import load_dotenv

from funding_arb.core.arbitrage_engine import FundingArbitrageEngine
from funding_arb.core.config import ArbConfig, ExtendedCredentials, PacificaCredentials
from funding_arb.core.models import SymbolPair
from funding_arb.exchanges.extended_adapter import ExtendedAdapter
from funding_arb.exchanges.pacifica_adapter import PacificaAdapter

# Load environment variables
load_dotenv()


def setup_logging(log_file: str = "logs/funding_arb.log", level: str = "INFO"):
    """Set up logging configuration"""
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )

    # Suppress noisy loggers
    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)


def parse_args(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description='Cross-Venue Funding Rate Arbitrage Bot',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s --dry-run                         # Sign but don't send orders
    %(prog)s --live                            # Live trading with defaults
    %(prog)s --live --size 50                  # $50 per leg
    %(prog)s --dry-run --once                  # Single cycle now
    %(prog)s --live --pairs ETH-USD:ETH        # Only trade ETH
        """
    )

    # Mode
    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument('--dry-run', action='store_true', default=True,
                            help='Sign orders without sending them (default)')
    mode_group.add_argument('--live', action='store_true',
                            help='Execute real trades')

    parser.add_argument('--preset', choices=['default', 'testing'], default='default',
                        help='Configuration preset')

    # Custom config
    parser.add_argument('--size', type=float, help='Notional per leg in USD')
    parser.add_argument('--min-funding-diff', type=float, help='Minimum funding diff (%%)')
    parser.add_argument('--max-spread', type=float, help='Maximum price spread (%%)')
    parser.add_argument('--no-brackets', action='store_true', help='Open without TP/SL')
    parser.add_argument('--pairs', nargs='+', help='Symbol pairs as EXTENDED:PACIFICA (e.g. ETH-USD:ETH)')
    parser.add_argument('--testnet', action='store_true', help='Use Extended testnet')

    # Execution
    parser.add_argument('--once', action='store_true', help='Run single cycle now and exit')

    # Logging
    parser.add_argument('--log-file', default='logs/funding_arb.log', help='Log file path')
    parser.add_argument('--log-level', default='INFO', help='Log level')

    return parser.parse_args(argv)


def create_config(args) -> ArbConfig:
    """Create configuration from args"""
    config = ArbConfig.testing() if args.preset == 'testing' else ArbConfig()

    # Override with command line args
    if args.size:
        config.trade_notional_usd = args.size
    if args.min_funding_diff is not None:
        config.min_funding_diff_pct = args.min_funding_diff
    if args.max_spread is not None:
        config.max_price_spread_pct = args.max_spread
    if args.no_brackets:
        config.include_brackets = False
    if args.pairs:
        config.pairs = [SymbolPair.parse(p) for p in args.pairs]

    config.dry_run = not args.live
    config.log_file = args.log_file
    config.log_level = args.log_level
    return config


def create_engine(config: ArbConfig, testnet: bool = False) -> FundingArbitrageEngine:
    """Build both venue adapters from environment credentials"""
    extended = ExtendedAdapter(
        ExtendedCredentials.from_env(),
        testnet=testnet,
        slippage=config.extended_slippage,
        bracket_pct=config.bracket_pct,
        dry_run=config.dry_run,
    )
    pacifica = PacificaAdapter(
        PacificaCredentials.from_env(),
        slippage_percent=config.pacifica_slippage_percent,
        bracket_pct=config.bracket_pct,
        dry_run=config.dry_run,
    )
    return FundingArbitrageEngine(extended, pacifica, config)


async def run(args) -> None:
    config = create_config(args)
    setup_logging(config.log_file, config.log_level)
    logger = logging.getLogger(__name__)

    logger.info("")
    logger.info("=" * 70)
    logger.info(" CROSS-VENUE FUNDING RATE ARBITRAGE BOT")
    logger.info("=" * 70)
    logger.info(f" Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info(f" Mode: {'DRY RUN' if config.dry_run else 'LIVE TRADING'}")
    logger.info("=" * 70)

    engine = create_engine(config, testnet=args.testnet)
    if args.once:
        await engine.run_once()
    else:
        await engine.run()


def main():
    """Console entry point"""
    args = parse_args()
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nInterrupted by user")


if __name__ == "__main__":
    main()
