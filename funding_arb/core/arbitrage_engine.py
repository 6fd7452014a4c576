"""
Funding Arbitrage Engine
========================
Runs one cycle per hour:

1. Fetch open positions from both venues
2. Close legs whose side no longer matches the funding direction, and
   legs whose counterpart on the other venue is missing
3. For every symbol pair: evaluate, size and open a fresh pair

Pairs are processed one after another. A failure is scoped to its pair,
except a failed compensation, which leaves an unintended one-sided
position and stops the rest of the cycle.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from funding_arb.exchanges.base import ExchangeAdapter

from .config import ArbConfig
from .decision import ArbitrageDecisionEngine
from .errors import CompensationFailed, DataUnavailable, FundingArbError, ThresholdNotMet
from .models import Action, AttemptOutcome, Position, SymbolPair
from .reconciliation import ReconciliationEngine
from .saga import ExecutionSaga

logger = logging.getLogger(__name__)


def seconds_until_next_run(now: datetime, target_minute: int, utc_offset_minutes: int) -> int:
    """
    Seconds until the next :target_minute on a fixed-offset clock.

    Exactly on the target second waits a full hour.
    """
    local = now.astimezone(timezone(timedelta(minutes=utc_offset_minutes)))
    if local.minute < target_minute:
        minutes_until = target_minute - local.minute
    else:
        minutes_until = 60 - local.minute + target_minute

    total = minutes_until * 60 - local.second
    if total <= 0:
        total += 3600
    return total


class FundingArbitrageEngine:
    """
    Main engine for cross-venue funding rate arbitrage.

    Venue A is the primary leg (opened first, compensated on failure),
    venue B the secondary.
    """

    def __init__(
        self,
        venue_a: ExchangeAdapter,
        venue_b: ExchangeAdapter,
        config: Optional[ArbConfig] = None
    ):
        self.venue_a = venue_a
        self.venue_b = venue_b
        self.config = config or ArbConfig()

        self.decision = ArbitrageDecisionEngine(self.config)
        self.saga = ExecutionSaga(venue_a, venue_b)
        self.reconciler = ReconciliationEngine(venue_a, venue_b)

        self.running = False
        self.cycles_completed = 0
        self.errors_count = 0

    async def initialize(self) -> None:
        """Initialize both venue connections"""
        logger.info("=" * 60)
        logger.info("FUNDING ARBITRAGE ENGINE INITIALIZING")
        logger.info("=" * 60)
        await self.venue_a.initialize()
        await self.venue_b.initialize()

        logger.info(f"  Venues: {self.venue_a.name} (leg 1) / {self.venue_b.name} (leg 2)")
        logger.info(f"  Notional: ${self.config.trade_notional_usd:.2f} per leg")
        logger.info(f"  Min funding diff: {self.config.min_funding_diff_pct}%")
        logger.info(f"  Max price spread: {self.config.max_price_spread_pct}%")
        logger.info(f"  Pairs: {', '.join(str(p) for p in self.config.pairs)}")
        logger.info(f"  Mode: {'DRY RUN' if self.config.dry_run else 'LIVE'}")

    async def shutdown(self) -> None:
        """Clean shutdown"""
        logger.info("Shutting down arbitrage engine...")
        self.running = False
        await self.venue_a.close()
        await self.venue_b.close()
        logger.info(f"  Cycles: {self.cycles_completed}, errors: {self.errors_count}")

    async def fetch_positions(self) -> Tuple[Dict[str, Position], Dict[str, Position]]:
        """Open positions on both venues, keyed by venue symbol"""
        positions_a = {p.symbol: p for p in await self.venue_a.fetch_positions()}
        positions_b = {p.symbol: p for p in await self.venue_b.fetch_positions()}
        logger.info(f"{self.venue_a.name} open positions: {list(positions_a)}")
        logger.info(f"{self.venue_b.name} open positions: {list(positions_b)}")
        return positions_a, positions_b

    async def reconcile_pair(
        self,
        pair: SymbolPair,
        position_a: Optional[Position],
        position_b: Optional[Position],
    ) -> List[AttemptOutcome]:
        """Close mismatched legs of one pair; errors stay scoped to the pair"""
        try:
            return await self.reconciler.reconcile(pair, position_a, position_b)
        except (FundingArbError, ValueError) as e:
            logger.error(f"{pair}: reconciliation failed: {e}")
            return [AttemptOutcome(pair, Action.CLOSE, False, str(e))]

    async def attempt_open(
        self,
        pair: SymbolPair,
        position_a: Optional[Position] = None,
        position_b: Optional[Position] = None,
    ) -> AttemptOutcome:
        """
        Evaluate one pair and open both legs if the opportunity holds.

        Raises:
            CompensationFailed: leg 1 is left open without its counterpart
        """
        logger.info(f"Checking funding arb for {pair}")
        try:
            market_a = await self.venue_a.fetch_market(pair.venue_a_symbol)
            market_b = await self.venue_b.fetch_market(pair.venue_b_symbol)

            signal = self.decision.evaluate(pair, market_a, market_b)
            logger.info(
                f"  {self.venue_a.name} funding: {signal.rate_a_pct:.5f}% | "
                f"{self.venue_b.name} funding: {signal.rate_b_pct:.5f}% | "
                f"diff: {signal.funding_diff_pct:.5f}% | spread: {signal.price_spread_pct:.4f}%"
            )
            side_a, side_b = signal.direction
            if (position_a and position_a.side == side_a) and (position_b and position_b.side == side_b):
                return AttemptOutcome(pair, Action.SKIP, True, "Pair already open in funding direction")
            if position_a or position_b:
                # A leg survived reconciliation; never open on top of it
                held = ", ".join(
                    f"{p.venue} {p.side.value} {p.size}" for p in (position_a, position_b) if p
                )
                return AttemptOutcome(pair, Action.SKIP, False, f"Pair not flat ({held})")

            self.decision.check_thresholds(signal)

            balance_a = await self.venue_a.fetch_balance()
            balance_b = await self.venue_b.fetch_balance()
            intent = self.decision.decide(pair, market_a, market_b, balance_a, balance_b)
            return await self.saga.execute(intent, market_a, market_b)

        except ThresholdNotMet as e:
            return AttemptOutcome(pair, Action.SKIP, True, str(e))
        except CompensationFailed:
            raise
        except (FundingArbError, ValueError) as e:
            return AttemptOutcome(pair, Action.OPEN, False, str(e))

    async def run_cycle(self) -> List[AttemptOutcome]:
        """
        Run a single arbitrage cycle.

        Raises:
            CompensationFailed: the cycle was aborted with a one-sided position
        """
        self.cycles_completed += 1
        now = datetime.now(timezone.utc)
        logger.info("")
        logger.info("=" * 60)
        logger.info(f"CYCLE #{self.cycles_completed} - {now.strftime('%Y-%m-%d %H:%M:%S UTC')}")
        logger.info("=" * 60)

        try:
            positions_a, positions_b = await self.fetch_positions()
        except DataUnavailable as e:
            logger.error(f"Could not fetch positions, skipping cycle: {e}")
            self.errors_count += 1
            return []

        outcomes: List[AttemptOutcome] = []

        # 1. Close legs that contradict the funding direction or have no counterpart
        for pair in self.config.pairs:
            position_a = positions_a.get(pair.venue_a_symbol)
            position_b = positions_b.get(pair.venue_b_symbol)
            for outcome in await self.reconcile_pair(pair, position_a, position_b):
                outcomes.append(outcome)
                if outcome.success and outcome.venue == self.venue_a.name:
                    positions_a.pop(pair.venue_a_symbol, None)
                elif outcome.success and outcome.venue == self.venue_b.name:
                    positions_b.pop(pair.venue_b_symbol, None)

        # 2. Enter fresh opportunities
        for pair in self.config.pairs:
            outcome = await self.attempt_open(
                pair,
                positions_a.get(pair.venue_a_symbol),
                positions_b.get(pair.venue_b_symbol),
            )
            outcomes.append(outcome)

        for outcome in outcomes:
            if outcome.success:
                logger.info(str(outcome))
            else:
                self.errors_count += 1
                logger.warning(str(outcome))

        return outcomes

    async def run(self) -> None:
        """
        Main run loop - one cycle per hour at the configured minute.
        """
        await self.initialize()
        self.running = True

        try:
            while self.running:
                wait = seconds_until_next_run(
                    datetime.now(timezone.utc),
                    self.config.target_minute,
                    self.config.utc_offset_minutes,
                )
                logger.info(f"Next cycle in {wait}s (minute :{self.config.target_minute:02d})")
                await asyncio.sleep(wait)

                try:
                    await self.run_cycle()
                except CompensationFailed as e:
                    self.errors_count += 1
                    logger.critical(f"🚨 {e} - manual intervention required")
                except Exception as e:
                    self.errors_count += 1
                    logger.error(f"Cycle error: {e}")

        finally:
            await self.shutdown()

    async def run_once(self) -> List[AttemptOutcome]:
        """Run a single cycle immediately"""
        await self.initialize()
        try:
            return await self.run_cycle()
        finally:
            await self.shutdown()
