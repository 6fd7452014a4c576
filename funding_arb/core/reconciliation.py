"""
Reconciliation ("close if necessary")
=====================================
Before opening anything new, every held leg is checked against the
direction the current funding rates imply. A leg on the wrong side is
closed in full, and so is a leg whose counterpart on the other venue is
missing. The two venues are handled independently: each close only
reduces exposure, so one failing does not undo the other.
"""

import logging
from typing import List, Optional

from funding_arb.exchanges.base import ExchangeAdapter

from .decision import target_direction
from .errors import FundingArbError
from .models import Action, AttemptOutcome, MarketSnapshot, Position, SymbolPair

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """Closes legs that contradict the funding direction or have no counterpart"""

    def __init__(self, venue_a: ExchangeAdapter, venue_b: ExchangeAdapter):
        self.venue_a = venue_a
        self.venue_b = venue_b

    async def reconcile(
        self,
        pair: SymbolPair,
        position_a: Optional[Position],
        position_b: Optional[Position],
    ) -> List[AttemptOutcome]:
        """
        Close mismatched legs for one pair.

        Raises:
            DataUnavailable: market data for the pair could not be fetched
        """
        if position_a is None and position_b is None:
            return []

        logger.info(f"Reconciling {pair}")
        market_a = await self.venue_a.fetch_market(pair.venue_a_symbol)
        market_b = await self.venue_b.fetch_market(pair.venue_b_symbol)
        side_a, side_b = target_direction(market_a.funding_rate_pct, market_b.funding_rate_pct)

        # A single leg is a directional bet, whatever its side
        unpaired = position_a is None or position_b is None

        outcomes = []
        for adapter, market, position, target in (
            (self.venue_a, market_a, position_a, side_a),
            (self.venue_b, market_b, position_b, side_b),
        ):
            if position is None:
                continue
            if position.side != target:
                reason = f"funding now favors {target.value}"
            elif unpaired:
                reason = "no counterpart on the other venue"
            else:
                continue
            outcomes.append(await self._close(pair, adapter, market, position, reason))
        return outcomes

    async def _close(
        self,
        pair: SymbolPair,
        adapter: ExchangeAdapter,
        market: MarketSnapshot,
        position: Position,
        reason: str,
    ) -> AttemptOutcome:
        logger.info(
            f"{pair}: {adapter.name} holds {position.side.value} {position.size}, "
            f"{reason} - closing"
        )
        try:
            result = await adapter.close_position(position, market)
        except FundingArbError as e:
            logger.error(f"{pair}: close on {adapter.name} failed: {e}")
            return AttemptOutcome(pair, Action.CLOSE, False, str(e), adapter.name)

        if not result.success:
            return AttemptOutcome(pair, Action.CLOSE, False, f"Rejected: {result.error}", adapter.name)
        return AttemptOutcome(
            pair, Action.CLOSE, True, f"Closed {position.side.value} {position.size}", adapter.name
        )
