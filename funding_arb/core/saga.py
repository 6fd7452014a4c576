"""
Two-leg execution saga
======================
Leg 1 goes to venue A, leg 2 to venue B. If leg 2 fails after leg 1 was
accepted, leg 1 is closed with an opposite-side order of the same size.
The compensating order is not retried: if it fails, the one-sided
position is surfaced as CompensationFailed.

No intent is persisted between the legs, so a crash after leg 1 leaves
the position open until the next cycle's reconciliation.
"""

import logging

from funding_arb.exchanges.base import ExchangeAdapter

from .errors import CompensationFailed, FundingArbError, OrderRejected
from .models import Action, AttemptOutcome, MarketSnapshot, TradeIntent

logger = logging.getLogger(__name__)


class ExecutionSaga:
    """Places both legs of a trade intent in sequence"""

    def __init__(self, venue_a: ExchangeAdapter, venue_b: ExchangeAdapter):
        self.venue_a = venue_a
        self.venue_b = venue_b

    async def execute(
        self,
        intent: TradeIntent,
        market_a: MarketSnapshot,
        market_b: MarketSnapshot,
    ) -> AttemptOutcome:
        """
        Open both legs of an intent.

        Returns:
            OPEN outcome on success, a failed OPEN outcome when leg 1 fails
            (nothing committed), a failed COMPENSATE outcome when leg 2 failed
            and leg 1 was closed again

        Raises:
            CompensationFailed: leg 2 failed and leg 1 could not be closed
        """
        pair = intent.pair

        # Leg 1 - nothing is committed if this fails
        try:
            leg1 = await self.venue_a.place_order(
                market_a, intent.venue_a_side, intent.quantity,
                include_brackets=intent.include_brackets,
            )
        except FundingArbError as e:
            logger.error(f"{pair}: leg 1 on {self.venue_a.name} failed: {e}")
            return AttemptOutcome(pair, Action.OPEN, False, f"Leg 1 failed: {e}", self.venue_a.name)

        if not leg1.success:
            rejected = OrderRejected(self.venue_a.name, leg1.error or "unknown error")
            logger.error(f"{pair}: leg 1 {rejected}")
            return AttemptOutcome(pair, Action.OPEN, False, f"Leg 1 failed: {rejected}", self.venue_a.name)

        # Leg 2 - any failure from here on must unwind leg 1
        try:
            leg2 = await self.venue_b.place_order(
                market_b, intent.venue_b_side, intent.quantity,
                include_brackets=intent.include_brackets,
            )
            failure = None if leg2.success else str(OrderRejected(self.venue_b.name, leg2.error or "unknown error"))
        except Exception as e:
            failure = f"{self.venue_b.name} order failed: {e}"

        if failure is None:
            logger.info(
                f"✅ {pair}: {intent.venue_a_side.value} on {self.venue_a.name}, "
                f"{intent.venue_b_side.value} on {self.venue_b.name}"
            )
            return AttemptOutcome(
                pair, Action.OPEN, True,
                f"{intent.venue_a_side.value} {self.venue_a.name} / {intent.venue_b_side.value} {self.venue_b.name}",
            )

        logger.error(f"{pair}: leg 2 failed ({failure}) - closing leg 1 on {self.venue_a.name}")
        await self._compensate(intent, market_a, leg1.filled_size or intent.quantity)
        return AttemptOutcome(
            pair, Action.COMPENSATE, False,
            f"Leg 2 failed: {failure}; leg 1 closed on {self.venue_a.name}", self.venue_b.name,
        )

    async def _compensate(self, intent: TradeIntent, market_a: MarketSnapshot, quantity: float) -> None:
        side = intent.venue_a_side.opposite
        try:
            result = await self.venue_a.place_order(
                market_a, side, quantity, include_brackets=False, reduce_only=True,
            )
        except Exception as e:
            raise CompensationFailed(self.venue_a.name, market_a.symbol, str(e), cause=e) from e

        if not result.success:
            raise CompensationFailed(self.venue_a.name, market_a.symbol, result.error or "rejected")

        logger.warning(f"{intent.pair}: compensated leg 1 with {side.value} {quantity} on {self.venue_a.name}")
