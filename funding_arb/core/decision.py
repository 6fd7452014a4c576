"""
Arbitrage Decision Engine
=========================
Turns two market snapshots into a directional trade intent.

Shorts collect funding when the rate is positive, so the venue with the
higher funding rate is shorted and the other one is longed. A trade is
only taken when the funding difference beats a minimum and the two
venues' prices agree closely enough that entering both legs does not
lock in a price loss.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from .config import ArbConfig
from .errors import InsufficientBalance, ThresholdNotMet
from .models import MarketSnapshot, Side, SymbolPair, TradeIntent

logger = logging.getLogger(__name__)


def price_spread_pct(price_a: float, price_b: float) -> float:
    """Relative price difference, normalized by the larger price, in percent"""
    larger = max(price_a, price_b)
    if larger <= 0:
        raise ValueError("Prices must be positive")
    return abs(price_a - price_b) / larger * 100.0


def target_direction(rate_a_pct: float, rate_b_pct: float) -> Tuple[Side, Side]:
    """
    Sides for (venue A, venue B) implied by funding rates.

    Higher rate on A -> SHORT A / LONG B, otherwise LONG A / SHORT B.
    """
    if rate_a_pct > rate_b_pct:
        return Side.SHORT, Side.LONG
    return Side.LONG, Side.SHORT


@dataclass(frozen=True)
class FundingSignal:
    """Funding and price comparison for one symbol pair"""
    pair: SymbolPair
    rate_a_pct: float
    rate_b_pct: float
    price_a: float
    price_b: float

    @property
    def funding_diff_pct(self) -> float:
        return abs(self.rate_a_pct - self.rate_b_pct)

    @property
    def price_spread_pct(self) -> float:
        return price_spread_pct(self.price_a, self.price_b)

    @property
    def direction(self) -> Tuple[Side, Side]:
        return target_direction(self.rate_a_pct, self.rate_b_pct)


class ArbitrageDecisionEngine:
    """Evaluates funding/price signals and sizes the trade"""

    def __init__(self, config: Optional[ArbConfig] = None):
        self.config = config or ArbConfig()

    def evaluate(self, pair: SymbolPair, market_a: MarketSnapshot, market_b: MarketSnapshot) -> FundingSignal:
        """Parse both snapshots into a FundingSignal"""
        return FundingSignal(
            pair=pair,
            rate_a_pct=market_a.funding_rate_pct,
            rate_b_pct=market_b.funding_rate_pct,
            price_a=market_a.price,
            price_b=market_b.price,
        )

    def check_thresholds(self, signal: FundingSignal) -> None:
        """
        Raises:
            ThresholdNotMet: spread too wide or funding difference too small
        """
        spread = signal.price_spread_pct
        diff = signal.funding_diff_pct
        if spread > self.config.max_price_spread_pct:
            raise ThresholdNotMet(
                f"Price spread {spread:.4f}% exceeds {self.config.max_price_spread_pct}%"
            )
        if diff < self.config.min_funding_diff_pct:
            raise ThresholdNotMet(
                f"Funding diff {diff:.5f}% below {self.config.min_funding_diff_pct}%"
            )

    def size(self, signal: FundingSignal) -> float:
        """Quantity for the configured notional with a price haircut for slack"""
        return self.config.trade_notional_usd / (self.config.price_haircut * min(signal.price_a, signal.price_b))

    def decide(
        self,
        pair: SymbolPair,
        market_a: MarketSnapshot,
        market_b: MarketSnapshot,
        balance_a: float,
        balance_b: float,
    ) -> TradeIntent:
        """
        Produce a trade intent or raise why there is none.

        Raises:
            ThresholdNotMet: no opportunity
            InsufficientBalance: either venue can't fund the notional
        """
        signal = self.evaluate(pair, market_a, market_b)
        self.check_thresholds(signal)

        notional = self.config.trade_notional_usd
        if balance_a < notional or balance_b < notional:
            raise InsufficientBalance(
                f"Tradeable balance too low: {market_a.venue} ${balance_a:.2f}, "
                f"{market_b.venue} ${balance_b:.2f} (need ${notional:.2f})"
            )

        side_a, side_b = signal.direction
        intent = TradeIntent(
            pair=pair,
            venue_a_side=side_a,
            venue_b_side=side_b,
            quantity=self.size(signal),
            notional_usd=notional,
            include_brackets=self.config.include_brackets,
            funding_diff_pct=signal.funding_diff_pct,
            price_spread_pct=signal.price_spread_pct,
        )
        logger.info(
            f"{pair}: {side_a.value} {market_a.venue} / {side_b.value} {market_b.venue} "
            f"qty {intent.quantity:.6f} (${notional:.2f})"
        )
        return intent
