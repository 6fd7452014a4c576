"""
Shared fixtures: market snapshots for both venues and an in-memory venue
that records orders and tracks net positions.
"""

import os
import sys
from typing import Dict, List, Optional

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from funding_arb.core.config import ArbConfig
from funding_arb.core.errors import SigningFailure
from funding_arb.core.models import (
    MarketSnapshot, OrderRequest, OrderResult, Position, Side, SignedOrder, SymbolPair
)
from funding_arb.core.precision import RoundingMode
from funding_arb.exchanges.base import ExchangeAdapter

ETH_PAIR = SymbolPair("ETH-USD", "ETH")
SOL_PAIR = SymbolPair("SOL-USD", "SOL")


def make_extended_market(
    symbol: str = "ETH-USD",
    bid: str = "2000.0",
    funding_rate: str = "0.0005",
) -> MarketSnapshot:
    return MarketSnapshot(
        venue="Extended",
        symbol=symbol,
        reference_price=bid,
        funding_rate=funding_rate,
        min_price_change="0.1",
        min_size_change="0.001",
        bid_price=bid,
        ask_price=bid,
        mark_price=bid,
        max_position_value="1000000",
        collateral_asset_id="0x31857064564ed0ff978e687456963cba09c2c6985d8f9300a1de4962fafa054",
        synthetic_asset_id="0x4554482d3800000000000000000000",
        collateral_resolution=1_000_000,
        synthetic_resolution=1_000,
    )


def make_pacifica_market(
    symbol: str = "ETH",
    mid: str = "2000.0",
    next_funding: str = "0.0001",
) -> MarketSnapshot:
    return MarketSnapshot(
        venue="Pacifica",
        symbol=symbol,
        reference_price=mid,
        funding_rate=next_funding,
        min_price_change="0.1",
        min_size_change="0.0001",
        mark_price=mid,
    )


class FakeVenue(ExchangeAdapter):
    """
    In-memory venue.

    Orders are accepted and applied to `net` (signed size per symbol)
    unless the symbol/side combination is listed in `reject` or `explode`.
    """

    def __init__(self, name: str, markets: Dict[str, MarketSnapshot], balance: float = 1000.0):
        super().__init__("memory://")
        self._name = name
        self.markets = markets
        self.balance = balance
        self.net: Dict[str, float] = {}
        self.orders: List[OrderRequest] = []
        self.reject: set = set()  # {(symbol, Side)}
        self.explode: set = set()  # {(symbol, Side)} -> SigningFailure
        self.positions_error: Optional[Exception] = None

    @property
    def name(self) -> str:
        return self._name

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def fetch_market(self, symbol: str) -> MarketSnapshot:
        return self.markets[symbol]

    async def fetch_balance(self) -> float:
        return self.balance

    async def fetch_positions(self) -> List[Position]:
        if self.positions_error:
            raise self.positions_error
        return [
            Position(self._name, symbol, Side.LONG if size > 0 else Side.SHORT, abs(size))
            for symbol, size in self.net.items() if size != 0
        ]

    async def build_order(self, market, side, quantity, include_brackets=False, reduce_only=False) -> SignedOrder:
        if (market.symbol, side) in self.explode:
            raise SigningFailure("boom")
        size = market.size_precision
        request = OrderRequest(
            symbol=market.symbol,
            side=side,
            quantity=size.format(size.round(quantity, RoundingMode.FLOOR)),
            reduce_only=reduce_only,
        )
        return SignedOrder(self._name, request, {"brackets": include_brackets})

    async def submit_order(self, order: SignedOrder) -> OrderResult:
        request = order.request
        self.orders.append(request)
        if (request.symbol, request.side) in self.reject:
            return OrderResult(success=False, error="rejected by venue")
        qty = float(request.quantity)
        self.net[request.symbol] = round(
            self.net.get(request.symbol, 0.0) + (qty if request.side.is_buy else -qty), 12
        )
        return OrderResult(success=True, order_id=str(len(self.orders)))

    def hold(self, symbol: str, side: Side, size: float) -> None:
        self.net[symbol] = size if side == Side.LONG else -size


@pytest.fixture
def extended_market():
    return make_extended_market()


@pytest.fixture
def pacifica_market():
    return make_pacifica_market()


@pytest.fixture
def venues():
    """Extended-like venue A and Pacifica-like venue B with ETH and SOL markets"""
    venue_a = FakeVenue("Extended", {
        "ETH-USD": make_extended_market(),
        "SOL-USD": make_extended_market("SOL-USD", bid="100.0"),
    })
    venue_b = FakeVenue("Pacifica", {
        "ETH": make_pacifica_market(),
        "SOL": make_pacifica_market("SOL", mid="100.0"),
    })
    return venue_a, venue_b


@pytest.fixture
def config():
    return ArbConfig(pairs=[ETH_PAIR, SOL_PAIR])
