"""
Data model shared by the venues, the signers and the arbitrage engine.

Snapshots and positions are re-fetched every cycle and never mutated.
Signed orders are single-use: the signature covers exactly the fields
that are transmitted.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .precision import PrecisionSpec, parse_number


class Side(Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def opposite(self) -> "Side":
        return Side.SHORT if self is Side.LONG else Side.LONG

    @property
    def is_buy(self) -> bool:
        return self is Side.LONG


class Action(Enum):
    OPEN = "OPEN"
    CLOSE = "CLOSE"
    SKIP = "SKIP"
    COMPENSATE = "COMPENSATE"


@dataclass(frozen=True)
class SymbolPair:
    """The same asset listed on both venues"""
    venue_a_symbol: str  # e.g. "1000BONK-USD" on Extended
    venue_b_symbol: str  # e.g. "kBONK" on Pacifica

    def __str__(self) -> str:
        return f"{self.venue_a_symbol}/{self.venue_b_symbol}"

    @classmethod
    def parse(cls, text: str) -> "SymbolPair":
        """Parse "ETH-USD:ETH" into a pair"""
        try:
            a, b = text.split(":")
        except ValueError:
            raise ValueError(f"Invalid symbol pair '{text}', expected VENUE_A:VENUE_B")
        return cls(a.strip(), b.strip())


@dataclass(frozen=True)
class MarketSnapshot:
    """
    Market state for one symbol on one venue.

    Prices and increments are kept as the decimal strings the venue sent;
    the float accessors parse them on demand.
    """
    venue: str
    symbol: str
    reference_price: str  # price used for spread and sizing (bid or mid)
    funding_rate: str  # per-period rate as a fraction
    min_price_change: str
    min_size_change: str
    bid_price: Optional[str] = None
    ask_price: Optional[str] = None
    mark_price: Optional[str] = None
    last_price: Optional[str] = None
    index_price: Optional[str] = None
    max_position_value: Optional[str] = None
    collateral_asset_id: Optional[str] = None
    synthetic_asset_id: Optional[str] = None
    collateral_resolution: Optional[int] = None
    synthetic_resolution: Optional[int] = None

    @property
    def price(self) -> float:
        return parse_number(self.reference_price, "reference_price")

    @property
    def funding_rate_pct(self) -> float:
        """Funding rate expressed as a percentage"""
        return parse_number(self.funding_rate, "funding_rate") * 100.0

    @property
    def price_precision(self) -> PrecisionSpec:
        return PrecisionSpec(parse_number(self.min_price_change, "min_price_change"))

    @property
    def size_precision(self) -> PrecisionSpec:
        return PrecisionSpec(parse_number(self.min_size_change, "min_size_change"))


@dataclass(frozen=True)
class Position:
    """An open position owned by the venue - the core only reads it"""
    venue: str
    symbol: str
    side: Side
    size: float  # absolute size, always positive
    entry_price: float = 0.0
    mark_price: float = 0.0
    unrealized_pnl: float = 0.0


@dataclass(frozen=True)
class TradeIntent:
    """Which venue goes long, which goes short, and how much"""
    pair: SymbolPair
    venue_a_side: Side
    venue_b_side: Side
    quantity: float  # common notional-derived quantity, rounded per venue later
    notional_usd: float
    include_brackets: bool = True
    funding_diff_pct: float = 0.0
    price_spread_pct: float = 0.0


@dataclass(frozen=True)
class BracketOrder:
    """Take-profit or stop-loss attached to a primary order"""
    trigger_price: str
    limit_price: Optional[str] = None
    quantity: Optional[str] = None  # set when the venue signs brackets separately
    client_id: Optional[str] = None


@dataclass(frozen=True)
class OrderRequest:
    """Venue-legal order parameters before signing"""
    symbol: str
    side: Side
    quantity: str
    price: Optional[str] = None
    expiry_millis: Optional[int] = None
    nonce: Optional[str] = None
    fee_rate: Optional[str] = None
    reduce_only: bool = False
    take_profit: Optional[BracketOrder] = None
    stop_loss: Optional[BracketOrder] = None

    @property
    def has_brackets(self) -> bool:
        return self.take_profit is not None or self.stop_loss is not None


@dataclass(frozen=True)
class SignedOrder:
    """
    An order request plus the venue-specific authentication payload.

    `payload` is the exact wire body; `auth` holds signature material kept
    for audit and debugging.
    """
    venue: str
    request: OrderRequest
    payload: Dict[str, Any]
    auth: Dict[str, Any] = field(default_factory=dict)


@dataclass
class OrderResult:
    """Result of an order submission"""
    success: bool
    order_id: Optional[str] = None
    filled_size: float = 0.0
    error: Optional[str] = None
    raw: Optional[Any] = None


@dataclass
class AttemptOutcome:
    """Structured per-attempt outcome for the surrounding process to log"""
    pair: SymbolPair
    action: Action
    success: bool
    reason: str = ""
    venue: Optional[str] = None

    def __str__(self) -> str:
        status = "OK" if self.success else "FAILED"
        venue = f" {self.venue}" if self.venue else ""
        return f"[{self.pair}] {self.action.value}{venue} {status}: {self.reason}"
