"""
Error taxonomy for the arbitrage cycle.

Every error is scoped to one symbol pair for one cycle, except
CompensationFailed which leaves an unintended one-sided position behind
and aborts the rest of the cycle.
"""

from typing import Optional


class FundingArbError(Exception):
    """Base class for all arbitrage errors"""


class DataUnavailable(FundingArbError):
    """Market, balance or position fetch failed or returned an error status"""


class ThresholdNotMet(FundingArbError):
    """Spread too wide or funding difference too small - a normal no-trade outcome"""


class InsufficientBalance(FundingArbError):
    """Tradeable balance on a venue is below the required notional"""


class SigningFailure(FundingArbError):
    """Order hash or signature could not be computed"""


class OrderRejected(FundingArbError):
    """Venue returned a non-success status for a submitted order"""

    def __init__(self, venue: str, reason: str):
        super().__init__(f"{venue} rejected order: {reason}")
        self.venue = venue
        self.reason = reason


class CompensationFailed(FundingArbError):
    """
    The compensating close of leg 1 failed after leg 2 was rejected.

    The account now holds an unintended one-sided position that needs
    manual (or next-cycle) intervention.
    """

    def __init__(self, venue: str, symbol: str, reason: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Failed to compensate {venue} {symbol}: {reason} - one-sided position left open"
        )
        self.venue = venue
        self.symbol = symbol
        self.reason = reason
        self.cause = cause
