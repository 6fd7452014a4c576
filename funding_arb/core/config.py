"""
Arbitrage Configuration
=======================
Thresholds, sizing and schedule for the cross-venue funding arbitrage.

Credentials are plain dataclasses handed to each venue adapter's
constructor. Only the CLI entry point reads them from the environment.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from .models import SymbolPair

# Extended market name -> Pacifica symbol
DEFAULT_PAIRS = [
    SymbolPair("ETH-USD", "ETH"),
    SymbolPair("HYPE-USD", "HYPE"),
    SymbolPair("1000BONK-USD", "kBONK"),
    SymbolPair("1000PEPE-USD", "kPEPE"),
    SymbolPair("PENGU-USD", "PENGU"),
    SymbolPair("DOGE-USD", "DOGE"),
    SymbolPair("UNI-USD", "UNI"),
    SymbolPair("SOL-USD", "SOL"),
    SymbolPair("PUMP-USD", "PUMP"),
    SymbolPair("XRP-USD", "XRP"),
    SymbolPair("ASTER-USD", "ASTER"),
    SymbolPair("AVAX-USD", "AVAX"),
    SymbolPair("TRUMP-USD", "TRUMP"),
    SymbolPair("SUI-USD", "SUI"),
    SymbolPair("FARTCOIN-USD", "FARTCOIN"),
    SymbolPair("LINK-USD", "LINK"),
]


@dataclass
class ArbConfig:
    """Configuration for the funding rate arbitrage strategy"""

    # ===== THRESHOLDS =====

    # Minimum |rateA - rateB| to open, in percent per funding period
    min_funding_diff_pct: float = 0.001

    # Maximum relative price difference between venues, in percent
    max_price_spread_pct: float = 0.02

    # ===== POSITION SIZING =====

    # Notional per leg (USD); both venues need at least this much available
    trade_notional_usd: float = 25.0

    # Quantity = notional / (haircut * min(priceA, priceB))
    price_haircut: float = 0.99

    # ===== EXECUTION =====

    # Extended limit price = bid * (1 +/- slippage)
    extended_slippage: float = 0.01

    # Pacifica market order slippage tolerance (percent, sent as a string)
    pacifica_slippage_percent: str = "0.01"

    # Attach take-profit/stop-loss brackets when opening
    include_brackets: bool = True

    # Bracket trigger distance from entry (fraction)
    bracket_pct: float = 0.05

    # Sign orders but skip submission
    dry_run: bool = False

    # ===== SCHEDULE =====

    # Run once per hour at this minute of the local clock
    target_minute: int = 28

    # Local clock offset from UTC (IST = +5:30)
    utc_offset_minutes: int = 330

    # ===== SYMBOLS =====

    pairs: List[SymbolPair] = field(default_factory=lambda: list(DEFAULT_PAIRS))

    # ===== LOGGING =====

    log_level: str = "INFO"
    log_file: str = "logs/funding_arb.log"

    def __post_init__(self):
        """Validate configuration"""
        assert self.trade_notional_usd > 0, "Trade notional must be positive"
        assert self.min_funding_diff_pct >= 0, "Funding threshold cannot be negative"
        assert self.max_price_spread_pct >= 0, "Spread threshold cannot be negative"
        assert 0 < self.price_haircut <= 1, "Price haircut must be in (0, 1]"
        assert 0 < self.bracket_pct < 1, "Bracket distance must be in (0, 1)"
        assert 0 <= self.target_minute < 60, "Target minute must be 0-59"

    @classmethod
    def testing(cls) -> 'ArbConfig':
        """
        Testing preset - tiny size, dry run, a couple of liquid pairs.
        """
        return cls(
            trade_notional_usd=12.0,
            pairs=[SymbolPair("ETH-USD", "ETH"), SymbolPair("SOL-USD", "SOL")],
            dry_run=True,
        )


@dataclass
class ExtendedCredentials:
    """API key and Stark account used to sign Extended orders"""
    api_key: str
    stark_private_key: str
    stark_public_key: str
    vault_id: str

    @classmethod
    def from_env(cls) -> 'ExtendedCredentials':
        values = {
            "api_key": os.getenv("EXTENDED_API_KEY"),
            "stark_private_key": os.getenv("EXTENDED_STARK_PRIVATE_KEY"),
            "stark_public_key": os.getenv("EXTENDED_STARK_PUBLIC_KEY"),
            "vault_id": os.getenv("EXTENDED_VAULT_ID") or os.getenv("EXTENDED_VAULT"),
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise ValueError(f"Extended credentials not set: {', '.join(missing)}")
        return cls(**values)


@dataclass
class PacificaCredentials:
    """Keypair used to sign Pacifica orders and the account it trades for"""
    private_key: str  # base58 keypair (main wallet or API agent key)
    account_address: Optional[str] = None  # defaults to the keypair's public key

    @classmethod
    def from_env(cls) -> 'PacificaCredentials':
        private_key = os.getenv("PACIFICA_PRIVATE_KEY")
        if not private_key:
            raise ValueError("PACIFICA_PRIVATE_KEY not set in environment")
        return cls(
            private_key=private_key,
            account_address=os.getenv("PACIFICA_WALLET_ADDRESS") or os.getenv("PACIFICA_ACCOUNT"),
        )
