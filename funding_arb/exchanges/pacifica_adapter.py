"""
Pacifica Exchange Adapter
=========================
Implements ExchangeAdapter for Pacifica DEX (Solana).

Market data comes from two public endpoints: /info/prices (mid, funding)
and /info (tick and lot sizes), joined by symbol.
"""

import asyncio
import json
import logging
from typing import Dict, List, Optional

import aiohttp

from funding_arb.core.config import PacificaCredentials
from funding_arb.core.errors import DataUnavailable
from funding_arb.core.models import MarketSnapshot, OrderResult, Position, Side, SignedOrder
from funding_arb.core.precision import parse_number
from funding_arb.signing.pacifica_signer import PacificaSigner, prepare_order

from .base import ExchangeAdapter

logger = logging.getLogger(__name__)

BASE_URL = "https://api.pacifica.fi/api/v1"


def _unwrap(response: Dict, what: str) -> List[Dict]:
    if not isinstance(response, dict) or not response.get("success") or not response.get("data"):
        raise DataUnavailable(f"Pacifica {what}: invalid market data")
    return response["data"]


def parse_market(symbol: str, prices: Dict, info: Dict) -> MarketSnapshot:
    """
    Join /info/prices and /info responses into a snapshot for one symbol.

    Raises:
        DataUnavailable: unsuccessful response, empty data or unknown symbol
    """
    price_data = next((p for p in _unwrap(prices, "prices") if p.get("symbol") == symbol), None)
    trading_data = next((m for m in _unwrap(info, "info") if m.get("symbol") == symbol), None)
    if price_data is None or trading_data is None:
        raise DataUnavailable(f"Pacifica market {symbol}: not found")

    try:
        return MarketSnapshot(
            venue="Pacifica",
            symbol=symbol,
            reference_price=str(price_data["mid"]),
            funding_rate=str(price_data["next_funding"]),
            min_price_change=str(trading_data["tick_size"]),
            min_size_change=str(trading_data["lot_size"]),
            mark_price=price_data.get("mark"),
            index_price=price_data.get("oracle"),
        )
    except KeyError as e:
        raise DataUnavailable(f"Pacifica market {symbol}: missing field {e}") from e


def parse_positions(data: List[Dict]) -> List[Position]:
    """Convert GET /positions data into Positions ("bid" = long, "ask" = short)"""
    positions = []
    for pos in data or []:
        amount = abs(parse_number(pos.get("amount"), "amount"))
        if amount == 0:
            continue
        side = Side.LONG if str(pos.get("side", "")).lower() in ("bid", "long") else Side.SHORT
        positions.append(Position(
            venue="Pacifica",
            symbol=pos["symbol"],
            side=side,
            size=amount,
            entry_price=float(pos.get("entry_price") or 0),
        ))
    return positions


class PacificaAdapter(ExchangeAdapter):
    """
    Pacifica DEX adapter for funding rate arbitrage.

    Args:
        credentials: Keypair and trading account
        slippage_percent: Market order slippage tolerance
        bracket_pct: Take-profit / stop-loss distance from mid
        dry_run: Sign orders but don't submit them
        base_url: Pacifica API base URL
    """

    def __init__(
        self,
        credentials: PacificaCredentials,
        slippage_percent: str = "0.01",
        bracket_pct: float = 0.05,
        dry_run: bool = False,
        base_url: str = BASE_URL,
    ):
        super().__init__(base_url, dry_run=dry_run)
        self.signer = PacificaSigner(
            credentials.private_key,
            account_address=credentials.account_address,
            slippage_percent=slippage_percent,
        )
        self.account_address = self.signer.account_address
        self.bracket_pct = bracket_pct

    @property
    def name(self) -> str:
        return "Pacifica"

    async def initialize(self) -> None:
        await super().initialize()
        mode = "agent" if self.signer.is_agent else "wallet"
        logger.info(f"Pacifica adapter initialized ({mode} signing, account: {self.account_address})")

    async def _get_account_data(self, endpoint: str, what: str):
        result = await self._get_json(endpoint, params={"account": self.account_address})
        if not isinstance(result, dict) or result.get("success") is False:
            raise DataUnavailable(f"Pacifica {what}: unsuccessful response")
        return result.get("data")

    # ===== Market Data =====

    async def fetch_market(self, symbol: str) -> MarketSnapshot:
        prices = await self._get_json("/info/prices")
        info = await self._get_json("/info")
        return parse_market(symbol, prices, info)

    # ===== Account Data =====

    async def fetch_balance(self) -> float:
        data = await self._get_account_data("/account", "balance")
        try:
            return parse_number(data["available_to_spend"], "available_to_spend")
        except (KeyError, TypeError, ValueError) as e:
            raise DataUnavailable(f"Pacifica balance malformed: {e}") from e

    async def fetch_positions(self) -> List[Position]:
        data = await self._get_account_data("/positions", "positions")
        try:
            return parse_positions(data)
        except (KeyError, TypeError, ValueError) as e:
            raise DataUnavailable(f"Pacifica positions malformed: {e}") from e

    # ===== Order Execution =====

    async def build_order(
        self,
        market: MarketSnapshot,
        side: Side,
        quantity: float,
        include_brackets: bool = False,
        reduce_only: bool = False
    ) -> SignedOrder:
        request = prepare_order(
            market,
            side,
            quantity,
            include_brackets=include_brackets,
            reduce_only=reduce_only,
            bracket_pct=self.bracket_pct,
        )
        return self.signer.sign(request, market)

    async def submit_order(self, order: SignedOrder) -> OrderResult:
        try:
            status, text = await self._request("POST", "/orders/create_market", data=order.payload)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return OrderResult(success=False, error=f"Request failed: {e}")

        try:
            body: Optional[Dict] = json.loads(text)
        except ValueError:
            body = None

        if status < 200 or status >= 300:
            return OrderResult(success=False, error=f"HTTP {status}: {text[:300]}", raw=text)
        if isinstance(body, dict) and body.get("success") is False:
            return OrderResult(success=False, error=body.get("error") or text[:300], raw=body)

        order_id = order.request.nonce
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            order_id = str(body["data"].get("order_id", order_id))
        return OrderResult(success=True, order_id=order_id, raw=body)
