"""
Abstract Exchange Adapter Interface
====================================
Defines the capability set the arbitrage core needs from each venue:
market snapshots, balances, positions, signed order construction and
order submission.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from funding_arb.core.errors import DataUnavailable, FundingArbError, SigningFailure
from funding_arb.core.models import MarketSnapshot, OrderResult, Position, Side, SignedOrder

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"


class ExchangeAdapter(ABC):
    """
    Abstract base class for the two venue adapters.

    Owns one aiohttp session; transport errors surface as DataUnavailable
    for reads and as an unsuccessful OrderResult for submissions.
    """

    def __init__(self, base_url: str, dry_run: bool = False, timeout: float = 10.0):
        self.base_url = base_url
        self.dry_run = dry_run
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Exchange name for logging/display"""
        pass

    async def initialize(self) -> None:
        """Open the HTTP session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)

    async def close(self) -> None:
        """Clean up resources"""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _headers(self) -> Dict[str, str]:
        return {"User-Agent": USER_AGENT, "Content-Type": "application/json"}

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict] = None,
        data: Optional[Dict] = None
    ) -> Tuple[int, str]:
        """
        Make an API request

        Returns:
            (HTTP status, response text)
        """
        if self._session is None or self._session.closed:
            await self.initialize()

        url = f"{self.base_url}{endpoint}"
        async with self._session.request(
            method, url, headers=self._headers(), params=params, json=data
        ) as resp:
            return resp.status, await resp.text()

    async def _get_json(self, endpoint: str, params: Optional[Dict] = None) -> Any:
        """GET an endpoint and decode its JSON body, or raise DataUnavailable"""
        try:
            status, text = await self._request("GET", endpoint, params=params)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DataUnavailable(f"{self.name} GET {endpoint} failed: {e}") from e

        if status == 429:
            raise DataUnavailable(f"{self.name} rate limited on {endpoint}")
        if status != 200:
            raise DataUnavailable(f"{self.name} GET {endpoint}: HTTP {status} {text[:200]}")

        try:
            return json.loads(text)
        except ValueError as e:
            raise DataUnavailable(f"{self.name} GET {endpoint}: invalid JSON") from e

    # ===== Market Data =====

    @abstractmethod
    async def fetch_market(self, symbol: str) -> MarketSnapshot:
        """
        Get the current market snapshot for a symbol.

        Raises:
            DataUnavailable: on error status, no volume or unknown symbol
        """
        pass

    # ===== Account Data =====

    @abstractmethod
    async def fetch_balance(self) -> float:
        """Available notional for new positions (USD)"""
        pass

    @abstractmethod
    async def fetch_positions(self) -> List[Position]:
        """Get all open positions"""
        pass

    # ===== Order Execution =====

    @abstractmethod
    async def build_order(
        self,
        market: MarketSnapshot,
        side: Side,
        quantity: float,
        include_brackets: bool = False,
        reduce_only: bool = False
    ) -> SignedOrder:
        """
        Round and sign an order.

        Raises:
            SigningFailure: the order cannot be constructed
        """
        pass

    @abstractmethod
    async def submit_order(self, order: SignedOrder) -> OrderResult:
        """Submit a signed order; a venue rejection is an unsuccessful result"""
        pass

    async def place_order(
        self,
        market: MarketSnapshot,
        side: Side,
        quantity: float,
        include_brackets: bool = False,
        reduce_only: bool = False
    ) -> OrderResult:
        """
        Build, sign and submit an order.

        SigningFailure propagates before anything is sent.
        """
        try:
            order = await self.build_order(market, side, quantity, include_brackets, reduce_only)
        except FundingArbError:
            raise
        except ValueError as e:
            raise SigningFailure(f"{self.name} {market.symbol}: {e}") from e

        request = order.request
        summary = f"{self.name} {side.value} {request.quantity} {request.symbol}"
        if request.price:
            summary += f" @ {request.price}"
        if request.has_brackets:
            summary += " (+TP/SL)"
        if request.reduce_only:
            summary += " (reduce-only)"

        if self.dry_run:
            logger.info(f"[DRY RUN] {summary}")
            return OrderResult(success=True, order_id="dry-run", filled_size=float(request.quantity))

        logger.info(f"Placing {summary}")
        result = await self.submit_order(order)
        if result.success:
            result.filled_size = float(request.quantity)
            logger.info(f"✅ {self.name} order accepted: {result.order_id}")
        else:
            logger.error(f"❌ {self.name} order rejected: {result.error}")
        return result

    async def close_position(self, position: Position, market: MarketSnapshot) -> OrderResult:
        """Close an entire position with an opposite-side reduce-only order"""
        logger.info(f"Closing {self.name} {position.side.value} {position.size} {position.symbol}")
        return await self.place_order(
            market,
            position.side.opposite,
            position.size,
            include_brackets=False,
            reduce_only=True,
        )
