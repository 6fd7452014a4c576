"""
Extended Exchange Adapter
=========================
Implements ExchangeAdapter for Extended DEX (Starknet).

API Docs: https://api.docs.extended.exchange/
Orders are settled on Starknet and need a Stark signature per order.
"""

import asyncio
import json
import logging
from typing import Dict, List, Optional

import aiohttp

from funding_arb.core.config import ExtendedCredentials
from funding_arb.core.errors import DataUnavailable, SigningFailure
from funding_arb.core.models import MarketSnapshot, OrderResult, Position, Side, SignedOrder
from funding_arb.core.precision import parse_number
from funding_arb.signing.base import OrderSigner
from funding_arb.signing.stark_signer import StarkOrderSigner, StarknetDomain, prepare_order

from .base import ExchangeAdapter

logger = logging.getLogger(__name__)

MAINNET_URL = "https://api.starknet.extended.exchange/api/v1"
TESTNET_URL = "https://api.starknet.sepolia.extended.exchange/api/v1"


def parse_market(symbol: str, response: Dict) -> MarketSnapshot:
    """
    Build a snapshot from a GET /info/markets?market=<symbol> response.

    Raises:
        DataUnavailable: error status, unknown market or zero daily volume
    """
    if not isinstance(response, dict) or response.get("status") == "ERROR":
        raise DataUnavailable(f"Extended market {symbol}: error status")

    data = response.get("data")
    if isinstance(data, dict):
        data = [data]
    market = next((m for m in data or [] if isinstance(m, dict) and m.get("name") == symbol), None)
    if market is None:
        raise DataUnavailable(f"Extended market {symbol}: not found")

    stats = market.get("marketStats") or {}
    trading = market.get("tradingConfig") or {}
    l2 = market.get("l2Config") or {}

    if str(stats.get("dailyVolume", "0")) in ("0", "0.0", ""):
        raise DataUnavailable(f"Extended market {symbol}: no daily volume")

    try:
        return MarketSnapshot(
            venue="Extended",
            symbol=market.get("name", symbol),
            reference_price=str(stats["bidPrice"]),
            funding_rate=str(stats["fundingRate"]),
            min_price_change=str(trading["minPriceChange"]),
            min_size_change=str(trading["minOrderSizeChange"]),
            bid_price=str(stats["bidPrice"]),
            ask_price=stats.get("askPrice"),
            mark_price=stats.get("markPrice"),
            last_price=stats.get("lastPrice"),
            index_price=stats.get("indexPrice"),
            max_position_value=trading.get("maxPositionValue"),
            collateral_asset_id=l2.get("collateralId"),
            synthetic_asset_id=l2.get("syntheticId"),
            collateral_resolution=int(l2["collateralResolution"]) if "collateralResolution" in l2 else None,
            synthetic_resolution=int(l2["syntheticResolution"]) if "syntheticResolution" in l2 else None,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise DataUnavailable(f"Extended market {symbol}: malformed data ({e})") from e


def parse_positions(data: List[Dict]) -> List[Position]:
    """Convert GET /user/positions data into Positions"""
    positions = []
    for pos in data or []:
        size = abs(parse_number(pos.get("size"), "size"))
        if size == 0:
            continue
        side = Side.LONG if str(pos.get("side", "")).upper() in ("LONG", "BUY") else Side.SHORT
        # Extended uses British spelling: unrealisedPnl
        positions.append(Position(
            venue="Extended",
            symbol=pos["market"],
            side=side,
            size=size,
            entry_price=float(pos.get("openPrice") or 0),
            mark_price=float(pos.get("markPrice") or 0),
            unrealized_pnl=float(pos.get("unrealisedPnl") or 0),
        ))
    return positions


class ExtendedAdapter(ExchangeAdapter):
    """
    Extended DEX adapter for funding rate arbitrage.

    Args:
        credentials: API key and Stark account
        testnet: Use Sepolia testnet instead of mainnet
        slippage: Limit price offset from bid for market orders
        bracket_pct: Take-profit / stop-loss distance from entry
        dry_run: Sign orders but don't submit them
        signer: Pre-built signer (skips fetching the Starknet domain)
    """

    def __init__(
        self,
        credentials: ExtendedCredentials,
        testnet: bool = False,
        slippage: float = 0.01,
        bracket_pct: float = 0.05,
        dry_run: bool = False,
        signer: Optional[OrderSigner] = None,
    ):
        super().__init__(TESTNET_URL if testnet else MAINNET_URL, dry_run=dry_run)
        self.credentials = credentials
        self.slippage = slippage
        self.bracket_pct = bracket_pct
        self.signer: Optional[OrderSigner] = signer

    @property
    def name(self) -> str:
        return "Extended"

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["X-Api-Key"] = self.credentials.api_key
        return headers

    async def initialize(self) -> None:
        await super().initialize()
        if self.signer is None:
            domain = await self.fetch_starknet_domain()
            self.signer = StarkOrderSigner(
                private_key=self.credentials.stark_private_key,
                public_key=self.credentials.stark_public_key,
                vault_id=self.credentials.vault_id,
                domain=domain,
            )
            logger.info(f"Extended adapter initialized (vault: {self.credentials.vault_id}, domain: {domain.chain_id})")

    async def _get_data(self, endpoint: str, params: Optional[Dict] = None):
        """GET an endpoint and unwrap the {status, data} envelope"""
        result = await self._get_json(endpoint, params=params)
        if not isinstance(result, dict) or result.get("status") == "ERROR":
            error = result.get("error", {}) if isinstance(result, dict) else {}
            raise DataUnavailable(f"Extended {endpoint}: {error.get('message', 'error status')}")
        return result.get("data")

    # ===== Market Data =====

    async def fetch_market(self, symbol: str) -> MarketSnapshot:
        response = await self._get_json("/info/markets", params={"market": symbol})
        return parse_market(symbol, response)

    async def fetch_starknet_domain(self) -> StarknetDomain:
        """Get the Starknet domain used in order hashes"""
        data = await self._get_data("/info/starknet")
        try:
            return StarknetDomain.from_api(data)
        except (KeyError, TypeError) as e:
            raise DataUnavailable(f"Extended starknet domain malformed: {e}") from e

    # ===== Account Data =====

    async def fetch_balance(self) -> float:
        data = await self._get_data("/user/balance")
        try:
            return parse_number(data["availableForTrade"], "availableForTrade")
        except (KeyError, TypeError, ValueError) as e:
            raise DataUnavailable(f"Extended balance malformed: {e}") from e

    async def fetch_positions(self) -> List[Position]:
        data = await self._get_data("/user/positions")
        try:
            return parse_positions(data)
        except (KeyError, TypeError, ValueError) as e:
            raise DataUnavailable(f"Extended positions malformed: {e}") from e

    async def fetch_fee_rate(self, symbol: str) -> str:
        """
        Taker fee rate for a market.

        Raises:
            SigningFailure: fees unavailable - orders can't be signed without them
        """
        try:
            data = await self._get_data("/user/fees", params={"market": symbol})
        except DataUnavailable as e:
            raise SigningFailure(f"Extended fees for {symbol} unavailable: {e}") from e
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            raise SigningFailure(f"Extended fees for {symbol} unavailable: unexpected response {data!r:.100}")
        fee_rate = data[0].get("takerFeeRate")
        if fee_rate is None:
            raise SigningFailure(f"Extended fees for {symbol}: no taker fee rate")
        return str(fee_rate)

    # ===== Order Execution =====

    async def build_order(
        self,
        market: MarketSnapshot,
        side: Side,
        quantity: float,
        include_brackets: bool = False,
        reduce_only: bool = False
    ) -> SignedOrder:
        if self.signer is None:
            await self.initialize()

        fee_rate = await self.fetch_fee_rate(market.symbol)
        request = prepare_order(
            market,
            side,
            quantity,
            fee_rate,
            include_brackets=include_brackets,
            reduce_only=reduce_only,
            slippage=self.slippage,
            bracket_pct=self.bracket_pct,
        )
        return self.signer.sign(request, market)

    async def submit_order(self, order: SignedOrder) -> OrderResult:
        try:
            status, text = await self._request("POST", "/user/order", data=order.payload)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return OrderResult(success=False, error=f"Request failed: {e}")

        if status < 200 or status >= 300 or "ERROR" in text:
            return OrderResult(success=False, error=f"HTTP {status}: {text[:300]}", raw=text)

        order_id = order.payload.get("id")
        try:
            body = json.loads(text)
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            order_id = str(body["data"].get("id", order_id))
        return OrderResult(success=True, order_id=order_id, raw=text)
