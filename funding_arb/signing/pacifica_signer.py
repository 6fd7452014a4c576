"""
Pacifica order signing - canonical JSON + ed25519 keypair

The signed message is the header plus the order payload under "data",
with object keys sorted at every level and serialized as compact JSON.
The wire request carries the same fields flattened next to the base58
signature; canonicalization only applies to what gets signed.
"""

import json
import logging
import time
import uuid
from typing import Any, Dict, Optional, Tuple

import base58
from solders.keypair import Keypair

from funding_arb.core.errors import SigningFailure
from funding_arb.core.models import (
    BracketOrder, MarketSnapshot, OrderRequest, Side, SignedOrder
)
from funding_arb.core.precision import RoundingMode

logger = logging.getLogger(__name__)

VENUE = "Pacifica"
ORDER_TYPE = "create_market_order"
EXPIRY_WINDOW_MS = 5_000


def sort_json_keys(value: Any) -> Any:
    """Sort JSON object keys recursively; arrays keep their element order"""
    if isinstance(value, dict):
        return {key: sort_json_keys(value[key]) for key in sorted(value.keys())}
    elif isinstance(value, list):
        return [sort_json_keys(item) for item in value]
    return value


def canonical_json(value: Any) -> str:
    """Compact JSON with sorted keys - the exact string that gets signed"""
    return json.dumps(sort_json_keys(value), separators=(",", ":"))


def side_to_pacifica(side: Side) -> str:
    """LONG -> "bid", SHORT -> "ask" """
    return "bid" if side == Side.LONG else "ask"


def prepare_order(
    market: MarketSnapshot,
    side: Side,
    quantity: float,
    include_brackets: bool = False,
    reduce_only: bool = False,
    bracket_pct: float = 0.05,
) -> OrderRequest:
    """
    Round a desired quantity into a Pacifica market order request.

    Quantity is floored to the lot size. Bracket stop prices sit
    bracket_pct away from mid: on a long the take-profit is rounded up
    and the stop-loss down, on a short the other way around.
    """
    size = market.size_precision
    tick = market.price_precision
    amount = size.round(quantity, RoundingMode.FLOOR)
    if amount <= 0:
        raise ValueError(f"{market.symbol}: quantity {quantity} is below lot size {size.min_increment}")

    take_profit = stop_loss = None
    if include_brackets:
        mid = market.price
        if side == Side.LONG:
            tp_price = tick.round(mid * (1 + bracket_pct), RoundingMode.CEIL)
            sl_price = tick.round(mid * (1 - bracket_pct), RoundingMode.FLOOR)
        else:
            tp_price = tick.round(mid * (1 - bracket_pct), RoundingMode.FLOOR)
            sl_price = tick.round(mid * (1 + bracket_pct), RoundingMode.CEIL)
        take_profit = BracketOrder(trigger_price=tick.format(tp_price), client_id=str(uuid.uuid4()))
        stop_loss = BracketOrder(trigger_price=tick.format(sl_price), client_id=str(uuid.uuid4()))

    return OrderRequest(
        symbol=market.symbol,
        side=side,
        quantity=size.format(amount),
        nonce=str(uuid.uuid4()),
        reduce_only=reduce_only,
        take_profit=take_profit,
        stop_loss=stop_loss,
    )


class PacificaSigner:
    """Signs Pacifica orders with a Solana keypair (main wallet or API agent)"""

    venue = VENUE

    def __init__(
        self,
        private_key: str,
        account_address: Optional[str] = None,
        slippage_percent: str = "0.01",
        expiry_window: int = EXPIRY_WINDOW_MS,
    ):
        """
        Args:
            private_key: Base58 encoded keypair
            account_address: Trading account; defaults to the keypair's public key
            slippage_percent: Max slippage tolerance for market orders
            expiry_window: Signature validity window (ms)
        """
        try:
            self.keypair = Keypair.from_base58_string(private_key)
        except Exception as e:
            raise SigningFailure(f"Invalid Pacifica private key: {e}") from e
        self.public_key = str(self.keypair.pubkey())
        self.account_address = account_address or self.public_key
        self.slippage_percent = slippage_percent
        self.expiry_window = expiry_window

    @property
    def is_agent(self) -> bool:
        """True when signing on behalf of another account"""
        return self.account_address != self.public_key

    def prepare_message(self, header: Dict, payload: Dict) -> str:
        """Build the canonical message for a header and payload"""
        if "type" not in header or "timestamp" not in header or "expiry_window" not in header:
            raise ValueError("Header must have type, timestamp, and expiry_window")
        return canonical_json({**header, "data": payload})

    def sign_message(self, header: Dict, payload: Dict) -> Tuple[str, str]:
        """Sign a message; returns (canonical message, base58 signature)"""
        message = self.prepare_message(header, payload)
        signature = self.keypair.sign_message(message.encode("utf-8"))
        return message, base58.b58encode(bytes(signature)).decode("ascii")

    def build_payload(self, request: OrderRequest) -> Dict[str, Any]:
        """Order fields covered by the signature"""
        payload = {
            "symbol": request.symbol,
            "side": side_to_pacifica(request.side),
            "reduce_only": request.reduce_only,
            "amount": request.quantity,
            "slippage_percent": self.slippage_percent,
            "client_order_id": request.nonce or str(uuid.uuid4()),
        }
        if request.take_profit:
            payload["take_profit"] = {
                "stop_price": request.take_profit.trigger_price,
                "client_order_id": request.take_profit.client_id,
            }
        if request.stop_loss:
            payload["stop_loss"] = {
                "stop_price": request.stop_loss.trigger_price,
                "client_order_id": request.stop_loss.client_id,
            }
        return payload

    def sign(
        self,
        request: OrderRequest,
        market: Optional[MarketSnapshot] = None,
        timestamp_ms: Optional[int] = None,
    ) -> SignedOrder:
        """
        Sign an order request and build the create_market request body.

        Args:
            request: Rounded order request
            market: Unused - Pacifica signs without market context
            timestamp_ms: Signature timestamp; defaults to now

        Returns:
            SignedOrder whose payload is the wire request
        """
        header = {
            "timestamp": timestamp_ms if timestamp_ms is not None else int(time.time() * 1_000),
            "expiry_window": self.expiry_window,
            "type": ORDER_TYPE,
        }
        payload = self.build_payload(request)

        try:
            message, signature = self.sign_message(header, payload)
        except Exception as e:
            raise SigningFailure(f"Pacifica signing failed for {request.symbol}: {e}") from e

        logger.debug(f"Pacifica signed message: {message}")

        wire = {
            "account": self.account_address,
            "signature": signature,
            "timestamp": header["timestamp"],
            "expiry_window": header["expiry_window"],
            **payload,
        }
        if self.is_agent:
            wire["agent_wallet"] = self.public_key

        return SignedOrder(
            venue=self.venue,
            request=request,
            payload=wire,
            auth={"signature": signature, "signer": self.public_key, "message": message},
        )
