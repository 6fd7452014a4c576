"""
Extended order signing - Stark domain hash + Stark curve signature

Each order (and each attached take-profit / stop-loss) is settled
separately: amounts are scaled to the assets' integer resolutions, the
direction is encoded in the signs of the collateral and synthetic
amounts, and the message hash covers nonce, assets, amounts, fee,
expiration, vault, public key and the Starknet domain. Hashing and
signing are done by fast_stark_crypto, the library Extended's own SDK
uses.
"""

import logging
import random
import time
from dataclasses import dataclass
from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR
from typing import Any, Callable, Dict, Optional, Tuple

import fast_stark_crypto

from funding_arb.core.errors import SigningFailure
from funding_arb.core.models import (
    BracketOrder, MarketSnapshot, OrderRequest, Side, SignedOrder
)
from funding_arb.core.precision import RoundingMode, parse_number, round_to_min_change

logger = logging.getLogger(__name__)

VENUE = "Extended"

STARKNET_SETTLEMENT_BUFFER_SECONDS = 14 * 24 * 60 * 60
MILLIS_IN_SECOND = 1_000
ORDER_EXPIRY_MILLIS = 60 * 60 * 1_000
MAX_NONCE = 2 ** 32 - 1

# Bracket limit prices sit slightly inside their triggers
TP_BUY_LIMIT_OFFSET = 0.005
TP_SELL_LIMIT_OFFSET = 0.015
SL_LIMIT_OFFSET = 0.005

# Field order of the order message hash
ORDER_HASH_FIELDS = (
    "position_id",
    "base_asset_id",
    "base_amount",
    "quote_asset_id",
    "quote_amount",
    "fee_asset_id",
    "fee_amount",
    "expiration",
    "salt",
    "user_public_key",
    "domain_name",
    "domain_version",
    "domain_chain_id",
    "domain_revision",
)


@dataclass(frozen=True)
class StarknetDomain:
    """Domain descriptor from GET /info/starknet"""
    name: str
    version: str
    chain_id: str
    revision: str

    @classmethod
    def from_api(cls, data: Dict) -> 'StarknetDomain':
        return cls(
            name=str(data["name"]),
            version=str(data["version"]),
            chain_id=str(data["chainId"]),
            revision=str(data["revision"]),
        )


@dataclass(frozen=True)
class Settlement:
    """Signed settlement of one order, plus the scaled amounts it covers"""
    order_hash: int
    r: int
    s: int
    collateral_amount: int
    fee_amount: int
    synthetic_amount: int


def settlement_expiration(expiry_millis: int) -> int:
    """Expiry in seconds, rounded up, plus the fixed settlement buffer"""
    return -(-expiry_millis // MILLIS_IN_SECOND) + STARKNET_SETTLEMENT_BUFFER_SECONDS


def scale_amount(amount: Decimal, resolution: int, round_up: bool) -> int:
    """Scale a human-readable amount to an asset's integer resolution"""
    scaled = amount * Decimal(resolution)
    return int(scaled.to_integral_value(rounding=ROUND_CEILING if round_up else ROUND_FLOOR))


def prepare_order(
    market: MarketSnapshot,
    side: Side,
    quantity: float,
    fee_rate: str,
    include_brackets: bool = False,
    reduce_only: bool = False,
    slippage: float = 0.01,
    bracket_pct: float = 0.05,
    now_millis: Optional[int] = None,
    nonce: Optional[int] = None,
) -> OrderRequest:
    """
    Round a desired quantity into an Extended market (IOC limit) order.

    The limit price is the bid moved by `slippage` in the order's
    direction; both price and quantity are floored to the market's
    increments. Bracket prices derive from the unrounded limit price and
    use the opposite side, sized to the entire position.
    """
    if fee_rate is None or parse_number(fee_rate, "fee_rate") <= 0:
        raise SigningFailure(f"{market.symbol}: missing or zero fee rate ({fee_rate!r})")

    is_buy = side.is_buy
    size = market.size_precision
    tick = market.price_precision
    bid = parse_number(market.bid_price, "bid_price")
    order_price = bid * (1 + slippage) if is_buy else bid * (1 - slippage)

    amount = size.round(quantity, RoundingMode.FLOOR)
    if amount <= 0:
        raise ValueError(f"{market.symbol}: quantity {quantity} is below size increment {size.min_increment}")
    price = tick.round(order_price, RoundingMode.FLOOR)

    if now_millis is None:
        now_millis = int(time.time() * 1_000)
    if nonce is None:
        nonce = random.randrange(0, MAX_NONCE)

    take_profit = stop_loss = None
    if include_brackets:
        mode = RoundingMode.FLOOR if is_buy else RoundingMode.CEIL
        up, down = 1 + bracket_pct, 1 - bracket_pct
        if is_buy:
            tp_trigger, tp_limit = up, up - TP_BUY_LIMIT_OFFSET
            sl_trigger, sl_limit = down, down - SL_LIMIT_OFFSET
        else:
            tp_trigger, tp_limit = down, down + TP_SELL_LIMIT_OFFSET
            sl_trigger, sl_limit = up, up + SL_LIMIT_OFFSET

        take_profit = _bracket(market, order_price * tp_trigger, order_price * tp_limit, mode)
        stop_loss = _bracket(market, order_price * sl_trigger, order_price * sl_limit, mode)

    return OrderRequest(
        symbol=market.symbol,
        side=side,
        quantity=size.format(amount),
        price=tick.format(price),
        expiry_millis=now_millis + ORDER_EXPIRY_MILLIS,
        nonce=str(nonce),
        fee_rate=str(fee_rate),
        reduce_only=reduce_only,
        take_profit=take_profit,
        stop_loss=stop_loss,
    )


def _bracket(market: MarketSnapshot, trigger: float, limit: float, mode: RoundingMode) -> BracketOrder:
    tick = market.price_precision
    size = market.size_precision
    trigger_price = tick.round(trigger, mode)
    limit_price = tick.round(limit, mode)
    max_value = parse_number(market.max_position_value, "max_position_value")
    entire_position = round_to_min_change(max_value / limit_price, size.min_increment, RoundingMode.CEIL)
    return BracketOrder(
        trigger_price=tick.format(trigger_price),
        limit_price=tick.format(limit_price),
        quantity=size.format(entire_position),
    )


class StarkOrderSigner:
    """
    Signs Extended orders with the account's Stark key.

    Args:
        private_key: Stark private key (hex)
        public_key: Stark public key (hex)
        vault_id: Collateral position / vault id
        domain: Starknet domain from the venue
        hash_fn: Order message hash function (fast_stark_crypto by default)
        sign_fn: Signature function returning (r, s)
    """

    venue = VENUE

    def __init__(
        self,
        private_key: str,
        public_key: str,
        vault_id: str,
        domain: StarknetDomain,
        hash_fn: Optional[Callable[..., int]] = None,
        sign_fn: Optional[Callable[..., Tuple[int, int]]] = None,
    ):
        self.private_key = private_key
        self.public_key = public_key
        self.vault_id = vault_id
        self.domain = domain
        self._hash_fn = hash_fn or fast_stark_crypto.get_order_msg_hash
        self._sign_fn = sign_fn or fast_stark_crypto.sign

    def settle(
        self,
        market: MarketSnapshot,
        synthetic_amount: str,
        price: str,
        fee_rate: str,
        expiry_millis: int,
        nonce: int,
        is_buying: bool,
    ) -> Settlement:
        """Scale, hash and sign one order"""
        qty = Decimal(synthetic_amount)
        collateral = qty * Decimal(price)
        fee = Decimal(fee_rate) * collateral

        collateral_stark = scale_amount(collateral, market.collateral_resolution, round_up=is_buying)
        synthetic_stark = scale_amount(qty, market.synthetic_resolution, round_up=is_buying)
        fee_stark = scale_amount(fee, market.collateral_resolution, round_up=True)

        # The buyer pays collateral and receives synthetic
        amount_collateral = -collateral_stark if is_buying else collateral_stark
        amount_synthetic = synthetic_stark if is_buying else -synthetic_stark

        collateral_id = int(market.collateral_asset_id, 16)
        values = {
            "position_id": int(self.vault_id),
            "base_asset_id": int(market.synthetic_asset_id, 16),
            "base_amount": amount_synthetic,
            "quote_asset_id": collateral_id,
            "quote_amount": amount_collateral,
            "fee_asset_id": collateral_id,
            "fee_amount": fee_stark,
            "expiration": settlement_expiration(expiry_millis),
            "salt": nonce,
            "user_public_key": int(self.public_key, 16),
            "domain_name": self.domain.name,
            "domain_version": self.domain.version,
            "domain_chain_id": self.domain.chain_id,
            "domain_revision": self.domain.revision,
        }
        order_hash = self._hash_fn(**{name: values[name] for name in ORDER_HASH_FIELDS})
        r, s = self._sign_fn(private_key=int(self.private_key, 16), msg_hash=order_hash)

        return Settlement(
            order_hash=order_hash,
            r=r,
            s=s,
            collateral_amount=collateral_stark,
            fee_amount=fee_stark,
            synthetic_amount=synthetic_stark,
        )

    def _settlement_json(self, settlement: Settlement) -> Dict[str, Any]:
        return {
            "signature": {"r": hex(settlement.r), "s": hex(settlement.s)},
            "starkKey": self.public_key,
            "collateralPosition": str(self.vault_id),
        }

    @staticmethod
    def _debugging_json(settlement: Settlement) -> Dict[str, str]:
        return {
            "collateralAmount": str(settlement.collateral_amount),
            "feeAmount": str(settlement.fee_amount),
            "syntheticAmount": str(settlement.synthetic_amount),
        }

    def sign(self, request: OrderRequest, market: MarketSnapshot) -> SignedOrder:
        """
        Sign an order request (and its brackets) into the POST /user/order body.

        Brackets are signed for the opposite side with the primary order's
        nonce and expiry, so the venue treats all three as one submission.

        Raises:
            SigningFailure: on unparsable fields or any crypto library error
        """
        is_buying = request.side.is_buy
        try:
            nonce = int(request.nonce)
            main = self.settle(
                market, request.quantity, request.price, request.fee_rate,
                request.expiry_millis, nonce, is_buying,
            )
            brackets = {}
            for key, bracket in (("takeProfit", request.take_profit), ("stopLoss", request.stop_loss)):
                if bracket is None:
                    continue
                settlement = self.settle(
                    market, bracket.quantity, bracket.limit_price, request.fee_rate,
                    request.expiry_millis, nonce, not is_buying,
                )
                brackets[key] = {
                    "triggerPrice": bracket.trigger_price,
                    "triggerPriceType": "LAST",
                    "price": bracket.limit_price,
                    "priceType": "MARKET",
                    "settlement": self._settlement_json(settlement),
                    "debuggingAmounts": self._debugging_json(settlement),
                }
        except SigningFailure:
            raise
        except Exception as e:
            raise SigningFailure(f"Stark signing failed for {request.symbol}: {e}") from e

        payload = {
            "id": str(main.order_hash),
            "market": request.symbol,
            "type": "MARKET",
            "side": "BUY" if is_buying else "SELL",
            "qty": request.quantity,
            "price": request.price,
            "reduceOnly": request.reduce_only,
            "postOnly": False,
            "timeInForce": "IOC",
            "expiryEpochMillis": request.expiry_millis,
            "fee": request.fee_rate,
            "nonce": request.nonce,
            "settlement": self._settlement_json(main),
            "debuggingAmounts": self._debugging_json(main),
        }
        if brackets:
            payload["tpSlType"] = "POSITION"
            payload.update(brackets)

        logger.debug(f"Extended signed {payload['side']} {request.quantity} {request.symbol} @ {request.price} (hash {main.order_hash})")

        return SignedOrder(
            venue=self.venue,
            request=request,
            payload=payload,
            auth={
                "order_hash": main.order_hash,
                "signature": (main.r, main.s),
                "stark_key": self.public_key,
            },
        )
