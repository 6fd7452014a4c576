"""
Tests for the Extended and Pacifica adapters (HTTP mocked)

Run with: python -m pytest tests/test_adapters.py -v
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest
from solders.keypair import Keypair

from funding_arb.core.config import ExtendedCredentials, PacificaCredentials
from funding_arb.core.errors import DataUnavailable, SigningFailure
from funding_arb.core.models import Position, Side
from funding_arb.exchanges import extended_adapter, pacifica_adapter
from funding_arb.exchanges.extended_adapter import ExtendedAdapter
from funding_arb.exchanges.pacifica_adapter import PacificaAdapter
from funding_arb.signing.base import OrderSigner
from funding_arb.signing.stark_signer import StarkOrderSigner, StarknetDomain

from conftest import make_extended_market, make_pacifica_market


def extended_markets_response(**stats):
    market_stats = {
        "dailyVolume": "1520000.5",
        "bidPrice": "2000.0",
        "askPrice": "2000.1",
        "markPrice": "2000.05",
        "lastPrice": "2000.0",
        "indexPrice": "2000.02",
        "fundingRate": "0.000013",
    }
    market_stats.update(stats)
    return {
        "status": "OK",
        "data": [{
            "name": "ETH-USD",
            "marketStats": market_stats,
            "tradingConfig": {
                "minPriceChange": "0.1",
                "minOrderSizeChange": "0.001",
                "maxPositionValue": "1000000",
            },
            "l2Config": {
                "collateralId": "0x31857064564ed0ff978e687456963cba09c2c6985d8f9300a1de4962fafa054",
                "syntheticId": "0x4554482d3800000000000000000000",
                "collateralResolution": 1000000,
                "syntheticResolution": 1000,
            },
        }],
    }


PACIFICA_PRICES = {
    "success": True,
    "data": [
        {"symbol": "BTC", "mid": "65000", "next_funding": "0.00002", "mark": "65001", "oracle": "65000"},
        {"symbol": "ETH", "mid": "2000.5", "next_funding": "0.0000125", "mark": "2000.4", "oracle": "2000.3"},
    ],
}
PACIFICA_INFO = {
    "success": True,
    "data": [
        {"symbol": "BTC", "tick_size": "1", "lot_size": "0.00001"},
        {"symbol": "ETH", "tick_size": "0.1", "lot_size": "0.0001"},
    ],
}


def fake_stark_signer():
    domain = StarknetDomain("Perpetuals", "v0", "SN_MAIN", "1")
    return StarkOrderSigner(
        "0x1", "0x2", "12345", domain,
        hash_fn=lambda **kwargs: 0xABC,
        sign_fn=lambda private_key, msg_hash: (1, 2),
    )


@pytest.fixture
def extended():
    credentials = ExtendedCredentials("api-key", "0x1", "0x2", "12345")
    return ExtendedAdapter(credentials, signer=fake_stark_signer())


@pytest.fixture
def pacifica():
    return PacificaAdapter(PacificaCredentials(str(Keypair())))


def respond(*responses):
    """AsyncMock for _request returning (status, body) tuples in order"""
    return AsyncMock(side_effect=[
        (status, body if isinstance(body, str) else json.dumps(body)) for status, body in responses
    ])


FEES_RESPONSE = {"status": "OK", "data": [{"market": "ETH-USD", "makerFeeRate": "0", "takerFeeRate": "0.00025"}]}


# ============================================================================
# EXTENDED
# ============================================================================

class TestExtendedParsing:

    def test_parse_market(self):
        market = extended_adapter.parse_market("ETH-USD", extended_markets_response())
        assert market.venue == "Extended"
        assert market.reference_price == "2000.0"
        assert market.bid_price == "2000.0"
        assert market.funding_rate == "0.000013"
        assert market.min_price_change == "0.1"
        assert market.min_size_change == "0.001"
        assert market.collateral_resolution == 1_000_000
        assert market.synthetic_resolution == 1_000
        assert market.max_position_value == "1000000"

    def test_error_status(self):
        with pytest.raises(DataUnavailable):
            extended_adapter.parse_market("ETH-USD", {"status": "ERROR", "error": {"code": 1001}})

    def test_zero_volume(self):
        with pytest.raises(DataUnavailable, match="volume"):
            extended_adapter.parse_market("ETH-USD", extended_markets_response(dailyVolume="0"))

    def test_unknown_market(self):
        with pytest.raises(DataUnavailable):
            extended_adapter.parse_market("ETH-USD", {"status": "OK", "data": []})

    def test_other_market_is_not_used(self):
        response = extended_markets_response()
        response["data"][0]["name"] = "BTC-USD"
        with pytest.raises(DataUnavailable, match="not found"):
            extended_adapter.parse_market("ETH-USD", response)

    def test_single_market_object(self):
        response = extended_markets_response()
        response["data"] = response["data"][0]
        assert extended_adapter.parse_market("ETH-USD", response).symbol == "ETH-USD"

    def test_malformed_market(self):
        response = extended_markets_response()
        del response["data"][0]["marketStats"]["bidPrice"]
        with pytest.raises(DataUnavailable, match="malformed"):
            extended_adapter.parse_market("ETH-USD", response)

    def test_parse_positions(self):
        positions = extended_adapter.parse_positions([
            {"market": "ETH-USD", "side": "SHORT", "size": "0.012", "openPrice": "2000", "unrealisedPnl": "-0.3"},
            {"market": "SOL-USD", "side": "LONG", "size": "0.5", "openPrice": "100"},
            {"market": "BTC-USD", "side": "LONG", "size": "0"},
        ])
        assert [(p.symbol, p.side, p.size) for p in positions] == [
            ("ETH-USD", Side.SHORT, 0.012),
            ("SOL-USD", Side.LONG, 0.5),
        ]
        assert positions[0].unrealized_pnl == -0.3


class TestExtendedAdapter:

    def test_fetch_market(self, extended):
        with patch.object(extended, "_request", new=respond((200, extended_markets_response()))) as request:
            market = asyncio.run(extended.fetch_market("ETH-USD"))
        assert market.symbol == "ETH-USD"
        assert request.call_args.kwargs["params"] == {"market": "ETH-USD"}

    def test_rate_limited(self, extended):
        with patch.object(extended, "_request", new=respond((429, "Too Many Requests"))):
            with pytest.raises(DataUnavailable, match="rate limited"):
                asyncio.run(extended.fetch_market("ETH-USD"))

    def test_transport_error(self, extended):
        with patch.object(extended, "_request", new=AsyncMock(side_effect=aiohttp.ClientError("reset"))):
            with pytest.raises(DataUnavailable):
                asyncio.run(extended.fetch_balance())

    def test_fetch_balance(self, extended):
        body = {"status": "OK", "data": {"balance": "120.5", "availableForTrade": "98.25"}}
        with patch.object(extended, "_request", new=respond((200, body))):
            assert asyncio.run(extended.fetch_balance()) == 98.25

    def test_missing_fees_is_signing_failure(self, extended):
        with patch.object(extended, "_request", new=respond((200, {"status": "OK", "data": []}))):
            with pytest.raises(SigningFailure):
                asyncio.run(extended.fetch_fee_rate("ETH-USD"))

    @pytest.mark.parametrize("data", [
        {"market": "ETH-USD", "takerFeeRate": "0.00025"},
        ["0.00025"],
        "0.00025",
    ])
    def test_unexpected_fees_shape_is_signing_failure(self, extended, data):
        with patch.object(extended, "_request", new=respond((200, {"status": "OK", "data": data}))):
            with pytest.raises(SigningFailure, match="unexpected response"):
                asyncio.run(extended.fetch_fee_rate("ETH-USD"))

    def test_build_order(self, extended):
        with patch.object(extended, "_request", new=respond((200, FEES_RESPONSE))):
            order = asyncio.run(extended.build_order(make_extended_market(), Side.LONG, 0.0126))
        assert order.payload["fee"] == "0.00025"
        assert order.payload["qty"] == "0.012"
        assert order.payload["side"] == "BUY"
        assert order.payload["id"] == str(0xABC)

    def test_submit_success(self, extended):
        with patch.object(extended, "_request", new=respond(
            (200, FEES_RESPONSE),
            (200, {"status": "OK", "data": {"id": 1789, "externalId": "abc"}}),
        )) as request:
            result = asyncio.run(extended.place_order(make_extended_market(), Side.SHORT, 0.0126))

        assert result.success
        assert result.order_id == "1789"
        assert result.filled_size == 0.012
        method, endpoint = request.call_args.args[:2]
        assert (method, endpoint) == ("POST", "/user/order")
        assert request.call_args.kwargs["data"]["side"] == "SELL"

    def test_submit_error_status(self, extended):
        order = asyncio.run(self._signed(extended))
        body = {"status": "ERROR", "error": {"code": 1140, "message": "Invalid price"}}
        with patch.object(extended, "_request", new=respond((400, body))):
            result = asyncio.run(extended.submit_order(order))
        assert not result.success
        assert "400" in result.error

    def test_submit_error_in_ok_response(self, extended):
        order = asyncio.run(self._signed(extended))
        with patch.object(extended, "_request", new=respond((200, {"status": "ERROR"}))):
            assert not asyncio.run(extended.submit_order(order)).success

    def test_submit_transport_error(self, extended):
        order = asyncio.run(self._signed(extended))
        with patch.object(extended, "_request", new=AsyncMock(side_effect=aiohttp.ClientError("reset"))):
            result = asyncio.run(extended.submit_order(order))
        assert not result.success
        assert "reset" in result.error

    def test_dry_run_does_not_submit(self):
        credentials = ExtendedCredentials("api-key", "0x1", "0x2", "12345")
        adapter = ExtendedAdapter(credentials, dry_run=True, signer=fake_stark_signer())
        with patch.object(adapter, "_request", new=respond((200, FEES_RESPONSE))) as request:
            result = asyncio.run(adapter.place_order(make_extended_market(), Side.LONG, 0.0126))
        assert result.success
        assert result.order_id == "dry-run"
        assert request.await_count == 1  # fee lookup only

    def test_headers_carry_api_key(self, extended):
        assert extended._headers()["X-Api-Key"] == "api-key"

    def test_signer_is_an_order_signer(self, extended):
        assert isinstance(extended.signer, OrderSigner)

    @staticmethod
    async def _signed(adapter):
        with patch.object(adapter, "_request", new=respond((200, FEES_RESPONSE))):
            return await adapter.build_order(make_extended_market(), Side.LONG, 0.0126)


# ============================================================================
# PACIFICA
# ============================================================================

class TestPacificaParsing:

    def test_parse_market(self):
        market = pacifica_adapter.parse_market("ETH", PACIFICA_PRICES, PACIFICA_INFO)
        assert market.venue == "Pacifica"
        assert market.reference_price == "2000.5"
        assert market.funding_rate == "0.0000125"
        assert market.min_price_change == "0.1"
        assert market.min_size_change == "0.0001"
        assert market.index_price == "2000.3"

    def test_unknown_symbol(self):
        with pytest.raises(DataUnavailable, match="not found"):
            pacifica_adapter.parse_market("DOGE", PACIFICA_PRICES, PACIFICA_INFO)

    def test_unsuccessful_response(self):
        with pytest.raises(DataUnavailable):
            pacifica_adapter.parse_market("ETH", {"success": False, "data": None}, PACIFICA_INFO)

    def test_parse_positions(self):
        positions = pacifica_adapter.parse_positions([
            {"symbol": "ETH", "side": "bid", "amount": "0.0126", "entry_price": "2000.5"},
            {"symbol": "SOL", "side": "ask", "amount": "0.25"},
            {"symbol": "BTC", "side": "bid", "amount": "0"},
        ])
        assert [(p.symbol, p.side, p.size) for p in positions] == [
            ("ETH", Side.LONG, 0.0126),
            ("SOL", Side.SHORT, 0.25),
        ]


class TestPacificaAdapter:

    def test_fetch_market_joins_endpoints(self, pacifica):
        with patch.object(pacifica, "_request", new=respond((200, PACIFICA_PRICES), (200, PACIFICA_INFO))) as request:
            market = asyncio.run(pacifica.fetch_market("ETH"))
        assert market.price == 2000.5
        assert [c.args[1] for c in request.call_args_list] == ["/info/prices", "/info"]

    def test_fetch_balance_for_account(self, pacifica):
        body = {"success": True, "data": {"balance": "150", "available_to_spend": "123.4"}}
        with patch.object(pacifica, "_request", new=respond((200, body))) as request:
            assert asyncio.run(pacifica.fetch_balance()) == 123.4
        assert request.call_args.kwargs["params"] == {"account": pacifica.account_address}

    def test_unsuccessful_account_response(self, pacifica):
        with patch.object(pacifica, "_request", new=respond((200, {"success": False, "error": "no account"}))):
            with pytest.raises(DataUnavailable):
                asyncio.run(pacifica.fetch_positions())

    def test_submit_success(self, pacifica):
        with patch.object(pacifica, "_request", new=respond((200, {"success": True, "data": {"order_id": 555}}))) as request:
            result = asyncio.run(pacifica.place_order(make_pacifica_market(), Side.LONG, 0.0126, include_brackets=True))

        assert result.success
        assert result.order_id == "555"
        assert result.filled_size == 0.0126
        method, endpoint = request.call_args.args[:2]
        assert (method, endpoint) == ("POST", "/orders/create_market")
        body = request.call_args.kwargs["data"]
        assert body["side"] == "bid"
        assert "take_profit" in body and "stop_loss" in body

    def test_submit_rejected(self, pacifica):
        order = asyncio.run(pacifica.build_order(make_pacifica_market(), Side.SHORT, 0.0126))
        with patch.object(pacifica, "_request", new=respond((200, {"success": False, "error": "Insufficient margin"}))):
            result = asyncio.run(pacifica.submit_order(order))
        assert not result.success
        assert result.error == "Insufficient margin"

    def test_submit_http_error(self, pacifica):
        order = asyncio.run(pacifica.build_order(make_pacifica_market(), Side.SHORT, 0.0126))
        with patch.object(pacifica, "_request", new=respond((500, "Internal Server Error"))):
            result = asyncio.run(pacifica.submit_order(order))
        assert not result.success
        assert "500" in result.error

    def test_close_position_is_reduce_only(self, pacifica):
        position = Position("Pacifica", "ETH", Side.SHORT, 0.0126)
        with patch.object(pacifica, "_request", new=respond((200, {"success": True, "data": {"order_id": 1}}))) as request:
            asyncio.run(pacifica.close_position(position, make_pacifica_market()))
        body = request.call_args.kwargs["data"]
        assert body["side"] == "bid"
        assert body["reduce_only"] is True
        assert body["amount"] == "0.0126"
        assert "take_profit" not in body
