"""
Order signer capability.

The two venues sign in structurally different ways (canonical JSON +
ed25519 vs Stark domain hash + curve signature), so they share a
structural interface and no implementation.
"""

from typing import Protocol, runtime_checkable

from funding_arb.core.models import MarketSnapshot, OrderRequest, SignedOrder


@runtime_checkable
class OrderSigner(Protocol):
    """Turns a venue-legal OrderRequest into a single-use SignedOrder"""

    venue: str

    def sign(self, request: OrderRequest, market: MarketSnapshot) -> SignedOrder:
        ...
