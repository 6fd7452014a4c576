"""Venue order signers"""
from .base import OrderSigner
from .pacifica_signer import PacificaSigner, sort_json_keys, canonical_json
from .stark_signer import StarkOrderSigner, StarknetDomain

__all__ = [
    'OrderSigner',
    'PacificaSigner',
    'StarkOrderSigner',
    'StarknetDomain',
    'sort_json_keys',
    'canonical_json',
]
