"""Exchange adapters for funding arbitrage"""
from .base import ExchangeAdapter
from .extended_adapter import ExtendedAdapter
from .pacifica_adapter import PacificaAdapter

__all__ = [
    'ExchangeAdapter',
    'ExtendedAdapter',
    'PacificaAdapter',
]
