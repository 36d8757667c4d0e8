"""
Shared fixtures for psbtcore tests.
"""

from __future__ import annotations

import pytest
from vectors import MAINNET_P2TR, MAINNET_P2WPKH, TXID_A

from psbtcore.models import UtxoInput


@pytest.fixture
def payment_address() -> str:
    return MAINNET_P2WPKH


@pytest.fixture
def change_address() -> str:
    return MAINNET_P2TR


@pytest.fixture
def make_utxo():
    """Factory for mainnet P2WPKH UTXOs."""

    def _make(value: int, txid: str = TXID_A, vout: int = 0, **kwargs) -> UtxoInput:
        kwargs.setdefault("address", MAINNET_P2WPKH)
        return UtxoInput(txid=txid, vout=vout, value=value, **kwargs)

    return _make
