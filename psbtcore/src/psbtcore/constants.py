"""
Bitcoin constants used when assembling unsigned transactions.

The dust threshold is the standard P2PKH dust limit: change at or below it
is not worth an output and is left to the miner instead.
"""

from __future__ import annotations

# Standard P2PKH dust limit in Bitcoin Core
DUST_THRESHOLD = 546  # satoshis

DEFAULT_FEE_RATE = 1.0  # sat/vB

# Unsigned transaction defaults
TX_VERSION = 2
TX_LOCKTIME = 0
SEQUENCE_FINAL = 0xFFFFFFFF

PSBT_MAGIC = b"psbt\xff"
