"""
Byte-model fee estimation.

Every input is treated as a single-signature witness input and every
output as a small witness output, whatever the real script types are:

    vsize = ceil((10 + inputs * (148 + 107) + outputs * 34) / 4)
    fee   = round(vsize * fee_rate)
"""

from __future__ import annotations

import math
from collections.abc import Sized

# version, locktime, input count, output count
TX_BASE_SIZE = 10
# outpoint, scriptSig, sequence framing per input
INPUT_SIZE = 148
# attached signature + pubkey per input
INPUT_WITNESS_SIZE = 107
OUTPUT_SIZE = 34
WITNESS_SCALE_FACTOR = 4


def estimate_vsize(num_inputs: int, num_outputs: int) -> int:
    """Estimated virtual size in vbytes."""
    weight = (
        TX_BASE_SIZE
        + num_inputs * (INPUT_SIZE + INPUT_WITNESS_SIZE)
        + num_outputs * OUTPUT_SIZE
    )
    return math.ceil(weight / WITNESS_SCALE_FACTOR)


def round_sats(amount: float) -> int:
    """Round to the nearest satoshi, ties away from zero for positive amounts."""
    return math.floor(amount + 0.5)


def estimate_fee(inputs: Sized, outputs: Sized, fee_rate: float) -> int:
    """
    Estimate the network fee for a transaction.

    Args:
        inputs: Inputs being spent (only the count is used)
        outputs: Outputs being created, change included if any
        fee_rate: Fee rate in sat/vB, fractional rates allowed

    Returns:
        Fee in satoshis
    """
    vsize = estimate_vsize(len(inputs), len(outputs))
    return round_sats(vsize * fee_rate)
