"""
psbtcore - Unsigned PSBT construction for wallet-extension signing

Provides network resolution, address/script conversion, fee estimation,
the PSBT builder and a read-only transaction decoder.
"""

__version__ = "0.1.0"

from psbtcore.address import (
    DecodedAddress,
    InvalidAddressError,
    ScriptType,
    address_to_scriptpubkey,
    decode_address,
)
from psbtcore.builder import (
    AllInputsDuplicateError,
    BuildResult,
    InputResolutionError,
    InsufficientFundsError,
    InvalidChangeAddressError,
    InvalidOutputAddressError,
    InvalidOutputAmountError,
    NoInputsError,
    NoOutputsError,
    PSBTBuilder,
    PSBTBuildError,
    add_input_if_not_duplicate,
    build,
)
from psbtcore.constants import DUST_THRESHOLD
from psbtcore.decode import DecodedTransaction, DecodeError, decode_payload
from psbtcore.fees import estimate_fee, estimate_vsize
from psbtcore.models import BuildRequest, Output, UtxoInput
from psbtcore.network import MAINNET, TESTNET, ChainType, NetworkParams, resolve_network
from psbtcore.psbt import PSBT, PSBTParseError

__all__ = [
    "AllInputsDuplicateError",
    "BuildRequest",
    "BuildResult",
    "ChainType",
    "DUST_THRESHOLD",
    "DecodeError",
    "DecodedAddress",
    "DecodedTransaction",
    "InputResolutionError",
    "InsufficientFundsError",
    "InvalidAddressError",
    "InvalidChangeAddressError",
    "InvalidOutputAddressError",
    "InvalidOutputAmountError",
    "MAINNET",
    "NetworkParams",
    "NoInputsError",
    "NoOutputsError",
    "Output",
    "PSBT",
    "PSBTBuildError",
    "PSBTBuilder",
    "PSBTParseError",
    "ScriptType",
    "TESTNET",
    "UtxoInput",
    "add_input_if_not_duplicate",
    "address_to_scriptpubkey",
    "build",
    "decode_address",
    "decode_payload",
    "estimate_fee",
    "estimate_vsize",
    "resolve_network",
]
