"""
Address <-> scriptPubKey conversion.

Decoding returns an explicit script type tag, and locking scripts are built
from that tag rather than from the address's leading characters. Supports:
- P2PKH and P2SH (Base58Check)
- P2WPKH and P2WSH (bech32, witness v0)
- P2TR (bech32m, witness v1, 32-byte program)

Segwit addresses go through embit's BIP-173/BIP-350 codec, which picks
bech32 or bech32m from the witness version.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import base58
from embit import bech32

from psbtcore.network import NetworkParams


class InvalidAddressError(ValueError):
    """Address does not resolve to a locking script on the given network."""

    def __init__(self, address: str, reason: str):
        self.address = address
        self.reason = reason
        super().__init__(f"Invalid address {address}: {reason}")


class ScriptType(str, Enum):
    P2PKH = "p2pkh"
    P2SH = "p2sh"
    P2WPKH = "p2wpkh"
    P2WSH = "p2wsh"
    P2TR = "p2tr"


@dataclass(frozen=True)
class DecodedAddress:
    address: str
    script_type: ScriptType
    program: bytes
    witness_version: int | None = None

    @property
    def script_pubkey(self) -> bytes:
        return build_scriptpubkey(self.script_type, self.program)


def build_scriptpubkey(script_type: ScriptType, program: bytes) -> bytes:
    """Build the locking script for a script type and its hash/program."""
    if script_type == ScriptType.P2PKH:
        # OP_DUP OP_HASH160 <20-byte-pubkeyhash> OP_EQUALVERIFY OP_CHECKSIG
        return bytes([0x76, 0xA9, 0x14]) + program + bytes([0x88, 0xAC])
    if script_type == ScriptType.P2SH:
        # OP_HASH160 <20-byte-scripthash> OP_EQUAL
        return bytes([0xA9, 0x14]) + program + bytes([0x87])
    if script_type in (ScriptType.P2WPKH, ScriptType.P2WSH):
        # OP_0 <program>
        return bytes([0x00, len(program)]) + program
    if script_type == ScriptType.P2TR:
        # OP_1 <32-byte x-only output key>
        return bytes([0x51, 0x20]) + program
    raise ValueError(f"Unsupported script type: {script_type}")


def _decode_segwit(address: str, network: NetworkParams) -> DecodedAddress | None:
    witver, witprog = bech32.decode(network.bech32_hrp, address)
    if witver is None or witprog is None:
        return None

    program = bytes(witprog)
    if witver == 0 and len(program) == 20:
        script_type = ScriptType.P2WPKH
    elif witver == 0 and len(program) == 32:
        script_type = ScriptType.P2WSH
    elif witver == 1 and len(program) == 32:
        script_type = ScriptType.P2TR
    else:
        raise InvalidAddressError(
            address, f"unsupported witness version {witver} with {len(program)}-byte program"
        )
    return DecodedAddress(
        address=address, script_type=script_type, program=program, witness_version=witver
    )


def _decode_base58(address: str, network: NetworkParams) -> DecodedAddress | None:
    try:
        decoded = base58.b58decode_check(address)
    except ValueError:
        return None

    if len(decoded) != 21:
        raise InvalidAddressError(address, f"unexpected payload length {len(decoded)}")

    version = decoded[0]
    payload = decoded[1:]
    if version == network.p2pkh_prefix:
        return DecodedAddress(address=address, script_type=ScriptType.P2PKH, program=payload)
    if version == network.p2sh_prefix:
        return DecodedAddress(address=address, script_type=ScriptType.P2SH, program=payload)
    raise InvalidAddressError(
        address, f"version byte 0x{version:02x} is not valid on {network.name}"
    )


def decode_address(address: str, network: NetworkParams) -> DecodedAddress:
    """
    Decode an address under the given network parameters.

    Args:
        address: Address string (any supported script type)
        network: Network parameters the address must belong to

    Returns:
        DecodedAddress carrying the script type tag and program

    Raises:
        InvalidAddressError: malformed, wrong-network or unsupported address
    """
    if not isinstance(address, str) or not address.strip():
        raise InvalidAddressError(str(address), "empty address")

    address = address.strip()
    decoded = _decode_segwit(address, network)
    if decoded is None:
        decoded = _decode_base58(address, network)
    if decoded is None:
        raise InvalidAddressError(address, f"not a valid {network.name} address")
    return decoded


def address_to_scriptpubkey(address: str, network: NetworkParams) -> bytes:
    """Convert an address to its scriptPubKey bytes."""
    return decode_address(address, network).script_pubkey


def classify_scriptpubkey(script: bytes) -> ScriptType | None:
    """Identify a standard locking script, or None for anything else."""
    if (
        len(script) == 25
        and script[:3] == bytes([0x76, 0xA9, 0x14])
        and script[23:] == bytes([0x88, 0xAC])
    ):
        return ScriptType.P2PKH
    if len(script) == 23 and script[:2] == bytes([0xA9, 0x14]) and script[22] == 0x87:
        return ScriptType.P2SH
    if len(script) == 22 and script[:2] == bytes([0x00, 0x14]):
        return ScriptType.P2WPKH
    if len(script) == 34 and script[:2] == bytes([0x00, 0x20]):
        return ScriptType.P2WSH
    if len(script) == 34 and script[:2] == bytes([0x51, 0x20]):
        return ScriptType.P2TR
    return None


def scriptpubkey_to_address(script: bytes, network: NetworkParams) -> str | None:
    """Render a standard locking script as an address; None if non-standard."""
    script_type = classify_scriptpubkey(script)
    if script_type is None:
        return None

    if script_type == ScriptType.P2PKH:
        return base58.b58encode_check(bytes([network.p2pkh_prefix]) + script[3:23]).decode()
    if script_type == ScriptType.P2SH:
        return base58.b58encode_check(bytes([network.p2sh_prefix]) + script[2:22]).decode()

    witver = 1 if script_type == ScriptType.P2TR else 0
    return bech32.encode(network.bech32_hrp, witver, list(script[2:]))
