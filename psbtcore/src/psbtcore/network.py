"""
Chain identifiers and the address parameter sets they resolve to.

Wallet extensions report the active chain as one of several identifiers
(mainnet, testnet, testnet4, signet and the Fractal sidechains). Address
encoding only distinguishes two parameter sets, so every identifier maps
onto either mainnet or testnet parameters.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from loguru import logger


class ChainType(str, Enum):
    BITCOIN_MAINNET = "BITCOIN_MAINNET"
    BITCOIN_TESTNET = "BITCOIN_TESTNET"
    BITCOIN_TESTNET4 = "BITCOIN_TESTNET4"
    BITCOIN_SIGNET = "BITCOIN_SIGNET"
    FRACTAL_BITCOIN_MAINNET = "FRACTAL_BITCOIN_MAINNET"
    FRACTAL_BITCOIN_TESTNET = "FRACTAL_BITCOIN_TESTNET"


@dataclass(frozen=True)
class NetworkParams:
    """Address encoding parameters for one network."""

    name: str
    bech32_hrp: str
    p2pkh_prefix: int
    p2sh_prefix: int


MAINNET = NetworkParams(name="mainnet", bech32_hrp="bc", p2pkh_prefix=0x00, p2sh_prefix=0x05)
TESTNET = NetworkParams(name="testnet", bech32_hrp="tb", p2pkh_prefix=0x6F, p2sh_prefix=0xC4)

_CHAIN_NETWORKS: dict[str, NetworkParams] = {
    ChainType.BITCOIN_MAINNET.value: MAINNET,
    ChainType.FRACTAL_BITCOIN_MAINNET.value: MAINNET,
    ChainType.BITCOIN_TESTNET.value: TESTNET,
    ChainType.BITCOIN_TESTNET4.value: TESTNET,
    ChainType.FRACTAL_BITCOIN_TESTNET.value: TESTNET,
    # Signet shares testnet address parameters
    ChainType.BITCOIN_SIGNET.value: TESTNET,
    # Plain network names
    "MAINNET": MAINNET,
    "TESTNET": TESTNET,
    "TESTNET4": TESTNET,
    "SIGNET": TESTNET,
}


def resolve_network(chain: ChainType | str | None) -> NetworkParams:
    """
    Map a chain identifier to its address parameter set.

    Unrecognized identifiers fall back to mainnet. Never raises.
    """
    if isinstance(chain, ChainType):
        key = chain.value
    elif isinstance(chain, str):
        key = chain.strip().upper()
    else:
        key = ""

    params = _CHAIN_NETWORKS.get(key)
    if params is None:
        logger.warning(f"Unrecognized chain identifier {chain!r}, using mainnet parameters")
        return MAINNET
    return params
