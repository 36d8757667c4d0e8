"""
Wallet-extension bridge.

The signer lives in an external wallet extension. This module defines the
interface the console expects from it, and a session object that tracks the
connected account and the chain it reports.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from psbtcore.builder import BuildResult
from psbtcore.network import MAINNET, NetworkParams, resolve_network

ACCOUNTS_CHANGED = "accountsChanged"
NETWORK_CHANGED = "networkChanged"
CHAIN_CHANGED = "chainChanged"
EVENTS = (ACCOUNTS_CHANGED, NETWORK_CHANGED, CHAIN_CHANGED)

EventHandler = Callable[[Any], None]


class Balance(BaseModel):
    confirmed: int = 0
    unconfirmed: int = 0
    total: int = 0


class ChainInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chain_type: str = Field(alias="enum")
    name: str = ""
    network: str = ""


class ToSignInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    index: int = Field(ge=0)
    address: str | None = None
    public_key: str | None = Field(default=None, alias="publicKey")
    sighash_types: list[int] | None = Field(default=None, alias="sighashTypes")


class SignPsbtOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    auto_finalized: bool = Field(default=True, alias="autoFinalized")
    to_sign_inputs: list[ToSignInput] = Field(default_factory=list, alias="toSignInputs")


class WalletExtension(ABC):
    """
    Interface to a browser-style wallet extension.

    Implementations bridge to the real extension; events are delivered by
    calling emit().
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventHandler]] = {event: [] for event in EVENTS}

    def on(self, event: str, handler: EventHandler) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown wallet event: {event}")
        self._listeners[event].append(handler)

    def remove_listener(self, event: str, handler: EventHandler) -> None:
        handlers = self._listeners.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: str, payload: Any) -> None:
        for handler in list(self._listeners.get(event, [])):
            handler(payload)

    @abstractmethod
    async def request_accounts(self) -> list[str]:
        """Ask the user to connect; returns the approved accounts"""

    @abstractmethod
    async def get_accounts(self) -> list[str]:
        """Currently connected accounts (empty when disconnected)"""

    @abstractmethod
    async def get_public_key(self) -> str:
        """Public key of the current account, hex"""

    @abstractmethod
    async def get_balance(self) -> Balance:
        """Balance of the current account in satoshis"""

    @abstractmethod
    async def get_network(self) -> str:
        """Legacy network name (livenet / testnet)"""

    @abstractmethod
    async def get_chain(self) -> ChainInfo:
        """Active chain"""

    @abstractmethod
    async def sign_message(self, message: str) -> str:
        """Sign a message with the current account"""

    @abstractmethod
    async def sign_psbt(self, psbt_hex: str, options: SignPsbtOptions | None = None) -> str:
        """Sign a PSBT, returns the signed PSBT hex"""

    @abstractmethod
    async def sign_psbts(
        self, psbt_hexs: list[str], options: list[SignPsbtOptions] | None = None
    ) -> list[str]:
        """Sign several PSBTs at once"""

    @abstractmethod
    async def push_psbt(self, psbt_hex: str) -> str:
        """Finalize and broadcast a signed PSBT, returns txid"""

    @abstractmethod
    async def push_tx(self, raw_tx: str) -> str:
        """Broadcast a raw transaction, returns txid"""


class WalletNotConnectedError(Exception):
    pass


class WalletSession:
    """
    Connected-account state for one wallet extension.

    Keeps the address parameter set in step with the chain the extension
    reports, so addresses are always encoded for the active chain.
    """

    def __init__(self, extension: WalletExtension):
        self.extension = extension
        self.accounts: list[str] = []
        self.chain: ChainInfo | None = None
        self.network: NetworkParams = MAINNET
        self.network_name: str | None = None
        self._subscribed = False

    @property
    def connected(self) -> bool:
        return bool(self.accounts)

    @property
    def address(self) -> str | None:
        return self.accounts[0] if self.accounts else None

    async def connect(self) -> list[str]:
        """Request accounts, load the active chain and subscribe to changes."""
        accounts = await self.extension.request_accounts()
        self._set_accounts(accounts)
        await self.load_chain()
        if not self._subscribed:
            self.extension.on(ACCOUNTS_CHANGED, self._on_accounts_changed)
            self.extension.on(NETWORK_CHANGED, self._on_network_changed)
            self.extension.on(CHAIN_CHANGED, self._on_chain_changed)
            self._subscribed = True
        return self.accounts

    def disconnect(self) -> None:
        if self._subscribed:
            self.extension.remove_listener(ACCOUNTS_CHANGED, self._on_accounts_changed)
            self.extension.remove_listener(NETWORK_CHANGED, self._on_network_changed)
            self.extension.remove_listener(CHAIN_CHANGED, self._on_chain_changed)
            self._subscribed = False
        self.accounts = []

    async def load_chain(self) -> NetworkParams:
        self._set_chain(await self.extension.get_chain())
        return self.network

    def _set_accounts(self, accounts: list[str]) -> None:
        self.accounts = list(accounts)
        if self.accounts:
            logger.info(f"Wallet connected: {self.accounts[0]}")
        else:
            logger.info("Wallet disconnected")

    def _set_chain(self, chain: ChainInfo) -> None:
        self.chain = chain
        self.network = resolve_network(chain.chain_type)
        logger.debug(f"Active chain {chain.chain_type} -> {self.network.name} addresses")

    def _on_accounts_changed(self, accounts: list[str]) -> None:
        if accounts and self.accounts and accounts[0] == self.accounts[0]:
            return
        self._set_accounts(accounts)

    def _on_network_changed(self, network: str) -> None:
        logger.debug(f"Wallet network changed: {network}")
        self.network_name = network

    def _on_chain_changed(self, chain: ChainInfo | dict[str, Any]) -> None:
        if isinstance(chain, dict):
            chain = ChainInfo.model_validate(chain)
        self._set_chain(chain)

    async def sign_and_push(self, result: BuildResult) -> tuple[str, str]:
        """
        Hand a built PSBT to the extension for signing, then broadcast it.

        Returns:
            (signed PSBT hex, txid)
        """
        if not self.connected:
            raise WalletNotConnectedError("Connect the wallet before signing")

        signed = await self.extension.sign_psbt(
            result.to_hex(), SignPsbtOptions(auto_finalized=False)
        )
        txid = await self.extension.push_psbt(signed)
        logger.info(f"Broadcast {txid} (fee {result.fee} sats)")
        return signed, txid

