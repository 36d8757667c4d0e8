"""
UTXO indexer HTTP client.

Talks to the market indexer API:
- POST /market/v1/brc20/utxos                        UTXOs of an address
- POST /market/v1/brc20/utxos/{txid}/{vout}/status   status of one outpoint

The service answers in several JSON envelopes. Each response is first
classified into a tagged envelope kind and then decoded for that kind;
a body matching no known envelope raises UnrecognizedResponseShape.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from enum import Enum
from typing import Any, Literal

import httpx
from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

UTXOS_PATH = "market/v1/brc20/utxos"
STATUS_PATH = "market/v1/brc20/utxos/{txid}/{vout}/status"

DEFAULT_STATUS_BATCH_SIZE = 10


class IndexerError(Exception):
    """Indexer request failed or returned an unusable response."""

    def __init__(self, message: str, status: int | None = None, details: Any = None):
        self.status = status
        self.details = details
        super().__init__(message)


class IndexerAPIError(IndexerError):
    """The indexer reported a failure inside a successful HTTP response."""

    def __init__(self, message: str, code: int | None = None):
        self.code = code
        super().__init__(message)


class UnrecognizedResponseShape(IndexerError):
    """Response body matches none of the known envelopes."""

    def __init__(self, context: str, body: Any):
        super().__init__(f"Invalid response format from {context}", details=body)


class UtxoStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    txid: str
    vout: int
    status: Literal["unspent", "spent", "pending", "locked"]
    is_spent: bool = Field(default=False, alias="isSpent")
    is_locked: bool = Field(default=False, alias="isLocked")


class IndexedUtxo(BaseModel):
    """A UTXO record as returned by the indexer, with field names normalized."""

    model_config = ConfigDict(populate_by_name=True)

    txid: str = Field(validation_alias=AliasChoices("txid", "txId"))
    vout: int = Field(ge=0, validation_alias=AliasChoices("vout", "vOut"))
    satoshi: int = Field(default=0, ge=0, validation_alias=AliasChoices("satoshi", "value"))
    address: str = ""
    script_pk: str = Field(default="", validation_alias=AliasChoices("scriptPk", "script_pk"))
    inscriptions: list[Any] = Field(default_factory=list)
    runes: list[Any] = Field(default_factory=list)
    is_locked: bool = False

    @field_validator("satoshi", mode="before")
    @classmethod
    def missing_value_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("address", "script_pk", mode="before")
    @classmethod
    def missing_text_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("inscriptions", "runes", mode="before")
    @classmethod
    def missing_list_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def outpoint(self) -> str:
        return format_outpoint(self.txid, self.vout)


class UtxoEnvelope(str, Enum):
    BARE_LIST = "bare_list"  # [...]
    CODED = "coded"  # {code, msg, data: {availableUtxos, lockedUtxos}}
    SUCCESS_WRAPPED = "success_wrapped"  # {success: true, data: [...]}
    FAILURE = "failure"  # {success: false, error}
    KEYED_LIST = "keyed_list"  # {data|utxos|results: [...]}


class StatusEnvelope(str, Enum):
    CODED = "coded"  # {code, msg, data: {available, reason}}
    SUCCESS_WRAPPED = "success_wrapped"  # {success: true, data: {...}}
    DIRECT = "direct"  # {status, ...}


LIST_KEYS = ("data", "utxos", "results")


def format_outpoint(txid: str, vout: int) -> str:
    return f"{txid}:{vout}"


def parse_outpoint(outpoint: str) -> tuple[str, int]:
    """Split "txid:vout" into its parts. A missing vout means 0."""
    txid, _, vout = outpoint.partition(":")
    return txid, int(vout or 0)


def _coded_error(raw: dict[str, Any]) -> IndexerAPIError:
    code = raw.get("code")
    message = raw.get("msg") or raw.get("message") or raw.get("error")
    return IndexerAPIError(message or f"API error (code: {code})", code=code)


def classify_utxo_envelope(raw: Any) -> UtxoEnvelope:
    if isinstance(raw, list):
        return UtxoEnvelope.BARE_LIST
    if not isinstance(raw, dict):
        raise UnrecognizedResponseShape("UTXO API", raw)
    if "code" in raw:
        return UtxoEnvelope.CODED
    if raw.get("success") is True and isinstance(raw.get("data"), list):
        return UtxoEnvelope.SUCCESS_WRAPPED
    if raw.get("success") is False:
        return UtxoEnvelope.FAILURE
    if any(isinstance(raw.get(key), list) for key in LIST_KEYS):
        return UtxoEnvelope.KEYED_LIST
    raise UnrecognizedResponseShape("UTXO API", raw)


def _parse_records(records: Iterable[Any], address: str, locked: bool = False) -> list[IndexedUtxo]:
    utxos = []
    for record in records:
        try:
            utxo = IndexedUtxo.model_validate(record)
        except ValidationError as e:
            raise IndexerError(f"Malformed UTXO record: {e}", details=record) from e
        updates: dict[str, Any] = {}
        if not utxo.address and address:
            updates["address"] = address
        if locked:
            updates["is_locked"] = True
        utxos.append(utxo.model_copy(update=updates) if updates else utxo)
    return utxos


def decode_utxo_list(raw: Any, address: str = "") -> list[IndexedUtxo]:
    """
    Decode a UTXO list response into normalized records.

    Locked records from the coded envelope only carry an outpoint; they get
    a zero value, the queried address and is_locked=True.

    Raises:
        IndexerAPIError: the envelope reports a failure
        UnrecognizedResponseShape: no known envelope matches
    """
    kind = classify_utxo_envelope(raw)
    logger.debug(f"UTXO response envelope: {kind.value}")

    if kind == UtxoEnvelope.BARE_LIST:
        return _parse_records(raw, address)

    if kind == UtxoEnvelope.CODED:
        if raw["code"] != 0:
            raise _coded_error(raw)
        data = raw.get("data")
        if not isinstance(data, dict):
            raise UnrecognizedResponseShape("UTXO API", raw)
        available = data.get("availableUtxos")
        locked = data.get("lockedUtxos")
        available = available if isinstance(available, list) else []
        locked = locked if isinstance(locked, list) else []
        logger.debug(f"Indexer returned {len(available)} available, {len(locked)} locked UTXOs")
        return _parse_records(available, address) + _parse_records(locked, address, locked=True)

    if kind == UtxoEnvelope.SUCCESS_WRAPPED:
        return _parse_records(raw["data"], address)

    if kind == UtxoEnvelope.FAILURE:
        raise IndexerAPIError(raw.get("error") or "Failed to fetch UTXOs")

    for key in LIST_KEYS:
        if isinstance(raw.get(key), list):
            return _parse_records(raw[key], address)
    raise UnrecognizedResponseShape("UTXO API", raw)


def classify_status_envelope(raw: Any) -> StatusEnvelope:
    if not isinstance(raw, dict):
        raise UnrecognizedResponseShape("status API", raw)
    if "code" in raw:
        return StatusEnvelope.CODED
    if raw.get("success") is True:
        return StatusEnvelope.SUCCESS_WRAPPED
    if "status" in raw:
        return StatusEnvelope.DIRECT
    raise UnrecognizedResponseShape("status API", raw)


def _status_from_availability(txid: str, vout: int, data: dict[str, Any]) -> UtxoStatus:
    available = data.get("available") is True
    reason = data.get("reason") or ""
    market_locked = "locked" in reason or "auction" in reason

    if available:
        status = "unspent"
    elif market_locked:
        status = "locked"
    elif reason:
        status = "pending"
    else:
        status = "spent"

    return UtxoStatus(
        txid=txid,
        vout=vout,
        status=status,
        is_spent=not available and not market_locked,
        is_locked=market_locked,
    )


def decode_utxo_status(raw: Any, txid: str, vout: int) -> UtxoStatus:
    """
    Decode a UTXO status response.

    Raises:
        IndexerAPIError: the envelope reports a failure
        UnrecognizedResponseShape: no known envelope matches
    """
    kind = classify_status_envelope(raw)

    if kind == StatusEnvelope.CODED:
        if raw["code"] != 0:
            raise _coded_error(raw)
        data = raw.get("data")
        if not isinstance(data, dict):
            raise UnrecognizedResponseShape("status API", raw)
        return _status_from_availability(txid, vout, data)

    body = raw.get("data") if kind == StatusEnvelope.SUCCESS_WRAPPED else raw
    if not isinstance(body, dict):
        raise UnrecognizedResponseShape("status API", raw)
    try:
        return UtxoStatus.model_validate({"txid": txid, "vout": vout, **body})
    except ValidationError as e:
        raise IndexerError(f"Malformed status record: {e}", details=body) from e


class IndexerClient:
    """
    Async client for the UTXO indexer.

    The secret token, when configured, is sent as X-Custom-Secret.
    """

    def __init__(
        self,
        base_url: str,
        secret_token: str = "",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.secret_token = secret_token
        self.client = client or httpx.AsyncClient(timeout=timeout)
        if not secret_token:
            logger.warning("No indexer secret token configured - requests may fail with 401")

    async def __aenter__(self) -> IndexerClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Requested-With": "XMLHttpRequest",
        }
        if self.secret_token:
            headers["X-Custom-Secret"] = self.secret_token
        return headers

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        url = f"{self.base_url}/{path}"
        try:
            response = await self.client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"Indexer request failed: {path} - {e}")
            raise IndexerError(f"Indexer request failed: {e}") from e

        if response.is_error:
            message = f"API error: {response.status_code} {response.reason_phrase}"
            details = None
            try:
                details = response.json()
            except ValueError:
                logger.error(f"Indexer error response (non-JSON): {response.text[:200]}")
            if isinstance(details, dict):
                message = details.get("error") or details.get("message") or message
            logger.error(f"Indexer request failed: {path} - {message}")
            raise IndexerError(message, status=response.status_code, details=details)

        try:
            return response.json()
        except ValueError as e:
            raise IndexerError(
                f"Invalid JSON response from API: {response.status_code} {response.reason_phrase}",
                status=response.status_code,
            ) from e

    async def get_utxos(self, address: str) -> list[IndexedUtxo]:
        """Fetch all UTXOs of an address, available and market-locked."""
        address = address.strip() if address else ""
        if not address:
            raise ValueError("Address is required")

        raw = await self._post(UTXOS_PATH, {"address": address})
        utxos = decode_utxo_list(raw, address)
        logger.info(f"Fetched {len(utxos)} UTXOs for {address}")
        return utxos

    async def get_utxo_status(self, txid: str, vout: int, address: str) -> UtxoStatus:
        """Fetch the status of one outpoint."""
        if not txid or not address or vout is None:
            raise ValueError("txid, vout, and address are required")

        path = STATUS_PATH.format(txid=txid, vout=vout)
        raw = await self._post(path, {"address": address.strip()})
        return decode_utxo_status(raw, txid, vout)

    async def batch_get_utxo_status(
        self, utxos: Iterable[IndexedUtxo], batch_size: int = DEFAULT_STATUS_BATCH_SIZE
    ) -> dict[str, UtxoStatus]:
        """
        Fetch statuses concurrently, `batch_size` requests at a time.

        Outpoints whose status cannot be fetched are logged and left out of
        the returned map.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        pending = list(utxos)
        statuses: dict[str, UtxoStatus] = {}

        async def fetch_one(utxo: IndexedUtxo) -> None:
            try:
                statuses[utxo.outpoint] = await self.get_utxo_status(
                    utxo.txid, utxo.vout, utxo.address
                )
            except IndexerError as e:
                logger.warning(f"Failed to get status for {utxo.outpoint}: {e}")

        for i in range(0, len(pending), batch_size):
            batch = pending[i : i + batch_size]
            await asyncio.gather(*(fetch_one(utxo) for utxo in batch))

        return statuses

    async def close(self) -> None:
        await self.client.aclose()
