"""
Human-readable breakdown of a PSBT or raw transaction.

Accepts PSBTs as hex or base64 and raw transactions as hex. Outputs are
annotated with their address (when standard), script type and any
OP_RETURN payload.
"""

from __future__ import annotations

import base64
import binascii
import re
from enum import Enum

from pydantic import BaseModel

from psbtcore.address import classify_scriptpubkey, scriptpubkey_to_address
from psbtcore.constants import PSBT_MAGIC
from psbtcore.network import MAINNET, NetworkParams
from psbtcore.psbt import PSBT, PSBTParseError, Transaction

OP_RETURN = 0x6A
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_PUSHDATA4 = 0x4E

PSBT_BASE64_PREFIX = "cHNidP"
RAW_TX_VERSIONS = (0x01, 0x02)

_PRINTABLE = re.compile(r"^[\x20-\x7E\n\r\t]*$")


class DecodeError(ValueError):
    """Payload is neither a PSBT nor a raw transaction, or fails to parse."""


class PayloadType(str, Enum):
    PSBT = "PSBT"
    RAW_TX = "RAWTX"
    INVALID = "INVALID"


class OpReturnData(BaseModel):
    hex: str
    text: str = ""


class DecodedInput(BaseModel):
    txid: str
    vout: int
    sequence: int


class DecodedOutput(BaseModel):
    index: int
    value: int
    script_pubkey: str
    address: str | None = None
    script_type: str | None = None
    op_return: OpReturnData | None = None


class DecodedTransaction(BaseModel):
    type: str
    txid: str
    version: int
    locktime: int
    inputs: list[DecodedInput]
    outputs: list[DecodedOutput]
    psbt_version: int | None = None
    is_finalized: bool | None = None

    @property
    def total_output_value(self) -> int:
        return sum(o.value for o in self.outputs)


def _clean(text: str) -> str:
    return re.sub(r"\s+", "", text)


def _to_bytes(text: str) -> bytes | None:
    """Interpret `text` as hex, then as base64."""
    try:
        return bytes.fromhex(text)
    except ValueError:
        pass
    try:
        return base64.b64decode(text, validate=True)
    except binascii.Error:
        return None


def detect_payload_type(text: str) -> PayloadType:
    clean = _clean(text)
    if not clean:
        return PayloadType.INVALID
    if clean.startswith(PSBT_BASE64_PREFIX):
        return PayloadType.PSBT

    data = _to_bytes(clean)
    if not data:
        return PayloadType.INVALID
    if data.startswith(PSBT_MAGIC):
        return PayloadType.PSBT
    if data[0] in RAW_TX_VERSIONS:
        return PayloadType.RAW_TX
    return PayloadType.INVALID


def extract_op_return(script: bytes) -> OpReturnData | None:
    """Return the data pushed after OP_RETURN, or None for other scripts."""
    if not script or script[0] != OP_RETURN:
        return None

    data_start = 1
    if len(script) > 1:
        push = script[1]
        if push == OP_PUSHDATA1:
            data_start = 3
        elif push == OP_PUSHDATA2:
            data_start = 4
        elif push == OP_PUSHDATA4:
            data_start = 6
        elif push <= 0x4B:
            data_start = 2

    if len(script) <= data_start:
        return None

    data = script[data_start:]
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        text = ""
    if not _PRINTABLE.match(text):
        text = ""
    return OpReturnData(hex=data.hex(), text=text)


def _decode_outputs(tx: Transaction, network: NetworkParams) -> list[DecodedOutput]:
    outputs = []
    for index, out in enumerate(tx.outputs):
        script_type = classify_scriptpubkey(out.script)
        outputs.append(
            DecodedOutput(
                index=index,
                value=out.value,
                script_pubkey=out.script.hex(),
                address=scriptpubkey_to_address(out.script, network),
                script_type=script_type.value if script_type else None,
                op_return=extract_op_return(out.script),
            )
        )
    return outputs


def _decode_inputs(tx: Transaction) -> list[DecodedInput]:
    return [DecodedInput(txid=i.txid, vout=i.index, sequence=i.sequence) for i in tx.inputs]


def decode_transaction(data: bytes, network: NetworkParams = MAINNET) -> DecodedTransaction:
    try:
        tx = Transaction.from_bytes(data)
    except PSBTParseError as e:
        raise DecodeError(f"Failed to parse transaction: {e}") from e
    return DecodedTransaction(
        type="Transaction",
        txid=tx.txid(),
        version=tx.version,
        locktime=tx.locktime,
        inputs=_decode_inputs(tx),
        outputs=_decode_outputs(tx, network),
    )


def decode_psbt(text: str, network: NetworkParams = MAINNET) -> DecodedTransaction:
    clean = _clean(text)
    data = _to_bytes(clean)
    if data is None:
        raise DecodeError("Failed to parse PSBT: neither hex nor base64")
    try:
        psbt = PSBT.from_bytes(data)
    except PSBTParseError as e:
        raise DecodeError(f"Failed to parse PSBT: {e}") from e

    tx = psbt.tx
    return DecodedTransaction(
        type="PSBT",
        txid=tx.txid(),
        version=tx.version,
        locktime=tx.locktime,
        inputs=_decode_inputs(tx),
        outputs=_decode_outputs(tx, network),
        psbt_version=psbt.version,
        is_finalized=psbt.is_finalized(),
    )


def decode_payload(text: str, network: NetworkParams = MAINNET) -> DecodedTransaction:
    """
    Decode a PSBT (hex or base64) or a raw transaction (hex).

    Raises:
        DecodeError: payload type not recognized or parsing failed
    """
    payload_type = detect_payload_type(text)
    if payload_type == PayloadType.PSBT:
        return decode_psbt(text, network)
    if payload_type == PayloadType.RAW_TX:
        return decode_transaction(_to_bytes(_clean(text)) or b"", network)
    raise DecodeError(
        "INVALID Bitcoin TX: Transaction must start with 0x70 (PSBT) or 0x01/0x02 (RAWTX)"
    )
