"""
Raw transaction encoding and the PSBT (BIP-174, version 0) model.

Transactions are serialized here. PSBTs are modelled with only what an
unsigned hand-off needs (the global unsigned transaction, per-input
witness/non-witness UTXO records and final script fields) and encoded
through embit. Any other key/value pair is carried through untouched.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import io
import struct
from dataclasses import dataclass, field

from embit import psbt as embit_psbt
from embit import script as embit_script
from embit import transaction as embit_transaction

from psbtcore.constants import PSBT_MAGIC, SEQUENCE_FINAL, TX_LOCKTIME, TX_VERSION


class PSBTParseError(ValueError):
    """Serialized transaction or PSBT data is malformed."""


def varint(n: int) -> bytes:
    """Encode integer as Bitcoin varint (CompactSize)."""
    if n < 0xFD:
        return bytes([n])
    elif n <= 0xFFFF:
        return bytes([0xFD]) + struct.pack("<H", n)
    elif n <= 0xFFFFFFFF:
        return bytes([0xFE]) + struct.pack("<I", n)
    else:
        return bytes([0xFF]) + struct.pack("<Q", n)


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


class _Cursor:
    """Bounds-checked reader over serialized bytes."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def remaining(self) -> int:
        return len(self.data) - self.offset

    def read(self, n: int) -> bytes:
        if n < 0 or self.offset + n > len(self.data):
            raise PSBTParseError(f"Unexpected end of data at offset {self.offset} (need {n} bytes)")
        chunk = self.data[self.offset : self.offset + n]
        self.offset += n
        return chunk

    def peek(self, n: int) -> bytes:
        return self.data[self.offset : self.offset + n]

    def read_varint(self) -> int:
        first = self.read(1)[0]
        if first < 0xFD:
            return first
        elif first == 0xFD:
            return struct.unpack("<H", self.read(2))[0]
        elif first == 0xFE:
            return struct.unpack("<I", self.read(4))[0]
        else:
            return struct.unpack("<Q", self.read(8))[0]

    def read_bytes(self) -> bytes:
        return self.read(self.read_varint())

    def read_uint32(self) -> int:
        return struct.unpack("<I", self.read(4))[0]

    def read_uint64(self) -> int:
        return struct.unpack("<Q", self.read(8))[0]


@dataclass
class TxOut:
    value: int
    script: bytes

    def serialize(self) -> bytes:
        return struct.pack("<Q", self.value) + varint(len(self.script)) + self.script

    @classmethod
    def read_from(cls, cursor: _Cursor) -> TxOut:
        value = cursor.read_uint64()
        script = cursor.read_bytes()
        return cls(value=value, script=script)


@dataclass
class TxIn:
    """Transaction input. `hash` is the previous txid in little-endian order."""

    hash: bytes
    index: int
    script_sig: bytes = b""
    sequence: int = SEQUENCE_FINAL

    @property
    def txid(self) -> str:
        """Previous txid in big-endian display form."""
        return self.hash[::-1].hex()

    def serialize(self) -> bytes:
        result = self.hash + struct.pack("<I", self.index)
        result += varint(len(self.script_sig)) + self.script_sig
        result += struct.pack("<I", self.sequence)
        return result

    @classmethod
    def read_from(cls, cursor: _Cursor) -> TxIn:
        prev_hash = cursor.read(32)
        index = cursor.read_uint32()
        script_sig = cursor.read_bytes()
        sequence = cursor.read_uint32()
        return cls(hash=prev_hash, index=index, script_sig=script_sig, sequence=sequence)


@dataclass
class Transaction:
    version: int = TX_VERSION
    locktime: int = TX_LOCKTIME
    inputs: list[TxIn] = field(default_factory=list)
    outputs: list[TxOut] = field(default_factory=list)
    witnesses: list[list[bytes]] = field(default_factory=list)

    @property
    def has_witness(self) -> bool:
        return any(self.witnesses)

    def serialize(self, include_witness: bool = True) -> bytes:
        """Serialize transaction to bytes (witness encoding only when witnesses exist)."""
        segwit = include_witness and self.has_witness

        result = struct.pack("<I", self.version)
        if segwit:
            result += bytes([0x00, 0x01])

        result += varint(len(self.inputs))
        for inp in self.inputs:
            result += inp.serialize()

        result += varint(len(self.outputs))
        for out in self.outputs:
            result += out.serialize()

        if segwit:
            for i in range(len(self.inputs)):
                stack = self.witnesses[i] if i < len(self.witnesses) else []
                result += varint(len(stack))
                for item in stack:
                    result += varint(len(item)) + item

        result += struct.pack("<I", self.locktime)
        return result

    def txid(self) -> str:
        """Double SHA256 of the non-witness serialization, big-endian hex."""
        return hash256(self.serialize(include_witness=False))[::-1].hex()

    @classmethod
    def from_bytes(cls, data: bytes, allow_witness: bool = True) -> Transaction:
        cursor = _Cursor(data)
        tx = cls.read_from(cursor, allow_witness=allow_witness)
        if cursor.remaining():
            raise PSBTParseError(f"{cursor.remaining()} trailing bytes after transaction")
        return tx

    @classmethod
    def read_from(cls, cursor: _Cursor, allow_witness: bool = True) -> Transaction:
        version = cursor.read_uint32()

        segwit = False
        if allow_witness and cursor.peek(2) == bytes([0x00, 0x01]):
            cursor.read(2)
            segwit = True

        inputs = [TxIn.read_from(cursor) for _ in range(cursor.read_varint())]
        outputs = [TxOut.read_from(cursor) for _ in range(cursor.read_varint())]

        witnesses: list[list[bytes]] = []
        if segwit:
            for _ in inputs:
                witnesses.append([cursor.read_bytes() for _ in range(cursor.read_varint())])

        locktime = cursor.read_uint32()
        return cls(
            version=version,
            locktime=locktime,
            inputs=inputs,
            outputs=outputs,
            witnesses=witnesses,
        )


def parse_transaction(data: bytes) -> Transaction:
    """Parse a raw (legacy or segwit) transaction."""
    return Transaction.from_bytes(data)


@dataclass
class PSBTInput:
    witness_utxo: TxOut | None = None
    non_witness_utxo: bytes | None = None
    final_script_sig: bytes | None = None
    final_script_witness: bytes | None = None
    unknown: dict[bytes, bytes] = field(default_factory=dict)

    @property
    def is_finalized(self) -> bool:
        return self.final_script_sig is not None or self.final_script_witness is not None


@dataclass
class PSBTOutput:
    unknown: dict[bytes, bytes] = field(default_factory=dict)


def _to_embit_output(out: TxOut) -> embit_transaction.TransactionOutput:
    return embit_transaction.TransactionOutput(out.value, embit_script.Script(out.script))


def _to_embit(psbt: PSBT) -> embit_psbt.PSBT:
    tx = embit_transaction.Transaction(
        version=psbt.tx.version,
        vin=[
            embit_transaction.TransactionInput(inp.hash[::-1], inp.index, sequence=inp.sequence)
            for inp in psbt.tx.inputs
        ],
        vout=[_to_embit_output(out) for out in psbt.tx.outputs],
        locktime=psbt.tx.locktime,
    )
    encoded = embit_psbt.PSBT(tx)
    encoded.unknown = dict(psbt.global_unknown)

    for scope, inp in zip(encoded.inputs, psbt.inputs):
        if inp.non_witness_utxo is not None:
            scope.non_witness_utxo = embit_transaction.Transaction.parse(inp.non_witness_utxo)
        if inp.witness_utxo is not None:
            scope.witness_utxo = _to_embit_output(inp.witness_utxo)
        if inp.final_script_sig is not None:
            scope.final_scriptsig = embit_script.Script(inp.final_script_sig)
        if inp.final_script_witness is not None:
            scope.final_scriptwitness = embit_script.Witness.parse(inp.final_script_witness)
        scope.unknown = dict(inp.unknown)

    for scope, out in zip(encoded.outputs, psbt.outputs):
        scope.unknown = dict(out.unknown)
    return encoded


def _from_embit(decoded: embit_psbt.PSBT) -> PSBT:
    tx = Transaction.from_bytes(decoded.tx.serialize(), allow_witness=False)
    if not tx.inputs:
        raise PSBTParseError("PSBT has no unsigned transaction inputs")

    psbt = PSBT(tx)
    psbt.version = decoded.version or 0
    psbt.global_unknown = dict(decoded.unknown)

    for i, scope in enumerate(decoded.inputs):
        witness_utxo = None
        if scope.witness_utxo is not None:
            witness_utxo = TxOut(
                value=scope.witness_utxo.value, script=scope.witness_utxo.script_pubkey.data
            )
        psbt.inputs[i] = PSBTInput(
            witness_utxo=witness_utxo,
            non_witness_utxo=(
                scope.non_witness_utxo.serialize() if scope.non_witness_utxo is not None else None
            ),
            final_script_sig=(
                scope.final_scriptsig.data if scope.final_scriptsig is not None else None
            ),
            final_script_witness=(
                scope.final_scriptwitness.serialize()
                if scope.final_scriptwitness is not None
                else None
            ),
            unknown=dict(scope.unknown),
        )

    for i, scope in enumerate(decoded.outputs):
        psbt.outputs[i] = PSBTOutput(unknown=dict(scope.unknown))
    return psbt


class PSBT:
    """
    Partially signed transaction under construction.

    Inputs and outputs are appended in place; the unsigned transaction and
    the per-input/per-output maps always stay the same length. The BIP-174
    key/value encoding is delegated to embit.
    """

    def __init__(self, tx: Transaction | None = None):
        self.tx = tx if tx is not None else Transaction()
        self.inputs: list[PSBTInput] = [PSBTInput() for _ in self.tx.inputs]
        self.outputs: list[PSBTOutput] = [PSBTOutput() for _ in self.tx.outputs]
        self.version = 0
        self.global_unknown: dict[bytes, bytes] = {}

    @property
    def tx_inputs(self) -> list[TxIn]:
        return self.tx.inputs

    @property
    def tx_outputs(self) -> list[TxOut]:
        return self.tx.outputs

    def add_input(
        self,
        prev_hash: bytes,
        index: int,
        witness_utxo: TxOut | None = None,
        sequence: int = SEQUENCE_FINAL,
    ) -> None:
        """Append an input spending `prev_hash:index` (hash in little-endian order)."""
        if len(prev_hash) != 32:
            raise ValueError(f"Previous txid must be 32 bytes, got {len(prev_hash)}")
        if index < 0 or index > 0xFFFFFFFF:
            raise ValueError(f"Output index out of range: {index}")
        self.tx.inputs.append(TxIn(hash=prev_hash, index=index, sequence=sequence))
        self.inputs.append(PSBTInput(witness_utxo=witness_utxo))

    def add_output(self, script: bytes, value: int) -> None:
        if value < 0:
            raise ValueError(f"Output value must be non-negative, got {value}")
        self.tx.outputs.append(TxOut(value=value, script=script))
        self.outputs.append(PSBTOutput())

    def is_finalized(self) -> bool:
        return bool(self.inputs) and all(inp.is_finalized for inp in self.inputs)

    def serialize(self) -> bytes:
        return _to_embit(self).serialize()

    def to_hex(self) -> str:
        return self.serialize().hex()

    def to_base64(self) -> str:
        return base64.b64encode(self.serialize()).decode("ascii")

    @classmethod
    def from_bytes(cls, data: bytes) -> PSBT:
        if not data.startswith(PSBT_MAGIC):
            raise PSBTParseError("Missing PSBT magic bytes")

        stream = io.BytesIO(data)
        try:
            decoded = embit_psbt.PSBT.read_from(stream)
        except Exception as e:
            raise PSBTParseError(f"Malformed PSBT: {e}") from e

        trailing = len(data) - stream.tell()
        if trailing:
            raise PSBTParseError(f"{trailing} trailing bytes after PSBT")
        return _from_embit(decoded)

    @classmethod
    def from_hex(cls, text: str) -> PSBT:
        try:
            data = bytes.fromhex(text.strip())
        except ValueError as e:
            raise PSBTParseError(f"Invalid hex: {e}") from e
        return cls.from_bytes(data)

    @classmethod
    def from_base64(cls, text: str) -> PSBT:
        try:
            data = base64.b64decode(text.strip(), validate=True)
        except binascii.Error as e:
            raise PSBTParseError(f"Invalid base64: {e}") from e
        return cls.from_bytes(data)
