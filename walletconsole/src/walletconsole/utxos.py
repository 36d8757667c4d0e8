"""
UTXO status reconciliation and selection.

Indexer records are joined with their fetched statuses, sorted into
spendable / locked / spent buckets, and the user's selection is turned into
builder inputs.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from psbtcore.models import UtxoInput

from walletconsole.indexer import IndexedUtxo, UtxoStatus, parse_outpoint


@dataclass
class UtxoWithStatus:
    utxo: IndexedUtxo
    status: UtxoStatus | None = None
    is_spent: bool = False
    is_locked: bool = False

    @property
    def txid(self) -> str:
        return self.utxo.txid

    @property
    def vout(self) -> int:
        return self.utxo.vout

    @property
    def value(self) -> int:
        return self.utxo.satoshi

    @property
    def outpoint(self) -> str:
        return self.utxo.outpoint

    @property
    def carries_assets(self) -> bool:
        """Output holds inscriptions or runes and must not be spent as plain sats."""
        return bool(self.utxo.inscriptions or self.utxo.runes)


@dataclass
class UtxoBuckets:
    spendable: list[UtxoWithStatus] = field(default_factory=list)
    locked: list[UtxoWithStatus] = field(default_factory=list)
    spent: list[UtxoWithStatus] = field(default_factory=list)

    @property
    def total_spendable(self) -> int:
        return sum(u.value for u in self.spendable)

    @property
    def total_locked(self) -> int:
        return sum(u.value for u in self.locked)

    @property
    def total_spent(self) -> int:
        return sum(u.value for u in self.spent)


def attach_statuses(
    utxos: Iterable[IndexedUtxo], status_map: Mapping[str, UtxoStatus] | None = None
) -> list[UtxoWithStatus]:
    """
    Join indexer records with their statuses by outpoint.

    A record without a status is treated as unspent and keeps the lock hint
    the indexer attached to it.
    """
    status_map = status_map or {}
    joined = []
    for utxo in utxos:
        status = status_map.get(utxo.outpoint)
        if status is None:
            joined.append(UtxoWithStatus(utxo=utxo, is_locked=utxo.is_locked))
        else:
            joined.append(
                UtxoWithStatus(
                    utxo=utxo,
                    status=status,
                    is_spent=status.is_spent,
                    is_locked=status.is_locked or utxo.is_locked,
                )
            )
    return joined


def partition_utxos(utxos: Iterable[UtxoWithStatus]) -> UtxoBuckets:
    buckets = UtxoBuckets()
    for utxo in utxos:
        if utxo.is_spent:
            buckets.spent.append(utxo)
        elif utxo.is_locked or utxo.carries_assets:
            buckets.locked.append(utxo)
        else:
            buckets.spendable.append(utxo)
    return buckets


def to_utxo_inputs(utxos: Iterable[IndexedUtxo | UtxoWithStatus]) -> list[UtxoInput]:
    """Convert indexer records into builder inputs."""
    inputs = []
    for item in utxos:
        utxo = item.utxo if isinstance(item, UtxoWithStatus) else item
        inputs.append(
            UtxoInput(
                txid=utxo.txid,
                vout=utxo.vout,
                value=utxo.satoshi,
                address=utxo.address,
                script_pk=utxo.script_pk or None,
            )
        )
    return inputs


@dataclass(frozen=True)
class SelectedUtxo:
    outpoint: str
    value: int
    address: str
    script_pk: str = ""

    @classmethod
    def from_utxo(cls, utxo: IndexedUtxo | UtxoWithStatus) -> SelectedUtxo:
        record = utxo.utxo if isinstance(utxo, UtxoWithStatus) else utxo
        return cls(
            outpoint=record.outpoint,
            value=record.satoshi,
            address=record.address,
            script_pk=record.script_pk,
        )


class UtxoSelection:
    """Ordered set of UTXOs chosen for spending, keyed by outpoint."""

    def __init__(self) -> None:
        self._selected: dict[str, SelectedUtxo] = {}

    def __len__(self) -> int:
        return len(self._selected)

    def __iter__(self):
        return iter(self._selected.values())

    @property
    def selected(self) -> list[SelectedUtxo]:
        return list(self._selected.values())

    def add(self, utxo: SelectedUtxo) -> bool:
        """Select a UTXO. Returns False if it was already selected."""
        if utxo.outpoint in self._selected:
            return False
        self._selected[utxo.outpoint] = utxo
        return True

    def remove(self, outpoint: str) -> None:
        self._selected.pop(outpoint, None)

    def toggle(self, utxo: SelectedUtxo) -> bool:
        """Flip the selection state. Returns True if now selected."""
        if self.is_selected(utxo.outpoint):
            self.remove(utxo.outpoint)
            return False
        self.add(utxo)
        return True

    def clear(self) -> None:
        self._selected.clear()

    def is_selected(self, outpoint: str) -> bool:
        return outpoint in self._selected

    @property
    def total_value(self) -> int:
        return sum(u.value for u in self._selected.values())

    def to_inputs(self) -> list[UtxoInput]:
        inputs = []
        for utxo in self._selected.values():
            txid, vout = parse_outpoint(utxo.outpoint)
            inputs.append(
                UtxoInput(
                    txid=txid,
                    vout=vout,
                    value=utxo.value,
                    address=utxo.address,
                    script_pk=utxo.script_pk or None,
                )
            )
        return inputs
