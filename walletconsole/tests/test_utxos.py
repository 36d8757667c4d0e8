"""
Tests for UTXO status reconciliation and selection.
"""

from __future__ import annotations

import pytest

from walletconsole.indexer import IndexedUtxo, UtxoStatus
from walletconsole.utxos import (
    SelectedUtxo,
    UtxoSelection,
    attach_statuses,
    partition_utxos,
    to_utxo_inputs,
)

ADDRESS = "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"
TXID = "ab" * 32


def utxo(vout: int, satoshi: int = 1_000, **kwargs) -> IndexedUtxo:
    return IndexedUtxo(txid=TXID, vout=vout, satoshi=satoshi, address=ADDRESS, **kwargs)


def status(vout: int, value: str, is_spent: bool = False, is_locked: bool = False) -> UtxoStatus:
    return UtxoStatus(txid=TXID, vout=vout, status=value, is_spent=is_spent, is_locked=is_locked)


class TestAttachStatuses:
    """Tests for attach_statuses."""

    def test_joins_by_outpoint(self) -> None:
        joined = attach_statuses(
            [utxo(0), utxo(1)], {f"{TXID}:1": status(1, "spent", is_spent=True)}
        )
        assert joined[0].status is None
        assert joined[0].is_spent is False
        assert joined[1].status.status == "spent"
        assert joined[1].is_spent is True

    def test_missing_status_keeps_lock_hint(self) -> None:
        joined = attach_statuses([utxo(0, is_locked=True)])
        assert joined[0].is_locked is True
        assert joined[0].is_spent is False

    def test_status_lock(self) -> None:
        joined = attach_statuses([utxo(0)], {f"{TXID}:0": status(0, "locked", is_locked=True)})
        assert joined[0].is_locked is True


class TestPartition:
    """Tests for partition_utxos."""

    def test_buckets_and_totals(self) -> None:
        joined = attach_statuses(
            [
                utxo(0, 1_000),
                utxo(1, 2_000, inscriptions=["abc123i0"]),
                utxo(2, 3_000, runes=[{"name": "RUNE", "balance": "1"}]),
                utxo(3, 4_000),
                utxo(4, 5_000, is_locked=True),
            ],
            {f"{TXID}:3": status(3, "spent", is_spent=True)},
        )
        buckets = partition_utxos(joined)

        assert [u.vout for u in buckets.spendable] == [0]
        assert [u.vout for u in buckets.locked] == [1, 2, 4]
        assert [u.vout for u in buckets.spent] == [3]
        assert buckets.total_spendable == 1_000
        assert buckets.total_locked == 10_000
        assert buckets.total_spent == 4_000

    def test_spent_wins_over_assets(self) -> None:
        joined = attach_statuses(
            [utxo(0, inscriptions=["x"])], {f"{TXID}:0": status(0, "spent", is_spent=True)}
        )
        assert len(partition_utxos(joined).spent) == 1

    def test_empty(self) -> None:
        buckets = partition_utxos([])
        assert buckets.total_spendable == buckets.total_locked == buckets.total_spent == 0


class TestToUtxoInputs:
    """Tests for the hand-off to the builder."""

    def test_converts_records(self) -> None:
        inputs = to_utxo_inputs([utxo(0, 1_500, script_pk="0014" + "11" * 20)])
        assert inputs[0].txid == TXID
        assert inputs[0].value == 1_500
        assert inputs[0].address == ADDRESS
        assert inputs[0].script_pk == "0014" + "11" * 20

    def test_accepts_joined(self) -> None:
        inputs = to_utxo_inputs(attach_statuses([utxo(2)]))
        assert inputs[0].vout == 2
        assert inputs[0].script_pk is None


class TestUtxoSelection:
    """Tests for UtxoSelection."""

    @pytest.fixture
    def first(self) -> SelectedUtxo:
        return SelectedUtxo.from_utxo(utxo(0, 1_000))

    @pytest.fixture
    def second(self) -> SelectedUtxo:
        return SelectedUtxo.from_utxo(utxo(1, 2_000))

    def test_add_no_duplicates(self, first) -> None:
        selection = UtxoSelection()
        assert selection.add(first) is True
        assert selection.add(first) is False
        assert len(selection) == 1

    def test_remove(self, first, second) -> None:
        selection = UtxoSelection()
        selection.add(first)
        selection.add(second)
        selection.remove(first.outpoint)
        assert not selection.is_selected(first.outpoint)
        assert selection.is_selected(second.outpoint)
        selection.remove("missing:0")

    def test_toggle(self, first) -> None:
        selection = UtxoSelection()
        assert selection.toggle(first) is True
        assert selection.is_selected(first.outpoint)
        assert selection.toggle(first) is False
        assert not selection.is_selected(first.outpoint)

    def test_order_and_total(self, first, second) -> None:
        selection = UtxoSelection()
        selection.add(second)
        selection.add(first)
        assert [u.outpoint for u in selection] == [second.outpoint, first.outpoint]
        assert selection.total_value == 3_000

    def test_clear(self, first, second) -> None:
        selection = UtxoSelection()
        selection.add(first)
        selection.add(second)
        selection.clear()
        assert len(selection) == 0
        assert selection.total_value == 0

    def test_to_inputs(self, first, second) -> None:
        selection = UtxoSelection()
        selection.add(first)
        selection.add(second)
        inputs = selection.to_inputs()
        assert [(i.txid, i.vout, i.value) for i in inputs] == [(TXID, 0, 1_000), (TXID, 1, 2_000)]
