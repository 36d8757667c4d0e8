"""
Tests for the UTXO indexer client and its response decoding.
"""

from __future__ import annotations

import json

import httpx
import pytest

from walletconsole.indexer import (
    IndexedUtxo,
    IndexerAPIError,
    IndexerClient,
    IndexerError,
    StatusEnvelope,
    UnrecognizedResponseShape,
    UtxoEnvelope,
    classify_status_envelope,
    classify_utxo_envelope,
    decode_utxo_list,
    decode_utxo_status,
    format_outpoint,
    parse_outpoint,
)

ADDRESS = "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"
TXID = "ab" * 32
TXID_2 = "cd" * 32

RECORD = {
    "txid": TXID,
    "vout": 0,
    "satoshi": 10_000,
    "address": ADDRESS,
    "scriptPk": "0014751e76e8199196d454941c45d1b3a323f1433bd6",
}


class TestOutpoints:
    """Tests for outpoint helpers."""

    def test_format(self) -> None:
        assert format_outpoint(TXID, 3) == f"{TXID}:3"

    def test_parse(self) -> None:
        assert parse_outpoint(f"{TXID}:3") == (TXID, 3)

    def test_parse_missing_vout(self) -> None:
        assert parse_outpoint(TXID) == (TXID, 0)


class TestIndexedUtxo:
    """Tests for record normalization."""

    def test_field_variants(self) -> None:
        utxo = IndexedUtxo.model_validate({"txId": TXID, "vOut": "2", "value": 500})
        assert (utxo.txid, utxo.vout, utxo.satoshi) == (TXID, 2, 500)
        assert utxo.outpoint == f"{TXID}:2"

    def test_nulls_become_defaults(self) -> None:
        utxo = IndexedUtxo.model_validate(
            {"txid": TXID, "vout": 0, "satoshi": None, "scriptPk": None, "inscriptions": None}
        )
        assert utxo.satoshi == 0
        assert utxo.script_pk == ""
        assert utxo.inscriptions == []


class TestUtxoListDecoding:
    """Tests for each UTXO list envelope."""

    def test_bare_list(self) -> None:
        assert classify_utxo_envelope([RECORD]) == UtxoEnvelope.BARE_LIST
        utxos = decode_utxo_list([RECORD], ADDRESS)
        assert utxos[0].satoshi == 10_000
        assert utxos[0].script_pk == RECORD["scriptPk"]

    def test_coded(self) -> None:
        raw = {
            "code": 0,
            "msg": "ok",
            "data": {
                "availableUtxos": [RECORD],
                "lockedUtxos": [{"txid": TXID_2, "vout": 1}],
            },
        }
        assert classify_utxo_envelope(raw) == UtxoEnvelope.CODED
        available, locked = decode_utxo_list(raw, ADDRESS)

        assert available.is_locked is False
        assert locked.txid == TXID_2
        assert locked.satoshi == 0
        assert locked.address == ADDRESS
        assert locked.is_locked is True

    def test_coded_missing_lists(self) -> None:
        assert decode_utxo_list({"code": 0, "data": {}}, ADDRESS) == []

    def test_coded_error(self) -> None:
        with pytest.raises(IndexerAPIError, match="address not found") as exc_info:
            decode_utxo_list({"code": 1001, "msg": "address not found"}, ADDRESS)
        assert exc_info.value.code == 1001

    def test_coded_error_without_message(self) -> None:
        with pytest.raises(IndexerAPIError, match=r"API error \(code: 5\)"):
            decode_utxo_list({"code": 5}, ADDRESS)

    def test_coded_bad_data(self) -> None:
        with pytest.raises(UnrecognizedResponseShape):
            decode_utxo_list({"code": 0, "data": []}, ADDRESS)

    def test_success_wrapped(self) -> None:
        raw = {"success": True, "data": [RECORD]}
        assert classify_utxo_envelope(raw) == UtxoEnvelope.SUCCESS_WRAPPED
        assert len(decode_utxo_list(raw, ADDRESS)) == 1

    def test_failure(self) -> None:
        raw = {"success": False, "error": "rate limited"}
        assert classify_utxo_envelope(raw) == UtxoEnvelope.FAILURE
        with pytest.raises(IndexerAPIError, match="rate limited"):
            decode_utxo_list(raw, ADDRESS)

    @pytest.mark.parametrize("key", ["data", "utxos", "results"])
    def test_keyed_list(self, key: str) -> None:
        raw = {key: [RECORD]}
        assert classify_utxo_envelope(raw) == UtxoEnvelope.KEYED_LIST
        assert decode_utxo_list(raw, ADDRESS)[0].txid == TXID

    def test_missing_address_filled(self) -> None:
        record = {k: v for k, v in RECORD.items() if k != "address"}
        assert decode_utxo_list([record], ADDRESS)[0].address == ADDRESS

    @pytest.mark.parametrize("raw", [None, "text", 42, {"unexpected": True}, {"data": {}}])
    def test_unrecognized(self, raw) -> None:
        with pytest.raises(UnrecognizedResponseShape):
            decode_utxo_list(raw, ADDRESS)

    def test_malformed_record(self) -> None:
        with pytest.raises(IndexerError, match="Malformed UTXO record"):
            decode_utxo_list([{"vout": 0}], ADDRESS)


class TestStatusDecoding:
    """Tests for each status envelope."""

    def test_available(self) -> None:
        raw = {"code": 0, "data": {"available": True}}
        assert classify_status_envelope(raw) == StatusEnvelope.CODED
        status = decode_utxo_status(raw, TXID, 0)
        assert status.status == "unspent"
        assert status.is_spent is False
        assert status.is_locked is False

    @pytest.mark.parametrize("reason", ["utxo locked by listing", "in auction"])
    def test_market_locked(self, reason: str) -> None:
        raw = {"code": 0, "data": {"available": False, "reason": reason}}
        status = decode_utxo_status(raw, TXID, 0)
        assert status.status == "locked"
        assert status.is_spent is False
        assert status.is_locked is True

    def test_pending(self) -> None:
        raw = {"code": 0, "data": {"available": False, "reason": "in mempool"}}
        status = decode_utxo_status(raw, TXID, 0)
        assert status.status == "pending"
        assert status.is_spent is True

    def test_spent(self) -> None:
        status = decode_utxo_status({"code": 0, "data": {"available": False}}, TXID, 1)
        assert status.status == "spent"
        assert status.is_spent is True
        assert status.vout == 1

    def test_coded_error(self) -> None:
        with pytest.raises(IndexerAPIError, match="bad outpoint"):
            decode_utxo_status({"code": 2, "message": "bad outpoint"}, TXID, 0)

    def test_success_wrapped(self) -> None:
        raw = {"success": True, "data": {"status": "spent", "isSpent": True}}
        assert classify_status_envelope(raw) == StatusEnvelope.SUCCESS_WRAPPED
        status = decode_utxo_status(raw, TXID, 0)
        assert status.status == "spent"
        assert status.is_spent is True
        assert status.txid == TXID

    def test_direct(self) -> None:
        raw = {"txid": TXID, "vout": 4, "status": "locked", "isSpent": False, "isLocked": True}
        assert classify_status_envelope(raw) == StatusEnvelope.DIRECT
        status = decode_utxo_status(raw, TXID, 4)
        assert status.is_locked is True

    @pytest.mark.parametrize("raw", [None, [], {"foo": 1}, {"success": True, "data": None}])
    def test_unrecognized(self, raw) -> None:
        with pytest.raises(UnrecognizedResponseShape):
            decode_utxo_status(raw, TXID, 0)

    def test_unknown_status_value(self) -> None:
        with pytest.raises(IndexerError, match="Malformed status record"):
            decode_utxo_status({"status": "burned"}, TXID, 0)


def make_client(handler, secret_token: str = "secret") -> IndexerClient:
    transport = httpx.MockTransport(handler)
    return IndexerClient(
        "https://indexer.test/",
        secret_token=secret_token,
        client=httpx.AsyncClient(transport=transport),
    )


class TestIndexerClient:
    """Tests for IndexerClient over a mock transport."""

    @pytest.mark.asyncio
    async def test_get_utxos_request(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"code": 0, "data": {"availableUtxos": [RECORD]}})

        async with make_client(handler) as client:
            utxos = await client.get_utxos(f"  {ADDRESS} ")

        assert len(utxos) == 1
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://indexer.test/market/v1/brc20/utxos"
        assert json.loads(request.content) == {"address": ADDRESS}
        assert request.headers["X-Custom-Secret"] == "secret"
        assert request.headers["X-Requested-With"] == "XMLHttpRequest"
        assert request.headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_no_secret_header_without_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        async with make_client(handler, secret_token="") as client:
            await client.get_utxos(ADDRESS)
        assert "X-Custom-Secret" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_empty_address(self) -> None:
        async with make_client(lambda request: httpx.Response(200, json=[])) as client:
            with pytest.raises(ValueError, match="Address is required"):
                await client.get_utxos("   ")

    @pytest.mark.asyncio
    async def test_http_error_with_json_message(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "invalid secret"})

        async with make_client(handler) as client:
            with pytest.raises(IndexerError, match="invalid secret") as exc_info:
                await client.get_utxos(ADDRESS)
        assert exc_info.value.status == 401
        assert exc_info.value.details == {"error": "invalid secret"}

    @pytest.mark.asyncio
    async def test_http_error_without_json(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        async with make_client(handler) as client:
            with pytest.raises(IndexerError, match="API error: 502") as exc_info:
                await client.get_utxos(ADDRESS)
        assert exc_info.value.details is None

    @pytest.mark.asyncio
    async def test_invalid_json_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>")

        async with make_client(handler) as client:
            with pytest.raises(IndexerError, match="Invalid JSON response"):
                await client.get_utxos(ADDRESS)

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(IndexerError, match="connection refused"):
                await client.get_utxos(ADDRESS)

    @pytest.mark.asyncio
    async def test_get_utxo_status_url(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"code": 0, "data": {"available": True}})

        async with make_client(handler) as client:
            status = await client.get_utxo_status(TXID, 7, ADDRESS)

        assert status.status == "unspent"
        assert seen[0].url.path == f"/market/v1/brc20/utxos/{TXID}/7/status"
        assert json.loads(seen[0].content) == {"address": ADDRESS}

    @pytest.mark.asyncio
    async def test_get_utxo_status_requires_arguments(self) -> None:
        async with make_client(lambda request: httpx.Response(200, json={})) as client:
            with pytest.raises(ValueError):
                await client.get_utxo_status("", 0, ADDRESS)

    @pytest.mark.asyncio
    async def test_batch_status_omits_failures(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if f"/{TXID_2}/" in request.url.path:
                return httpx.Response(500, json={"error": "boom"})
            return httpx.Response(200, json={"code": 0, "data": {"available": True}})

        utxos = [
            IndexedUtxo(txid=TXID, vout=0, address=ADDRESS),
            IndexedUtxo(txid=TXID_2, vout=1, address=ADDRESS),
        ]
        async with make_client(handler) as client:
            statuses = await client.batch_get_utxo_status(utxos)

        assert list(statuses) == [f"{TXID}:0"]

    @pytest.mark.asyncio
    async def test_batch_status_in_batches(self) -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return httpx.Response(200, json={"code": 0, "data": {"available": True}})

        utxos = [IndexedUtxo(txid=TXID, vout=i, address=ADDRESS) for i in range(25)]
        async with make_client(handler) as client:
            statuses = await client.batch_get_utxo_status(utxos, batch_size=10)

        assert len(calls) == 25
        assert len(statuses) == 25

    @pytest.mark.asyncio
    async def test_batch_size_validated(self) -> None:
        async with make_client(lambda request: httpx.Response(200, json={})) as client:
            with pytest.raises(ValueError):
                await client.batch_get_utxo_status([], batch_size=0)
