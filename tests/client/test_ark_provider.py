import asyncio
import json

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from arkadex.client import ArkInfo, ArkProvider, ProviderError
from arkadex.client.events import BatchFinalizedEvent, BatchStartedEvent

INFO = {
    "signerPubkey": "02" + "11" * 32,
    "forfeitPubkey": "03" + "22" * 32,
    "forfeitAddress": "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4",
    "network": "bitcoin",
    "dust": "330",
    "vtxoTreeExpiry": "604672",
    "unilateralExitDelay": "86528",
    "boardingExitDelay": "7776256",
    "version": "v0.8.0",
}


class ArkServer:
    """In-process stand-in for the coordinator's REST gateway."""

    def __init__(self):
        self.requests = []
        self.events = []
        self.app = web.Application()
        self.app.router.add_get("/v1/info", self.info)
        self.app.router.add_post("/v1/batch/ack", self.record)
        self.app.router.add_post("/v1/batch/tree/submitNonces", self.record)
        self.app.router.add_post("/v1/batch/tree/submitSignatures", self.record)
        self.app.router.add_post("/v1/batch/submitForfeitTxs", self.record)
        self.app.router.add_get("/v1/batch/events", self.event_stream)

    async def info(self, request):
        return web.json_response(INFO)

    async def record(self, request):
        self.requests.append((request.path, await request.json()))
        return web.json_response({})

    async def event_stream(self, request):
        self.requests.append((request.path, request.query.getall("topics", [])))
        response = web.StreamResponse()
        await response.prepare(request)
        for event in self.events:
            await response.write(json.dumps(event).encode() + b"\n")
        await response.write_eof()
        return response


def run_with_server(server, test):
    async def main():
        test_server = TestServer(server.app)
        await test_server.start_server()
        try:
            async with ArkProvider(f"http://{test_server.host}:{test_server.port}/") as provider:
                return await test(provider)
        finally:
            await test_server.close()

    return asyncio.run(main())


def test_get_info():
    async def test(provider):
        return await provider.get_info()

    info = run_with_server(ArkServer(), test)
    assert info == ArkInfo(
        signer_pubkey=INFO["signerPubkey"],
        forfeit_pubkey=INFO["forfeitPubkey"],
        forfeit_address=INFO["forfeitAddress"],
        network="bitcoin",
        dust=330,
        vtxo_tree_expiry=604672,
        unilateral_exit_delay=86528,
        boarding_exit_delay=7776256,
        version="v0.8.0",
    )


def test_info_requires_forfeit_fields():
    with pytest.raises(ProviderError):
        ArkInfo.from_json({"signerPubkey": "02" + "11" * 32, "forfeitAddress": "bc1q"})
    info = ArkInfo.from_json({"pubkey": "02aa", "forfeitPubkey": "03bb", "forfeitAddress": "bc1q"})
    assert info.signer_pubkey == "02aa"


def test_batch_requests():
    server = ArkServer()

    async def test(provider):
        await provider.confirm_registration("intent-1")
        await provider.submit_tree_nonces("b1", "02aa", {"txid1": b"\x01\x02"})
        await provider.submit_tree_signatures("b1", "02aa", {"txid1": "ff"})
        await provider.submit_signed_forfeit_txs(["f1", "f2"], "commitment")
        await provider.submit_signed_forfeit_txs(["f3"])
        await provider.submit_signed_forfeit_txs(["f4"], "")

    run_with_server(server, test)
    assert server.requests == [
        ("/v1/batch/ack", {"intentId": "intent-1"}),
        ("/v1/batch/tree/submitNonces", {"batchId": "b1", "pubkey": "02aa", "treeNonces": '{"txid1": "0102"}'}),
        ("/v1/batch/tree/submitSignatures", {"batchId": "b1", "pubkey": "02aa", "treeSignatures": '{"txid1": "ff"}'}),
        ("/v1/batch/submitForfeitTxs", {"signedForfeitTxs": ["f1", "f2"], "signedCommitmentTx": "commitment"}),
        ("/v1/batch/submitForfeitTxs", {"signedForfeitTxs": ["f3"]}),
        ("/v1/batch/submitForfeitTxs", {"signedForfeitTxs": ["f4"]}),
    ]


def test_event_stream():
    server = ArkServer()
    server.events = [
        {"result": {"heartbeat": {}}},
        {"result": {"batchStarted": {"id": "b1", "intentIdHashes": ["aa"], "batchExpiry": "512"}}},
        {"result": {"batchFinalized": {"id": "b1", "commitmentTxid": "cd" * 32}}},
    ]

    async def test(provider):
        return [event async for event in provider.get_event_stream(["topic-a", "topic-b"])]

    events = run_with_server(server, test)
    assert events == [BatchStartedEvent("b1", ["aa"], 512), BatchFinalizedEvent("b1", "cd" * 32)]
    assert server.requests == [("/v1/batch/events", ["topic-a", "topic-b"])]


def test_event_stream_error():
    server = ArkServer()
    server.events = [{"error": {"code": 2, "message": "stream reset"}}]

    async def test(provider):
        return [event async for event in provider.get_event_stream()]

    with pytest.raises(ProviderError):
        run_with_server(server, test)


def test_http_errors():
    async def fail(request):
        return web.Response(status=500, text="internal error")

    server = ArkServer()
    server.app.router.add_post("/v1/batch/fail", fail)

    async def test(provider):
        await provider.post_json("/v1/batch/fail", {}, "fail")

    with pytest.raises(ProviderError, match="internal error"):
        run_with_server(server, test)


def test_connection_errors():
    async def main():
        # nothing listens on the discard port
        async with ArkProvider("http://127.0.0.1:9", timeout=5) as provider:
            await provider.get_info()

    with pytest.raises(ProviderError):
        asyncio.run(main())
