# -*- coding: utf-8 -*-

"""REST client for the Ark round coordinator."""

import json
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Mapping, Optional, Sequence, Union

import aiohttp

from arkadex.client.events import SettlementEvent, parse_settlement_event
from arkadex.client.rest import ProviderError, RestClient


@dataclass
class ArkInfo:
    signer_pubkey: str
    forfeit_pubkey: str
    forfeit_address: str
    network: str
    dust: int = 0
    vtxo_tree_expiry: int = 0
    unilateral_exit_delay: int = 0
    boarding_exit_delay: int = 0
    version: str = ""

    @classmethod
    def from_json(cls, data: dict) -> "ArkInfo":
        signer_pubkey = data.get("signerPubkey") or data.get("pubkey")
        missing = [
            name
            for name, value in (
                ("signerPubkey", signer_pubkey),
                ("forfeitPubkey", data.get("forfeitPubkey")),
                ("forfeitAddress", data.get("forfeitAddress")),
            )
            if not value
        ]
        if missing:
            raise ProviderError(f"server info is missing {', '.join(missing)}")
        # int64 fields arrive as JSON strings
        return cls(
            signer_pubkey=signer_pubkey,
            forfeit_pubkey=data["forfeitPubkey"],
            forfeit_address=data["forfeitAddress"],
            network=data.get("network", ""),
            dust=int(data.get("dust") or 0),
            vtxo_tree_expiry=int(data.get("vtxoTreeExpiry") or 0),
            unilateral_exit_delay=int(data.get("unilateralExitDelay") or 0),
            boarding_exit_delay=int(data.get("boardingExitDelay") or 0),
            version=data.get("version", ""),
        )


def _encode_hex_map(values: Mapping[str, Union[bytes, str]]) -> str:
    return json.dumps({key: value.hex() if isinstance(value, bytes) else value for key, value in values.items()})


class ArkProvider(RestClient):
    async def get_info(self) -> ArkInfo:
        data = await self.get_json("/v1/info", "get server info")
        return ArkInfo.from_json(data)

    async def confirm_registration(self, intent_id: str):
        await self.post_json("/v1/batch/ack", {"intentId": intent_id}, "confirm registration")

    async def submit_tree_nonces(self, batch_id: str, pubkey: str, nonces: Mapping[str, Union[bytes, str]]):
        body = {"batchId": batch_id, "pubkey": pubkey, "treeNonces": _encode_hex_map(nonces)}
        await self.post_json("/v1/batch/tree/submitNonces", body, "submit tree nonces")

    async def submit_tree_signatures(self, batch_id: str, pubkey: str, signatures: Mapping[str, Union[bytes, str]]):
        body = {"batchId": batch_id, "pubkey": pubkey, "treeSignatures": _encode_hex_map(signatures)}
        await self.post_json("/v1/batch/tree/submitSignatures", body, "submit tree signatures")

    async def submit_signed_forfeit_txs(self, signed_forfeit_txs: Sequence[str], signed_commitment_tx: Optional[str] = None):
        body: Dict[str, object] = {"signedForfeitTxs": list(signed_forfeit_txs)}
        if signed_commitment_tx:
            body["signedCommitmentTx"] = signed_commitment_tx
        await self.post_json("/v1/batch/submitForfeitTxs", body, "submit forfeit transactions")

    async def get_event_stream(self, topics: Sequence[str] = ()) -> AsyncIterator[SettlementEvent]:
        """Yield settlement events until the server closes the stream.

        The stream carries one JSON message per line.  The request has no
        total timeout since a round can last longer than any single call.
        """
        url = self.url("/v1/batch/events")
        params = [("topics", topic) for topic in topics]
        timeout = aiohttp.ClientTimeout(total=None)
        self.logger.info(f"subscribing to {url}")
        try:
            async with self.session().get(url, params=params, timeout=timeout) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise ProviderError(f"failed to open event stream: HTTP {response.status} {text}")
                async for line in response.content:
                    line = line.strip()
                    if not line:
                        continue
                    event = self._parse_line(line)
                    if event is not None:
                        yield event
        except aiohttp.ClientError as e:
            raise ProviderError(f"event stream failed: {e}") from e

    def _parse_line(self, line: bytes) -> Optional[SettlementEvent]:
        try:
            message = json.loads(line)
        except ValueError as e:
            raise ProviderError(f"invalid event stream message: {line[:80]!r}") from e
        if not isinstance(message, dict):
            raise ProviderError(f"invalid event stream message: {line[:80]!r}")
        if message.get("error"):
            raise ProviderError(f"event stream error: {message['error']}")
        result = message.get("result")
        if not isinstance(result, dict):
            self.logger.debug(f"ignoring stream message without result: {line[:80]!r}")
            return None
        try:
            event = parse_settlement_event(result)
        except ValueError as e:
            raise ProviderError(str(e)) from e
        if event is None:
            self.logger.debug(f"ignoring stream message {list(result)}")
        return event
