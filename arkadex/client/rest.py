# -*- coding: utf-8 -*-

"""Shared JSON-over-HTTP plumbing for the coordinator and introspector clients."""

import asyncio
import json

import aiohttp

from arkadex.lib import util


class ProviderError(Exception):
    pass


class RestClient:
    """Holds one aiohttp session per server; usable as an async context manager."""

    def __init__(self, server_url: str, timeout: float = 30, session: aiohttp.ClientSession = None):
        self.logger = util.class_logger(__name__, self.__class__.__name__)
        self.server_url = server_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        await self.close()

    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self):
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    def url(self, path: str) -> str:
        return f"{self.server_url}{path}"

    async def get_json(self, path: str, what: str) -> dict:
        return await self._request("GET", path, None, what)

    async def post_json(self, path: str, body: dict, what: str) -> dict:
        return await self._request("POST", path, body, what)

    async def _request(self, method, path, body, what):
        url = self.url(path)
        self.logger.debug(f"{method} {url}")
        try:
            async with self.session().request(method, url, json=body) as response:
                text = await response.text()
                if response.status >= 400:
                    raise ProviderError(f"failed to {what}: HTTP {response.status} {text}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError(f"failed to {what}: {e}") from e

        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except ValueError as e:
            raise ProviderError(f"failed to {what}: invalid JSON response") from e
        if not isinstance(data, dict):
            raise ProviderError(f"failed to {what}: expected a JSON object")
        return data
