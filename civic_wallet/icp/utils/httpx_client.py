import logging
import typing

import httpx


class HttpxClient:
    def __init__(
        self,
        timeout: float = 10,
        logger: typing.Optional[logging.Logger] = None,
        transport: typing.Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client = None
        self.timeout = timeout
        self.logger = logger
        self.transport = transport

    async def __aenter__(self):
        self.client = httpx.AsyncClient(timeout=self.timeout, transport=self.transport)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.client.aclose()
        self.client = None

    async def get(
        self, url: str, headers=None, allow_redirects: bool = False
    ) -> httpx.Response:
        if self.client is None:
            raise RuntimeError("Client is closed")
        if self.logger:
            self.logger.debug(f"GET {url}")

        return await self.client.get(
            url, headers=headers, follow_redirects=allow_redirects
        )

    async def post(
        self, url: str, data=None, headers=None, allow_redirects: bool = False
    ) -> httpx.Response:
        if self.client is None:
            raise RuntimeError("Client is closed")
        if self.logger:
            self.logger.debug(f"POST {url}")

        return await self.client.post(
            url, content=data, headers=headers, follow_redirects=allow_redirects
        )
