import asyncio
import json
import logging
import typing

import httpx

from civic_wallet.icp.exceptions.domain.authn import (
    InvalidTokenResponseError,
    NonceUnavailableError,
    TokenRejectedError,
)
from civic_wallet.icp.utils.httpx_client import HttpxClient
from civic_wallet.icp.utils.retries import (
    DEFAULT_POLL_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    poll_until_condition_met,
)
from civic_wallet.icp.value_objects.domain.authn import (
    Nonce,
    TokenExchangeAttempt,
    TokenRequest,
    TokenResponse,
)


def is_token_attempt_final(attempt: TokenExchangeAttempt) -> bool:
    # 4xx is a deterministic rejection of a single-use nonce, only 5xx and
    # transport failures are worth another attempt.
    return attempt.status_code is not None and attempt.status_code < 500


class CivicSignService:
    def __init__(
        self,
        nonce_endpoint: typing.Optional[str] = None,
        authenticate_endpoint: typing.Optional[str] = None,
        timeout: float = 10,
        logger: typing.Optional[logging.Logger] = None,
        transport: typing.Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.nonce_endpoint = nonce_endpoint
        self.authenticate_endpoint = authenticate_endpoint
        self.timeout = timeout
        self.logger = logger
        self.transport = transport

    async def get_nonce(self) -> Nonce:
        assert self.nonce_endpoint, "Nonce endpoint is not set"
        try:
            async with HttpxClient(
                timeout=self.timeout, logger=self.logger, transport=self.transport
            ) as http_client:
                response = await http_client.get(self.nonce_endpoint)
        except httpx.HTTPError as e:
            raise NonceUnavailableError(f"Nonce request failed: {e}")

        if response.status_code != 200:
            raise NonceUnavailableError(
                f"Nonce request failed. Response status: {response.status_code}"
            )
        try:
            body = response.json()
        except ValueError as e:
            raise NonceUnavailableError(f"Nonce response is not JSON: {e}")
        if (
            not isinstance(body, dict)
            or not isinstance(body.get("nonce"), str)
            or isinstance(body.get("timestamp"), bool)
            or not isinstance(body.get("timestamp"), int)
        ):
            raise NonceUnavailableError(f"Malformed nonce response: {body!r}")
        return Nonce(nonce=body["nonce"], timestamp=body["timestamp"])

    async def send_token_request(self, token_request: TokenRequest) -> TokenExchangeAttempt:
        assert self.authenticate_endpoint, "Authenticate endpoint is not set"
        headers = {"Content-Type": "application/json"}
        try:
            async with HttpxClient(
                timeout=self.timeout, logger=self.logger, transport=self.transport
            ) as http_client:
                response = await http_client.post(
                    self.authenticate_endpoint,
                    json.dumps(token_request.to_dict()),
                    headers,
                )
        except httpx.HTTPError as e:
            if self.logger:
                self.logger.debug(f"Token request failed: {type(e).__name__}: {e}")
            return TokenExchangeAttempt(error=f"{type(e).__name__}: {e}")

        try:
            body = response.json()
        except ValueError:
            body = response.text
        return TokenExchangeAttempt(status_code=response.status_code, body=body)

    async def get_auth_token(
        self,
        token_request: TokenRequest,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_POLL_ATTEMPTS,
        cancel_event: typing.Optional[asyncio.Event] = None,
    ) -> str:
        async def send_token_request() -> TokenExchangeAttempt:
            return await self.send_token_request(token_request)

        attempt = await poll_until_condition_met(
            send_token_request,
            is_token_attempt_final,
            interval=interval,
            max_attempts=max_attempts,
            logger=self.logger,
            cancel_event=cancel_event,
        )
        if attempt.status_code >= 400:
            raise TokenRejectedError(attempt.status_code, attempt.body)

        body = attempt.body
        if (
            not isinstance(body, dict)
            or not isinstance(body.get("token"), str)
            or not body["token"]
        ):
            raise InvalidTokenResponseError(f"Malformed token response: {body!r}")
        return TokenResponse.from_dict(body).token
