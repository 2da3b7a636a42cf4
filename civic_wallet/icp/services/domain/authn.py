import asyncio
import logging
import time
import typing
from dataclasses import dataclass

from civic_wallet.icp.exceptions.domain.authn import AuthenticationFailedError
from civic_wallet.icp.value_objects.domain.authn import Principal


class AuthClient(typing.Protocol):
    async def login(self, identity_provider: str) -> Principal:
        ...


@dataclass
class AuthSession:
    principal: typing.Optional[Principal] = None
    authenticated_at: typing.Optional[int] = None

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None

    def start(self, principal: Principal) -> None:
        self.principal = principal
        self.authenticated_at = int(time.time())

    def clear(self) -> None:
        self.principal = None
        self.authenticated_at = None


class PrincipalService:
    def __init__(
        self,
        identity_provider_url: typing.Optional[str] = None,
        auth_client: typing.Optional[AuthClient] = None,
        session: typing.Optional[AuthSession] = None,
        logger: typing.Optional[logging.Logger] = None,
    ):
        self.identity_provider_url = identity_provider_url
        self.auth_client = auth_client
        self.session = session if session is not None else AuthSession()
        self.logger = logger
        self._login_lock = asyncio.Lock()

    async def request_principal(self) -> Principal:
        """Return the session principal, logging in through the provider once.

        A failed or cancelled login raises ``AuthenticationFailedError`` and is
        never retried here.
        """
        async with self._login_lock:
            if self.session.principal is not None:
                return self.session.principal

            assert self.identity_provider_url, "Identity provider URL is not set"
            assert self.auth_client, "Auth client is not set"
            try:
                principal = await self.auth_client.login(self.identity_provider_url)
            except AuthenticationFailedError as e:
                if self.logger:
                    self.logger.error(f"Login failed: {e}")
                raise

            self.session.start(principal)
            if self.logger:
                self.logger.debug(f"Logged in as {principal}")
            return principal

    def logout(self) -> None:
        if self.logger and self.session.principal is not None:
            self.logger.debug(f"Logging out {self.session.principal}")
        self.session.clear()
