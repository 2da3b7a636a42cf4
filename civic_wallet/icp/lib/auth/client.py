import asyncio
import logging
import secrets
import socket
import typing
import urllib.parse
import webbrowser

from aiohttp import web

from civic_wallet.icp.exceptions.domain.authn import (
    AuthenticationFailedError,
    InvalidPrincipalError,
)
from civic_wallet.icp.value_objects.domain.authn import Principal

CALLBACK_PATH = "/callback"


def build_login_url(identity_provider: str, redirect_uri: str, state: str) -> str:
    query = urllib.parse.urlencode({"redirect_uri": redirect_uri, "state": state})
    separator = "&" if "?" in identity_provider else "?"
    return f"{identity_provider}{separator}{query}"


class LoopbackAuthClient:
    """Runs the identity provider redirect handshake against a loopback server.

    The provider is opened with ``redirect_uri`` and ``state`` query
    parameters and is expected to redirect back to
    ``/callback?state=...&principal=...`` or ``/callback?state=...&error=...``.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 0,
        timeout: float = 300,
        open_url: typing.Optional[typing.Callable[[str], typing.Any]] = None,
        logger: typing.Optional[logging.Logger] = None,
    ):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.open_url = open_url or webbrowser.open
        self.logger = logger

    async def login(self, identity_provider: str) -> Principal:
        completion: asyncio.Future = asyncio.get_running_loop().create_future()
        state = secrets.token_urlsafe(16)

        async def handle_callback(request: web.Request) -> web.Response:
            params = request.rel_url.query
            if params.get("state") != state:
                return web.Response(status=400, text="Invalid state")
            if completion.done():
                return web.Response(status=409, text="Login already completed")

            if "error" in params:
                completion.set_exception(
                    AuthenticationFailedError(
                        f"Identity provider returned an error: {params['error']}"
                    )
                )
                return web.Response(text="Login failed, you can close this window.")

            try:
                principal = Principal.from_text(params.get("principal", ""))
            except InvalidPrincipalError as e:
                completion.set_exception(AuthenticationFailedError(str(e)))
                return web.Response(status=400, text="Invalid principal")

            completion.set_result(principal)
            return web.Response(text="Login complete, you can close this window.")

        app = web.Application()
        app.add_routes([web.get(CALLBACK_PATH, handle_callback)])
        runner = web.AppRunner(app)
        await runner.setup()
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            try:
                sock.bind((self.host, self.port))
            except OSError as e:
                sock.close()
                raise AuthenticationFailedError(f"Unable to start login callback: {e}")
            site = web.SockSite(runner, sock)
            await site.start()

            port = sock.getsockname()[1]
            redirect_uri = f"http://{self.host}:{port}{CALLBACK_PATH}"
            login_url = build_login_url(identity_provider, redirect_uri, state)
            if self.logger:
                self.logger.info(f"Complete the login at {login_url}")

            opened = self.open_url(login_url)
            if asyncio.iscoroutine(opened):
                await opened

            try:
                return await asyncio.wait_for(completion, timeout=self.timeout)
            except asyncio.TimeoutError:
                raise AuthenticationFailedError(
                    f"Timed out after {self.timeout}s waiting for the identity provider"
                )
        finally:
            await runner.cleanup()
