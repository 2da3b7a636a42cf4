import typing
from dataclasses import dataclass

from dataclasses_json import DataClassJsonMixin


@dataclass
class CivicWalletConfig(DataClassJsonMixin):
    identity_provider_url: typing.Optional[str] = None
    issuer_rpc_endpoint: typing.Optional[str] = None
    civic_sign_api_url: typing.Optional[str] = None
    civic_sign_stage: str = "dev"
    network: str = ""
    retry_interval: float = 2.0
    retry_attempts: int = 20
    request_timeout: float = 10
    login_timeout: float = 300

    def _civic_sign_url(self, path: str) -> str:
        assert self.civic_sign_api_url, "Civic sign API URL is not set"
        return f"{self.civic_sign_api_url.rstrip('/')}/sign-{self.civic_sign_stage}/{path}"

    @property
    def nonce_endpoint(self) -> str:
        return self._civic_sign_url("nonce")

    @property
    def authenticate_endpoint(self) -> str:
        return self._civic_sign_url("authenticate")
