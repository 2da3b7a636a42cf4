import base64
import binascii
import typing
import zlib
from dataclasses import dataclass
from enum import Enum

from dataclasses_json import DataClassJsonMixin

from civic_wallet.icp.exceptions.domain.authn import InvalidPrincipalError

PRINCIPAL_MAX_LENGTH_IN_BYTES = 29
DID_ICP_PREFIX = "did:icp:v0:"


class Chains(Enum):
    ICP = "ICP"
    ETHEREUM = "ETHEREUM"


@dataclass(frozen=True)
class Principal:
    text: str

    def __str__(self) -> str:
        return self.text

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Principal":
        if len(raw) > PRINCIPAL_MAX_LENGTH_IN_BYTES:
            raise InvalidPrincipalError(
                f"Principal is {len(raw)} bytes, at most {PRINCIPAL_MAX_LENGTH_IN_BYTES} allowed"
            )
        checksum = zlib.crc32(raw).to_bytes(4, "big")
        encoded = base64.b32encode(checksum + raw).decode("ascii").lower().rstrip("=")
        return cls("-".join(encoded[i : i + 5] for i in range(0, len(encoded), 5)))

    @classmethod
    def from_text(cls, text: str) -> "Principal":
        compact = text.replace("-", "").upper()
        try:
            decoded = base64.b32decode(compact + "=" * (-len(compact) % 8))
        except (binascii.Error, ValueError):
            raise InvalidPrincipalError(f"Principal is not valid base32: {text!r}")
        if len(decoded) < 4:
            raise InvalidPrincipalError(f"Principal is too short: {text!r}")
        principal = cls.from_bytes(decoded[4:])
        if principal.text != text:
            raise InvalidPrincipalError(
                f"Principal checksum or grouping mismatch: {text!r}"
            )
        return principal

    def to_bytes(self) -> bytes:
        compact = self.text.replace("-", "").upper()
        return base64.b32decode(compact + "=" * (-len(compact) % 8))[4:]

    def to_did(self) -> str:
        return f"{DID_ICP_PREFIX}{self.text}"


@dataclass
class Nonce(DataClassJsonMixin):
    nonce: str
    timestamp: int


@dataclass
class SignedProof(DataClassJsonMixin):
    proof: str


@dataclass
class TokenRequest(DataClassJsonMixin):
    did: str
    address: str
    chain: str
    proof: SignedProof
    nonceTimestamp: int
    network: str = ""


@dataclass
class TokenResponse(DataClassJsonMixin):
    token: str


@dataclass
class TokenExchangeAttempt:
    """Outcome of one token POST; a transport failure has no status code."""

    status_code: typing.Optional[int] = None
    body: typing.Optional[typing.Any] = None
    error: typing.Optional[str] = None
