import base64
import json
import typing

import httpx
import pytest

from civic_wallet.icp.value_objects.domain.authn import Principal
from civic_wallet.icp.value_objects.domain.credential import (
    Claim,
    ClaimValue,
    StoredCredential,
)

VALID_ALIAS_JWS = "header.alias-claims.signature"
ISSUER_ORIGIN = "https://issuer.icp0.io"


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def make_jwt(claims: dict, headers: typing.Optional[dict] = None) -> str:
    headers = headers or {"typ": "JWT", "alg": "IcCs"}
    return ".".join(
        [
            b64url(json.dumps(headers).encode()),
            b64url(json.dumps(claims).encode()),
            b64url(b"signature"),
        ]
    )


class FakeIssuerBackend:
    """In-memory issuer backend answering JSON-RPC calls like the canister."""

    def __init__(self, authorized: bool = True):
        self.authorized = authorized
        self.credentials: typing.Dict[str, typing.List[dict]] = {}
        self.signed_contexts: typing.Set[str] = set()
        self.calls: typing.List[dict] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.calls.append(body)
        result = getattr(self, body["method"])(*body["params"])
        return httpx.Response(
            200, json={"jsonrpc": "2.0", "id": body["id"], "result": result}
        )

    def _unauthorized(self):
        return {"Err": {"UnauthorizedSubject": "Unauthorized: You do not have permission."}}

    def add_credentials(self, principal, credentials):
        if not self.authorized:
            return self._unauthorized()
        entry = self.credentials.setdefault(principal, [])
        for credential in credentials:
            if not any(c["id"] == credential["id"] for c in entry):
                entry.append(credential)
        return {"Ok": f"Added credentials: {len(credentials)}"}

    def get_all_credentials(self, principal):
        if principal not in self.credentials:
            return {
                "Err": {
                    "NoCredentialsFound": f"No credentials found for principal {principal}"
                }
            }
        return {"Ok": self.credentials[principal]}

    def update_credential(self, principal, credential_id, credential):
        if not self.authorized:
            return self._unauthorized()
        for index, stored in enumerate(self.credentials.get(principal, [])):
            if stored["id"] == credential_id:
                self.credentials[principal][index] = credential
                return {"Ok": f"Credential {credential_id} updated"}
        return {"Err": {"NoCredentialsFound": f"No credential found with ID {credential_id}"}}

    def remove_credential(self, principal, credential_id):
        if not self.authorized:
            return self._unauthorized()
        stored = self.credentials.get(principal, [])
        for index, credential in enumerate(stored):
            if credential["id"] == credential_id:
                del stored[index]
                return {"Ok": f"Credential with ID {credential_id} removed successfully"}
        return {"Err": {"NoCredentialsFound": f"No credential found with ID {credential_id}"}}

    def prepare_credential(self, request):
        if request["signed_id_alias"]["credential_jws"] != VALID_ALIAS_JWS:
            return {"Err": {"InvalidIdAlias": "Id alias could not be verified"}}
        credential_type = request["credential_spec"]["credential_type"]
        if credential_type != "VerifiedAdult":
            return {
                "Err": {
                    "UnsupportedCredentialSpec": f"Credential {credential_type} is not supported"
                }
            }
        credential_jwt = make_jwt(
            {
                "iss": ISSUER_ORIGIN,
                "vc": {
                    "type": ["VerifiableCredential", credential_type],
                    "credentialSubject": {"Is over 18": True},
                },
            }
        )
        self.signed_contexts.add(credential_jwt)
        return {"Ok": {"prepared_context": list(credential_jwt.encode())}}

    def get_credential(self, request):
        context = request["prepared_context"]
        if context is None:
            return {"Err": {"Internal": "Missing prepared_context"}}
        credential_jwt = bytes(context).decode()
        if credential_jwt not in self.signed_contexts:
            return {"Err": {"SignatureNotFound": "Signature not prepared or expired"}}
        return {"Ok": {"vc_jws": credential_jwt}}

    def derivation_origin(self, request):
        if request["frontend_hostname"].endswith(".icp0.io"):
            return {"Ok": {"origin": ISSUER_ORIGIN}}
        return {"Err": {"UnsupportedOrigin": request["frontend_hostname"]}}


@pytest.fixture
def issuer_backend() -> FakeIssuerBackend:
    return FakeIssuerBackend()


@pytest.fixture
def principal() -> Principal:
    return Principal.from_bytes(bytes(range(1, 11)))


@pytest.fixture
def verified_adult_credential() -> StoredCredential:
    alumni_of = Claim(
        claims=[
            ("id", ClaimValue.text("did:example:c276e12ec21ebfeb1f712ebc6f1")),
            ("name", ClaimValue.text("Example University")),
            ("degreeType", ClaimValue.text("MBA")),
        ]
    )
    return StoredCredential(
        id="urn:uuid:6a9c92a9-2530-4e2b-9776-530467e9bbe0",
        type_=["VerifiableCredential", "VerifiedAdult"],
        context=[
            "https://www.w3.org/2018/credentials/v1",
            "https://www.w3.org/2018/credentials/examples/v1",
        ],
        issuer="https://civic.com",
        claim=[
            Claim(
                claims=[
                    ("Is over 18", ClaimValue.boolean(True)),
                    ("name", ClaimValue.text("Max Mustermann")),
                    ("alumniOf", ClaimValue.claim(alumni_of)),
                ]
            )
        ],
    )
