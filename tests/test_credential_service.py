import json

import httpx
import pytest

from civic_wallet.icp.exceptions.domain.issuer import (
    CredentialDeserializationError,
    CredentialValidationError,
    InternalIssuerError,
    InvalidIdAliasError,
    IssuerRpcError,
    NoCredentialsFoundError,
    SignatureNotFoundError,
    UnauthorizedSubjectError,
    UnknownSubjectError,
    UnknownVariantError,
    UnsupportedCredentialSpecError,
    UnsupportedOriginError,
)
from civic_wallet.icp.services.domain.credential import CredentialService
from civic_wallet.icp.value_objects.domain.credential import (
    ClaimValue,
    CredentialErrorKinds,
    CredentialSpec,
    IssueCredentialErrorKinds,
    PreparedContext,
    PreparedCredentialData,
    SignedIdAlias,
)

from conftest import ISSUER_ORIGIN, VALID_ALIAS_JWS, FakeIssuerBackend

ISSUER_RPC_ENDPOINT = "https://issuer.example.org/rpc"


def service_for(backend: FakeIssuerBackend, **kwargs) -> CredentialService:
    return CredentialService(
        issuer_rpc_endpoint=ISSUER_RPC_ENDPOINT,
        transport=backend.transport(),
        **kwargs,
    )


def service_answering(result) -> CredentialService:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": "1", "result": result})

    return CredentialService(
        issuer_rpc_endpoint=ISSUER_RPC_ENDPOINT, transport=httpx.MockTransport(handler)
    )


@pytest.mark.asyncio
async def test_add_then_get_returns_credential(
    issuer_backend, principal, verified_adult_credential
):
    service = service_for(issuer_backend)

    credential_id = await service.add_credential(principal, verified_adult_credential)
    stored = await service.get_credentials(principal)

    assert credential_id == verified_adult_credential.id
    assert stored == [verified_adult_credential]
    assert stored[0].claim[0].get("Is over 18") == ClaimValue.boolean(True)


@pytest.mark.asyncio
async def test_add_credentials_sends_json_rpc_request(
    issuer_backend, principal, verified_adult_credential
):
    service = service_for(issuer_backend, access_token="secret")

    message = await service.add_credentials(principal, [verified_adult_credential])

    assert message == "Added credentials: 1"
    call = issuer_backend.calls[0]
    assert call["jsonrpc"] == "2.0"
    assert call["method"] == "add_credentials"
    assert call["params"] == [principal.text, [verified_adult_credential.to_dict()]]


@pytest.mark.asyncio
async def test_access_token_is_sent_as_bearer(principal):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200, json={"jsonrpc": "2.0", "result": {"Ok": []}})

    service = CredentialService(
        issuer_rpc_endpoint=ISSUER_RPC_ENDPOINT, transport=httpx.MockTransport(handler)
    )
    await service.get_credentials(principal)
    service.set_access_token("token-123")
    await service.get_credentials(principal)

    assert seen == [None, "Bearer token-123"]


@pytest.mark.asyncio
async def test_unknown_principal_has_no_credentials(issuer_backend, principal):
    with pytest.raises(NoCredentialsFoundError) as exc_info:
        await service_for(issuer_backend).get_credentials(principal)

    assert exc_info.value.kind is CredentialErrorKinds.NoCredentialsFound
    assert principal.text in exc_info.value.message


@pytest.mark.asyncio
async def test_unauthorized_add_is_reported(principal, verified_adult_credential):
    backend = FakeIssuerBackend(authorized=False)

    with pytest.raises(UnauthorizedSubjectError):
        await service_for(backend).add_credential(principal, verified_adult_credential)


@pytest.mark.asyncio
async def test_credential_without_claims_is_not_sent(
    issuer_backend, principal, verified_adult_credential
):
    verified_adult_credential.claim = []

    with pytest.raises(CredentialValidationError):
        await service_for(issuer_backend).add_credential(
            principal, verified_adult_credential
        )

    assert issuer_backend.calls == []


@pytest.mark.asyncio
async def test_update_and_remove_credential(
    issuer_backend, principal, verified_adult_credential
):
    service = service_for(issuer_backend)
    await service.add_credential(principal, verified_adult_credential)

    verified_adult_credential.issuer = "https://issuer.example.org"
    await service.update_credential(
        principal, verified_adult_credential.id, verified_adult_credential
    )
    assert (await service.get_credentials(principal))[0].issuer == "https://issuer.example.org"

    message = await service.remove_credential(principal, verified_adult_credential.id)
    assert "removed" in message
    assert await service.get_credentials(principal) == []

    with pytest.raises(NoCredentialsFoundError):
        await service.remove_credential(principal, verified_adult_credential.id)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kind, error",
    [
        ("Internal", InternalIssuerError),
        ("SignatureNotFound", SignatureNotFoundError),
        ("InvalidIdAlias", InvalidIdAliasError),
        ("UnauthorizedSubject", UnauthorizedSubjectError),
        ("UnknownSubject", UnknownSubjectError),
        ("UnsupportedCredentialSpec", UnsupportedCredentialSpecError),
    ],
)
async def test_issue_error_kinds_map_to_exceptions(kind, error):
    service = service_answering({"Err": {kind: "details"}})

    with pytest.raises(error) as exc_info:
        await service.prepare_credential(
            SignedIdAlias(credential_jws=VALID_ALIAS_JWS),
            CredentialSpec(credential_type="VerifiedAdult"),
        )

    assert exc_info.value.kind is IssueCredentialErrorKinds(kind)
    assert exc_info.value.message == "details"


@pytest.mark.asyncio
async def test_unknown_error_kind_is_a_deserialization_error(principal):
    service = service_answering({"Err": {"QuotaExceeded": "slow down"}})

    with pytest.raises(UnknownVariantError) as exc_info:
        await service.get_credentials(principal)

    assert exc_info.value.tag == "QuotaExceeded"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "result",
    [None, {"Ok": [], "Err": {}}, {"Maybe": []}, {"Ok": "not-a-list"}, {"Ok": [{"id": "x"}]}],
)
async def test_malformed_results_are_rejected(principal, result):
    with pytest.raises(CredentialDeserializationError):
        await service_answering(result).get_credentials(principal)


@pytest.mark.asyncio
@pytest.mark.parametrize("message", [{"detail": "none"}, 404, None])
async def test_error_message_must_be_a_string(principal, message):
    service = service_answering({"Err": {"NoCredentialsFound": message}})

    with pytest.raises(CredentialDeserializationError):
        await service.get_credentials(principal)


@pytest.mark.asyncio
@pytest.mark.parametrize("origin", [5, None, ["https://issuer.example.org"]])
async def test_derivation_origin_must_be_a_string(origin):
    service = service_answering({"Ok": {"origin": origin}})

    with pytest.raises(CredentialDeserializationError, match="origin"):
        await service.derivation_origin("wallet.icp0.io")


@pytest.mark.asyncio
async def test_issued_credential_jws_must_be_a_string():
    service = service_answering({"Ok": {"vc_jws": 123}})

    with pytest.raises(CredentialDeserializationError, match="vc_jws"):
        await service.get_credential(
            SignedIdAlias(credential_jws=VALID_ALIAS_JWS),
            CredentialSpec(credential_type="VerifiedAdult"),
            PreparedCredentialData(prepared_context=PreparedContext(b"prepared.jwt")),
        )


@pytest.mark.asyncio
async def test_http_failure_is_an_rpc_error(principal):
    service = CredentialService(
        issuer_rpc_endpoint=ISSUER_RPC_ENDPOINT,
        transport=httpx.MockTransport(lambda request: httpx.Response(502)),
    )

    with pytest.raises(IssuerRpcError, match="502"):
        await service.get_credentials(principal)


@pytest.mark.asyncio
async def test_unreachable_issuer_is_an_rpc_error(principal):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    service = CredentialService(
        issuer_rpc_endpoint=ISSUER_RPC_ENDPOINT, transport=httpx.MockTransport(handler)
    )

    with pytest.raises(IssuerRpcError, match="connection refused"):
        await service.get_credentials(principal)


@pytest.mark.asyncio
async def test_json_rpc_error_member_is_an_rpc_error(principal):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "jsonrpc": "2.0",
                "id": json.loads(request.content)["id"],
                "error": {"code": -32601, "message": "Method not found"},
            },
        )

    service = CredentialService(
        issuer_rpc_endpoint=ISSUER_RPC_ENDPOINT, transport=httpx.MockTransport(handler)
    )

    with pytest.raises(IssuerRpcError, match="Method not found"):
        await service.get_credentials(principal)


@pytest.mark.asyncio
async def test_non_json_response_is_rejected(principal):
    service = CredentialService(
        issuer_rpc_endpoint=ISSUER_RPC_ENDPOINT,
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, text="<html>oops</html>")
        ),
    )

    with pytest.raises(CredentialDeserializationError):
        await service.get_credentials(principal)


@pytest.mark.asyncio
async def test_issue_credential_passes_prepared_context_back_unchanged(issuer_backend):
    service = service_for(issuer_backend)
    alias = SignedIdAlias(credential_jws=VALID_ALIAS_JWS)
    spec = CredentialSpec(credential_type="VerifiedAdult")

    issued = await service.issue_credential(alias, spec)

    prepare_call, get_call = issuer_backend.calls
    assert prepare_call["method"] == "prepare_credential"
    assert get_call["method"] == "get_credential"
    assert get_call["params"][0]["signed_id_alias"] == prepare_call["params"][0]["signed_id_alias"]
    assert get_call["params"][0]["credential_spec"] == prepare_call["params"][0]["credential_spec"]
    assert bytes(get_call["params"][0]["prepared_context"]).decode() == issued.vc_jws

    claims = issued.decode().claims
    assert claims["iss"] == ISSUER_ORIGIN
    assert claims["vc"]["credentialSubject"] == {"Is over 18": True}


@pytest.mark.asyncio
async def test_unsupported_credential_type(issuer_backend):
    with pytest.raises(UnsupportedCredentialSpecError):
        await service_for(issuer_backend).issue_credential(
            SignedIdAlias(credential_jws=VALID_ALIAS_JWS),
            CredentialSpec(credential_type="VerifiedEmployee"),
        )


@pytest.mark.asyncio
async def test_invalid_alias_is_rejected(issuer_backend):
    with pytest.raises(InvalidIdAliasError):
        await service_for(issuer_backend).prepare_credential(
            SignedIdAlias(credential_jws="forged.alias.jws"),
            CredentialSpec(credential_type="VerifiedAdult"),
        )


@pytest.mark.asyncio
async def test_get_credential_with_unknown_context(issuer_backend):
    service = service_for(issuer_backend)

    with pytest.raises(SignatureNotFoundError):
        await service.get_credential(
            SignedIdAlias(credential_jws=VALID_ALIAS_JWS),
            CredentialSpec(credential_type="VerifiedAdult"),
            PreparedCredentialData(prepared_context=PreparedContext(b"never.prepared.jwt")),
        )
    with pytest.raises(InternalIssuerError):
        await service.get_credential(
            SignedIdAlias(credential_jws=VALID_ALIAS_JWS),
            CredentialSpec(credential_type="VerifiedAdult"),
            PreparedCredentialData(),
        )


@pytest.mark.asyncio
async def test_derivation_origin(issuer_backend):
    service = service_for(issuer_backend)

    assert await service.derivation_origin("wallet.icp0.io") == ISSUER_ORIGIN
    with pytest.raises(UnsupportedOriginError):
        await service.derivation_origin("evil.example.com")
