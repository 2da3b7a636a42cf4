import dataclasses
import json
import logging
import typing
import uuid
from enum import Enum

import httpx

from civic_wallet.icp.exceptions.domain.issuer import (
    CredentialDeserializationError,
    InternalIssuerError,
    InvalidIdAliasError,
    IssuerBackendError,
    IssuerRpcError,
    NoCredentialsFoundError,
    SignatureNotFoundError,
    UnauthorizedSubjectError,
    UnknownSubjectError,
    UnsupportedCredentialSpecError,
    UnsupportedOriginError,
)
from civic_wallet.icp.utils.httpx_client import HttpxClient
from civic_wallet.icp.value_objects.domain.authn import Principal
from civic_wallet.icp.value_objects.domain.credential import (
    CredentialErrorKinds,
    CredentialSpec,
    DerivationOriginData,
    DerivationOriginErrorKinds,
    DerivationOriginRequest,
    GetCredentialRequest,
    IssueCredentialErrorKinds,
    IssuedCredentialData,
    PrepareCredentialRequest,
    PreparedCredentialData,
    SignedIdAlias,
    StoredCredential,
    parse_variant,
)
from civic_wallet.icp.value_objects.domain.rpc import (
    IssuerMethods,
    JSONRPC20RequestBody,
    JSONRPC20ResponseBody,
)

T = typing.TypeVar("T")


class _ResultTags(Enum):
    Ok = "Ok"
    Err = "Err"


ERROR_KIND_EXCEPTIONS: typing.Dict[Enum, typing.Type[IssuerBackendError]] = {
    CredentialErrorKinds.NoCredentialsFound: NoCredentialsFoundError,
    CredentialErrorKinds.UnauthorizedSubject: UnauthorizedSubjectError,
    IssueCredentialErrorKinds.Internal: InternalIssuerError,
    IssueCredentialErrorKinds.SignatureNotFound: SignatureNotFoundError,
    IssueCredentialErrorKinds.InvalidIdAlias: InvalidIdAliasError,
    IssueCredentialErrorKinds.UnauthorizedSubject: UnauthorizedSubjectError,
    IssueCredentialErrorKinds.UnknownSubject: UnknownSubjectError,
    IssueCredentialErrorKinds.UnsupportedCredentialSpec: UnsupportedCredentialSpecError,
    DerivationOriginErrorKinds.Internal: InternalIssuerError,
    DerivationOriginErrorKinds.UnsupportedOrigin: UnsupportedOriginError,
}

for _kinds in (CredentialErrorKinds, IssueCredentialErrorKinds, DerivationOriginErrorKinds):
    for _kind in _kinds:
        assert _kind in ERROR_KIND_EXCEPTIONS, f"No exception for {_kind}"


def unwrap_result(
    result: typing.Any,
    decode_ok: typing.Callable[[typing.Any], T],
    error_kinds: typing.Type[Enum],
) -> T:
    """Return the decoded ``Ok`` payload or raise the exception for the ``Err`` kind."""
    outcome, payload = parse_variant(result, _ResultTags, "Result")
    if outcome is _ResultTags.Ok:
        return decode_ok(payload)
    kind, message = parse_variant(payload, error_kinds, error_kinds.__name__)
    if not isinstance(message, str):
        raise CredentialDeserializationError(
            f"{error_kinds.__name__} message must be a string, got {message!r}"
        )
    raise ERROR_KIND_EXCEPTIONS[kind](kind, message)


def _decode_string(value: typing.Any) -> str:
    if not isinstance(value, str):
        raise CredentialDeserializationError(f"Expected a string, got {value!r}")
    return value


def _decode_credential_list(value: typing.Any) -> typing.List[StoredCredential]:
    if not isinstance(value, list):
        raise CredentialDeserializationError(
            f"Expected a list of credentials, got {value!r}"
        )
    return [StoredCredential.from_dict(item) for item in value]


def _decode_with_mixin(cls):
    def decode(value: typing.Any):
        if not isinstance(value, dict):
            raise CredentialDeserializationError(
                f"Expected a {cls.__name__} object, got {value!r}"
            )
        for field in dataclasses.fields(cls):
            if field.type is str and not isinstance(value.get(field.name), str):
                raise CredentialDeserializationError(
                    f"Invalid {cls.__name__}: {field.name} must be a string, got {value.get(field.name)!r}"
                )
        try:
            return cls.from_dict(value)
        except (KeyError, TypeError, ValueError) as e:
            raise CredentialDeserializationError(f"Invalid {cls.__name__}: {e}")

    return decode


class CredentialService:
    def __init__(
        self,
        issuer_rpc_endpoint: typing.Optional[str] = None,
        access_token: typing.Optional[str] = None,
        timeout: float = 10,
        logger: typing.Optional[logging.Logger] = None,
        transport: typing.Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.issuer_rpc_endpoint = issuer_rpc_endpoint
        self.access_token = access_token
        self.timeout = timeout
        self.logger = logger
        self.transport = transport

    def set_access_token(self, access_token: str) -> None:
        self.access_token = access_token

    async def _call(self, method: str, params: typing.List[typing.Any]) -> typing.Any:
        assert self.issuer_rpc_endpoint, "Issuer RPC endpoint is not set"
        headers = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        payload = JSONRPC20RequestBody(
            method=method, params=params, id=str(uuid.uuid4())
        )
        try:
            async with HttpxClient(
                timeout=self.timeout, logger=self.logger, transport=self.transport
            ) as http_client:
                response = await http_client.post(
                    self.issuer_rpc_endpoint, json.dumps(payload.to_dict()), headers
                )
        except httpx.HTTPError as e:
            raise IssuerRpcError(f"Error occured while calling {method}: {e}")
        if response.status_code != 200:
            raise IssuerRpcError(
                f"Error occured while calling {method}. Response status: {response.status_code}"
            )
        try:
            rpc_response = JSONRPC20ResponseBody.from_dict(response.json())
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise CredentialDeserializationError(
                f"Invalid JSON-RPC response for {method}: {e}"
            )
        if rpc_response.error is not None:
            raise IssuerRpcError(
                f"Error occured while calling {method}: {rpc_response.error.code} {rpc_response.error.message}"
            )
        return rpc_response.result

    async def add_credentials(
        self, principal: Principal, credentials: typing.List[StoredCredential]
    ) -> str:
        for credential in credentials:
            credential.validate()
        if self.logger:
            self.logger.debug(
                f"Adding {len(credentials)} credential(s) for {principal}"
            )
        result = await self._call(
            IssuerMethods.add_credentials,
            [principal.text, [c.to_dict() for c in credentials]],
        )
        return unwrap_result(result, _decode_string, CredentialErrorKinds)

    async def add_credential(
        self, principal: Principal, credential: StoredCredential
    ) -> str:
        message = await self.add_credentials(principal, [credential])
        if self.logger:
            self.logger.debug(f"Credential {credential.id} added: {message}")
        return credential.id

    async def get_credentials(
        self, principal: Principal
    ) -> typing.List[StoredCredential]:
        result = await self._call(IssuerMethods.get_all_credentials, [principal.text])
        return unwrap_result(result, _decode_credential_list, CredentialErrorKinds)

    async def update_credential(
        self,
        principal: Principal,
        credential_id: str,
        credential: StoredCredential,
    ) -> str:
        credential.validate()
        result = await self._call(
            IssuerMethods.update_credential,
            [principal.text, credential_id, credential.to_dict()],
        )
        return unwrap_result(result, _decode_string, CredentialErrorKinds)

    async def remove_credential(self, principal: Principal, credential_id: str) -> str:
        result = await self._call(
            IssuerMethods.remove_credential, [principal.text, credential_id]
        )
        return unwrap_result(result, _decode_string, CredentialErrorKinds)

    async def prepare_credential(
        self, signed_id_alias: SignedIdAlias, credential_spec: CredentialSpec
    ) -> PreparedCredentialData:
        request = PrepareCredentialRequest(
            signed_id_alias=signed_id_alias, credential_spec=credential_spec
        )
        result = await self._call(IssuerMethods.prepare_credential, [request.to_dict()])
        return unwrap_result(
            result, PreparedCredentialData.from_dict, IssueCredentialErrorKinds
        )

    async def get_credential(
        self,
        signed_id_alias: SignedIdAlias,
        credential_spec: CredentialSpec,
        prepared: PreparedCredentialData,
    ) -> IssuedCredentialData:
        request = GetCredentialRequest(
            signed_id_alias=signed_id_alias,
            credential_spec=credential_spec,
            prepared_context=prepared.prepared_context,
        )
        result = await self._call(IssuerMethods.get_credential, [request.to_dict()])
        return unwrap_result(
            result,
            _decode_with_mixin(IssuedCredentialData),
            IssueCredentialErrorKinds,
        )

    async def issue_credential(
        self, signed_id_alias: SignedIdAlias, credential_spec: CredentialSpec
    ) -> IssuedCredentialData:
        prepared = await self.prepare_credential(signed_id_alias, credential_spec)
        return await self.get_credential(signed_id_alias, credential_spec, prepared)

    async def derivation_origin(self, frontend_hostname: str) -> str:
        request = DerivationOriginRequest(frontend_hostname=frontend_hostname)
        result = await self._call(IssuerMethods.derivation_origin, [request.to_dict()])
        origin_data = unwrap_result(
            result,
            _decode_with_mixin(DerivationOriginData),
            DerivationOriginErrorKinds,
        )
        return origin_data.origin
