import typing

if typing.TYPE_CHECKING:
    from civic_wallet.icp.value_objects.domain.credential import (
        CredentialErrorKinds,
        DerivationOriginErrorKinds,
        IssueCredentialErrorKinds,
    )


class CredentialDeserializationError(Exception):
    pass


class UnknownVariantError(CredentialDeserializationError):
    def __init__(self, type_name: str, tag: str):
        super().__init__(f"Unknown {type_name} variant: {tag!r}")
        self.type_name = type_name
        self.tag = tag


class CredentialValidationError(Exception):
    pass


class IssuerRpcError(Exception):
    pass


class IssuerBackendError(Exception):
    def __init__(
        self,
        kind: typing.Union[
            "CredentialErrorKinds",
            "IssueCredentialErrorKinds",
            "DerivationOriginErrorKinds",
        ],
        message: str,
    ):
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind
        self.message = message


class NoCredentialsFoundError(IssuerBackendError):
    pass


class UnauthorizedSubjectError(IssuerBackendError):
    pass


class InternalIssuerError(IssuerBackendError):
    pass


class SignatureNotFoundError(IssuerBackendError):
    pass


class InvalidIdAliasError(IssuerBackendError):
    pass


class UnknownSubjectError(IssuerBackendError):
    pass


class UnsupportedCredentialSpecError(IssuerBackendError):
    pass


class UnsupportedOriginError(IssuerBackendError):
    pass
