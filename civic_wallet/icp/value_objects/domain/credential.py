import json
import typing
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from dataclasses_json import DataClassJsonMixin

from civic_wallet.icp.exceptions.domain.issuer import (
    CredentialDeserializationError,
    CredentialValidationError,
    UnknownVariantError,
)
from civic_wallet.icp.utils.jwt import (
    JwtDecodedHeaderAndClaims,
    decode_header_and_claims_in_jwt,
)

I64_MIN = -(2**63)
I64_MAX = 2**63 - 1
I32_MIN = -(2**31)
I32_MAX = 2**31 - 1


class ClaimValueTags(Enum):
    Text = "Text"
    Boolean = "Boolean"
    Number = "Number"
    Date = "Date"
    Claim = "Claim"


class ArgumentValueTags(Enum):
    Int = "Int"
    String = "String"


class CredentialErrorKinds(Enum):
    NoCredentialsFound = "NoCredentialsFound"
    UnauthorizedSubject = "UnauthorizedSubject"


class IssueCredentialErrorKinds(Enum):
    Internal = "Internal"
    SignatureNotFound = "SignatureNotFound"
    InvalidIdAlias = "InvalidIdAlias"
    UnauthorizedSubject = "UnauthorizedSubject"
    UnknownSubject = "UnknownSubject"
    UnsupportedCredentialSpec = "UnsupportedCredentialSpec"


class DerivationOriginErrorKinds(Enum):
    Internal = "Internal"
    UnsupportedOrigin = "UnsupportedOrigin"


def parse_variant(
    data: typing.Any, tags: typing.Type[Enum], type_name: str
) -> typing.Tuple[Enum, typing.Any]:
    """Split a single-key ``{Tag: payload}`` object into its tag and payload."""
    if not isinstance(data, dict) or len(data) != 1:
        raise CredentialDeserializationError(
            f"{type_name} must be an object with exactly one tag, got {data!r}"
        )
    ((tag, payload),) = data.items()
    try:
        return tags(tag), payload
    except ValueError:
        raise UnknownVariantError(type_name, tag)


def _is_iso8601(value: str) -> bool:
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def _claim_value_problem(tag: ClaimValueTags, value: typing.Any) -> typing.Optional[str]:
    if tag in (ClaimValueTags.Text, ClaimValueTags.Date):
        if not isinstance(value, str):
            return f"{tag.value} expects a string, got {type(value).__name__}"
        if tag is ClaimValueTags.Date and not _is_iso8601(value):
            return f"Date is not ISO-8601 encoded: {value!r}"
    elif tag is ClaimValueTags.Boolean:
        if not isinstance(value, bool):
            return f"Boolean expects a bool, got {type(value).__name__}"
    elif tag is ClaimValueTags.Number:
        # bool is an int subclass and must not pass as a Number
        if isinstance(value, bool) or not isinstance(value, int):
            return f"Number expects an integer, got {type(value).__name__}"
        if not I64_MIN <= value <= I64_MAX:
            return f"Number out of 64-bit range: {value}"
    elif tag is ClaimValueTags.Claim:
        if not isinstance(value, Claim):
            return f"Claim expects a Claim, got {type(value).__name__}"
    return None


@dataclass
class ClaimValue:
    tag: ClaimValueTags
    value: typing.Union[str, bool, int, "Claim"]

    def __post_init__(self):
        problem = _claim_value_problem(self.tag, self.value)
        if problem:
            raise CredentialValidationError(problem)

    @classmethod
    def text(cls, value: str) -> "ClaimValue":
        return cls(ClaimValueTags.Text, value)

    @classmethod
    def boolean(cls, value: bool) -> "ClaimValue":
        return cls(ClaimValueTags.Boolean, value)

    @classmethod
    def number(cls, value: int) -> "ClaimValue":
        return cls(ClaimValueTags.Number, value)

    @classmethod
    def date(cls, value: str) -> "ClaimValue":
        return cls(ClaimValueTags.Date, value)

    @classmethod
    def claim(cls, value: "Claim") -> "ClaimValue":
        return cls(ClaimValueTags.Claim, value)

    def to_dict(self) -> dict:
        if self.tag is ClaimValueTags.Claim:
            return {self.tag.value: self.value.to_dict()}
        return {self.tag.value: self.value}

    @classmethod
    def from_dict(cls, data: typing.Any) -> "ClaimValue":
        tag, payload = parse_variant(data, ClaimValueTags, "ClaimValue")
        if tag is ClaimValueTags.Claim:
            payload = Claim.from_dict(payload)
        problem = _claim_value_problem(tag, payload)
        if problem:
            raise CredentialDeserializationError(problem)
        return cls(tag, payload)

    def to_json_value(self) -> typing.Any:
        if self.tag is ClaimValueTags.Claim:
            return self.value.to_subject()
        return self.value


@dataclass
class Claim:
    claims: typing.List[typing.Tuple[str, ClaimValue]] = field(default_factory=list)

    def get(self, name: str) -> typing.Optional[ClaimValue]:
        for claim_name, value in self.claims:
            if claim_name == name:
                return value
        return None

    def to_dict(self) -> dict:
        return {"claims": [[name, value.to_dict()] for name, value in self.claims]}

    @classmethod
    def from_dict(cls, data: typing.Any) -> "Claim":
        if not isinstance(data, dict) or not isinstance(data.get("claims"), list):
            raise CredentialDeserializationError(
                f"Claim must be an object with a 'claims' list, got {data!r}"
            )
        claims = []
        for item in data["claims"]:
            if (
                not isinstance(item, (list, tuple))
                or len(item) != 2
                or not isinstance(item[0], str)
            ):
                raise CredentialDeserializationError(
                    f"Claim entry must be a [name, value] pair, got {item!r}"
                )
            claims.append((item[0], ClaimValue.from_dict(item[1])))
        return cls(claims=claims)

    def to_subject(self) -> dict:
        """Flatten into a plain ``credentialSubject`` object; later duplicates win."""
        return {name: value.to_json_value() for name, value in self.claims}


@dataclass
class StoredCredential:
    id: str
    type_: typing.List[str]
    context: typing.List[str]
    issuer: str
    claim: typing.List[Claim]

    def validate(self) -> None:
        if not self.id:
            raise CredentialValidationError("Credential id must not be empty")
        if not self.claim:
            raise CredentialValidationError(
                f"Credential {self.id} must carry at least one claim"
            )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type_": list(self.type_),
            "context": list(self.context),
            "issuer": self.issuer,
            "claim": [claim.to_dict() for claim in self.claim],
        }

    @classmethod
    def from_dict(cls, data: typing.Any) -> "StoredCredential":
        if not isinstance(data, dict):
            raise CredentialDeserializationError(
                f"StoredCredential must be an object, got {data!r}"
            )
        types = data.get("type_", data.get("type"))
        try:
            id_, context, issuer, claims = (
                data["id"],
                data["context"],
                data["issuer"],
                data["claim"],
            )
        except KeyError as e:
            raise CredentialDeserializationError(
                f"StoredCredential is missing field {e.args[0]!r}"
            )
        if not isinstance(id_, str) or not isinstance(issuer, str):
            raise CredentialDeserializationError(
                "StoredCredential id and issuer must be strings"
            )
        for name, values in (("type_", types), ("context", context)):
            if not isinstance(values, list) or not all(
                isinstance(v, str) for v in values
            ):
                raise CredentialDeserializationError(
                    f"StoredCredential {name} must be a list of strings"
                )
        if not isinstance(claims, list):
            raise CredentialDeserializationError(
                "StoredCredential claim must be a list"
            )
        return cls(
            id=id_,
            type_=types,
            context=context,
            issuer=issuer,
            claim=[Claim.from_dict(c) for c in claims],
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str) -> "StoredCredential":
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CredentialDeserializationError(f"Invalid credential JSON: {e}")
        return cls.from_dict(data)


@dataclass
class ArgumentValue:
    tag: ArgumentValueTags
    value: typing.Union[int, str]

    def __post_init__(self):
        if self.tag is ArgumentValueTags.Int:
            if isinstance(self.value, bool) or not isinstance(self.value, int):
                raise CredentialValidationError("Int argument expects an integer")
            if not I32_MIN <= self.value <= I32_MAX:
                raise CredentialValidationError(
                    f"Int argument out of 32-bit range: {self.value}"
                )
        elif not isinstance(self.value, str):
            raise CredentialValidationError("String argument expects a string")

    def to_dict(self) -> dict:
        return {self.tag.value: self.value}

    @classmethod
    def from_dict(cls, data: typing.Any) -> "ArgumentValue":
        tag, payload = parse_variant(data, ArgumentValueTags, "ArgumentValue")
        try:
            return cls(tag, payload)
        except CredentialValidationError as e:
            raise CredentialDeserializationError(str(e))


@dataclass
class CredentialSpec:
    credential_type: str
    arguments: typing.Optional[typing.Dict[str, ArgumentValue]] = None

    def to_dict(self) -> dict:
        arguments = None
        if self.arguments is not None:
            arguments = [[k, v.to_dict()] for k, v in self.arguments.items()]
        return {"credential_type": self.credential_type, "arguments": arguments}

    @classmethod
    def from_dict(cls, data: typing.Any) -> "CredentialSpec":
        if not isinstance(data, dict) or not isinstance(
            data.get("credential_type"), str
        ):
            raise CredentialDeserializationError(
                f"CredentialSpec requires a credential_type, got {data!r}"
            )
        raw_arguments = data.get("arguments")
        arguments = None
        if isinstance(raw_arguments, dict):
            arguments = {
                k: ArgumentValue.from_dict(v) for k, v in raw_arguments.items()
            }
        elif isinstance(raw_arguments, list):
            arguments = {}
            for item in raw_arguments:
                if not isinstance(item, (list, tuple)) or len(item) != 2:
                    raise CredentialDeserializationError(
                        f"CredentialSpec argument must be a [name, value] pair, got {item!r}"
                    )
                arguments[item[0]] = ArgumentValue.from_dict(item[1])
        elif raw_arguments is not None:
            raise CredentialDeserializationError(
                f"CredentialSpec arguments must be a list or an object, got {raw_arguments!r}"
            )
        return cls(credential_type=data["credential_type"], arguments=arguments)


@dataclass
class SignedIdAlias(DataClassJsonMixin):
    credential_jws: str


class PreparedContext:
    """Opaque capability returned by prepare_credential, passed back unchanged."""

    __slots__ = ("_data",)

    def __init__(self, data: bytes):
        self._data = bytes(data)

    def __eq__(self, other):
        if not isinstance(other, PreparedContext):
            return NotImplemented
        return self._data == other._data

    def __hash__(self):
        return hash(self._data)

    def __repr__(self):
        return f"PreparedContext(<{len(self._data)} bytes>)"

    def to_wire(self) -> typing.List[int]:
        return list(self._data)

    @classmethod
    def from_wire(cls, value: typing.Any) -> "PreparedContext":
        if not isinstance(value, list) or not all(
            isinstance(b, int) and not isinstance(b, bool) and 0 <= b <= 255
            for b in value
        ):
            raise CredentialDeserializationError(
                "Prepared context must be a list of byte values"
            )
        return cls(bytes(value))


@dataclass
class PreparedCredentialData:
    prepared_context: typing.Optional[PreparedContext] = None

    def to_dict(self) -> dict:
        context = self.prepared_context
        return {"prepared_context": context.to_wire() if context else None}

    @classmethod
    def from_dict(cls, data: typing.Any) -> "PreparedCredentialData":
        if not isinstance(data, dict):
            raise CredentialDeserializationError(
                f"PreparedCredentialData must be an object, got {data!r}"
            )
        raw = data.get("prepared_context")
        return cls(
            prepared_context=PreparedContext.from_wire(raw) if raw is not None else None
        )


@dataclass
class IssuedCredentialData(DataClassJsonMixin):
    vc_jws: str

    def decode(self) -> JwtDecodedHeaderAndClaims:
        try:
            return decode_header_and_claims_in_jwt(self.vc_jws)
        except ValueError as e:
            raise CredentialDeserializationError(f"Invalid credential JWS: {e}")


@dataclass
class PrepareCredentialRequest:
    signed_id_alias: SignedIdAlias
    credential_spec: CredentialSpec

    def to_dict(self) -> dict:
        return {
            "signed_id_alias": self.signed_id_alias.to_dict(),
            "credential_spec": self.credential_spec.to_dict(),
        }


@dataclass
class GetCredentialRequest:
    signed_id_alias: SignedIdAlias
    credential_spec: CredentialSpec
    prepared_context: typing.Optional[PreparedContext] = None

    def to_dict(self) -> dict:
        context = self.prepared_context
        return {
            "signed_id_alias": self.signed_id_alias.to_dict(),
            "credential_spec": self.credential_spec.to_dict(),
            "prepared_context": context.to_wire() if context else None,
        }


@dataclass
class DerivationOriginRequest(DataClassJsonMixin):
    frontend_hostname: str


@dataclass
class DerivationOriginData(DataClassJsonMixin):
    origin: str
