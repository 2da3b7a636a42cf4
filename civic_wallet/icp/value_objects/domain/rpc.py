import typing
from dataclasses import dataclass, field

from dataclasses_json import DataClassJsonMixin


class IssuerMethods:
    add_credentials = "add_credentials"
    get_all_credentials = "get_all_credentials"
    update_credential = "update_credential"
    remove_credential = "remove_credential"
    prepare_credential = "prepare_credential"
    get_credential = "get_credential"
    derivation_origin = "derivation_origin"


@dataclass
class JSONRPC20RequestBody(DataClassJsonMixin):
    method: str
    params: typing.List[typing.Any] = field(default_factory=list)
    id: typing.Optional[str] = None
    jsonrpc: str = "2.0"


@dataclass
class JSONRPCErrorBody(DataClassJsonMixin):
    code: int
    message: str


@dataclass
class JSONRPC20ResponseBody(DataClassJsonMixin):
    result: typing.Optional[typing.Any] = None
    error: typing.Optional[JSONRPCErrorBody] = None
    jsonrpc: str = "2.0"
    id: typing.Optional[str] = None
