import base64
import json
from dataclasses import dataclass


@dataclass
class JwtDecodedHeaderAndClaims:
    headers: dict
    claims: dict


def _b64url_decode(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def decode_header_and_claims_in_jwt(token: str) -> JwtDecodedHeaderAndClaims:
    headers_encoded, claims_encoded, _ = token.split(".")
    return JwtDecodedHeaderAndClaims(
        headers=json.loads(_b64url_decode(headers_encoded)),
        claims=json.loads(_b64url_decode(claims_encoded)),
    )
