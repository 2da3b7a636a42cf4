import typing

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from jwcrypto import jwk, jwt
from jwcrypto.common import JWException

from civic_wallet.icp.exceptions.domain.authn import ProofGenerationError
from civic_wallet.icp.services.domain.utils.jwt import get_alg_for_key
from civic_wallet.icp.value_objects.domain.authn import (
    Chains,
    Nonce,
    Principal,
    SignedProof,
)


class ProofSigner(typing.Protocol):
    chain: Chains

    def address_for(self, principal: Principal) -> str:
        ...

    async def request_proof(self, principal: Principal, nonce: Nonce) -> SignedProof:
        ...


class EthereumProofSigner:
    chain = Chains.ETHEREUM

    def __init__(self, private_key: typing.Union[str, bytes]):
        self.account: LocalAccount = Account.from_key(private_key)

    def address_for(self, principal: Principal) -> str:
        return self.account.address

    async def request_proof(self, principal: Principal, nonce: Nonce) -> SignedProof:
        try:
            signed_message = self.account.sign_message(encode_defunct(text=nonce.nonce))
        except (TypeError, ValueError) as e:
            raise ProofGenerationError(f"Unable to sign nonce: {e}")
        return SignedProof(proof="0x" + bytes(signed_message.signature).hex())


class JWSProofSigner:
    """Signs the nonce for a principal as a compact JWS with a JWK."""

    chain = Chains.ICP

    def __init__(self, key: jwk.JWK, kid: typing.Optional[str] = None):
        if not key.has_private:
            raise ValueError("JWS proof signer requires a private key")
        self.key = key
        self.kid = kid or key.thumbprint()

    def address_for(self, principal: Principal) -> str:
        return principal.text

    async def request_proof(self, principal: Principal, nonce: Nonce) -> SignedProof:
        payload = {
            "sub": principal.to_did(),
            "nonce": nonce.nonce,
            "iat": nonce.timestamp,
        }
        header = {"typ": "JWT", "alg": get_alg_for_key(self.key), "kid": self.kid}
        token = jwt.JWT(header=header, claims=payload)
        try:
            token.make_signed_token(self.key)
        except (JWException, ValueError) as e:
            raise ProofGenerationError(f"Unable to sign nonce: {e}")
        return SignedProof(proof=token.serialize())
