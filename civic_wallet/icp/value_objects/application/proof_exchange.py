import typing
from dataclasses import dataclass
from enum import Enum

from civic_wallet.icp.value_objects.domain.authn import Nonce, Principal, SignedProof


class ProofExchangeStates(Enum):
    Unauthenticated = "unauthenticated"
    Authenticated = "authenticated"
    NonceRequested = "nonce_requested"
    ProofProduced = "proof_produced"
    TokenPending = "token_pending"
    TokenObtained = "token_obtained"
    Failed = "failed"


class FailureReasons(Enum):
    AuthenticationFailed = "authentication_failed"
    NonceUnavailable = "nonce_unavailable"
    ProofGenerationFailed = "proof_generation_failed"
    TokenRejected = "token_rejected"
    RetriesExhausted = "retries_exhausted"
    Cancelled = "cancelled"
    MalformedResponse = "malformed_response"


TERMINAL_STATES = frozenset(
    {ProofExchangeStates.TokenObtained, ProofExchangeStates.Failed}
)

ALLOWED_TRANSITIONS: typing.Dict[
    ProofExchangeStates, typing.FrozenSet[ProofExchangeStates]
] = {
    ProofExchangeStates.Unauthenticated: frozenset(
        {ProofExchangeStates.Authenticated, ProofExchangeStates.Failed}
    ),
    ProofExchangeStates.Authenticated: frozenset(
        {ProofExchangeStates.NonceRequested, ProofExchangeStates.Failed}
    ),
    ProofExchangeStates.NonceRequested: frozenset(
        {ProofExchangeStates.ProofProduced, ProofExchangeStates.Failed}
    ),
    ProofExchangeStates.ProofProduced: frozenset(
        {ProofExchangeStates.TokenPending, ProofExchangeStates.Failed}
    ),
    ProofExchangeStates.TokenPending: frozenset(
        {ProofExchangeStates.TokenObtained, ProofExchangeStates.Failed}
    ),
    ProofExchangeStates.TokenObtained: frozenset(),
    ProofExchangeStates.Failed: frozenset(),
}


@dataclass(frozen=True)
class ProofExchangeState:
    state: ProofExchangeStates = ProofExchangeStates.Unauthenticated
    principal: typing.Optional[Principal] = None
    nonce: typing.Optional[Nonce] = None
    address: typing.Optional[str] = None
    proof: typing.Optional[SignedProof] = None
    token: typing.Optional[str] = None
    failure_reason: typing.Optional[FailureReasons] = None
    error: typing.Optional[Exception] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES
