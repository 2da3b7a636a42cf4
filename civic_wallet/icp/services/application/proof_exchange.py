import asyncio
import dataclasses
import logging
import typing

from civic_wallet.icp.exceptions.application.proof_exchange import (
    InvalidStateTransitionError,
)
from civic_wallet.icp.exceptions.domain.authn import (
    AuthenticationFailedError,
    InvalidTokenResponseError,
    NonceUnavailableError,
    ProofGenerationError,
    TokenRejectedError,
)
from civic_wallet.icp.exceptions.domain.retries import (
    PollingCancelledError,
    RetriesExhaustedError,
)
from civic_wallet.icp.services.domain.authn import PrincipalService
from civic_wallet.icp.services.domain.civic_sign import CivicSignService
from civic_wallet.icp.services.domain.signer import ProofSigner
from civic_wallet.icp.utils.retries import DEFAULT_POLL_ATTEMPTS, DEFAULT_POLL_INTERVAL
from civic_wallet.icp.value_objects.application.proof_exchange import (
    ALLOWED_TRANSITIONS,
    FailureReasons,
    ProofExchangeState,
    ProofExchangeStates,
)
from civic_wallet.icp.value_objects.domain.authn import TokenRequest

TOKEN_EXCHANGE_FAILURES: typing.Dict[typing.Type[Exception], FailureReasons] = {
    TokenRejectedError: FailureReasons.TokenRejected,
    RetriesExhaustedError: FailureReasons.RetriesExhausted,
    PollingCancelledError: FailureReasons.Cancelled,
    InvalidTokenResponseError: FailureReasons.MalformedResponse,
}


class ProofExchangeOrchestrator:
    """Drives one authentication attempt from login to bearer token.

    One instance serves a single attempt. Its nonce and proof are never
    submitted twice, and every failure ends in ``Failed`` with a reason.
    """

    def __init__(
        self,
        principal_service: PrincipalService,
        civic_sign_service: CivicSignService,
        signer: ProofSigner,
        network: str = "",
        retry_interval: float = DEFAULT_POLL_INTERVAL,
        retry_attempts: int = DEFAULT_POLL_ATTEMPTS,
        cancel_event: typing.Optional[asyncio.Event] = None,
        logger: typing.Optional[logging.Logger] = None,
    ):
        self.principal_service = principal_service
        self.civic_sign_service = civic_sign_service
        self.signer = signer
        self.network = network
        self.retry_interval = retry_interval
        self.retry_attempts = retry_attempts
        self.cancel_event = cancel_event
        self.logger = logger
        self.state = ProofExchangeState()
        self.history: typing.List[ProofExchangeState] = [self.state]

    def _expect(self, expected: ProofExchangeStates) -> None:
        if self.state.state is not expected:
            raise InvalidStateTransitionError(
                f"Expected state {expected.value}, current state is {self.state.state.value}"
            )

    def _transition(self, target: ProofExchangeStates, **changes) -> ProofExchangeState:
        if target not in ALLOWED_TRANSITIONS[self.state.state]:
            raise InvalidStateTransitionError(
                f"Cannot move from {self.state.state.value} to {target.value}"
            )
        self.state = dataclasses.replace(self.state, state=target, **changes)
        self.history.append(self.state)
        if self.logger:
            self.logger.debug(f"Proof exchange moved to {target.value}")
        return self.state

    def _fail(self, reason: FailureReasons, error: Exception) -> ProofExchangeState:
        if self.logger:
            self.logger.error(f"Proof exchange failed ({reason.value}): {error}")
        return self._transition(
            ProofExchangeStates.Failed, failure_reason=reason, error=error
        )

    async def authenticate(self) -> ProofExchangeState:
        self._expect(ProofExchangeStates.Unauthenticated)
        try:
            principal = await self.principal_service.request_principal()
        except AuthenticationFailedError as e:
            return self._fail(FailureReasons.AuthenticationFailed, e)
        return self._transition(ProofExchangeStates.Authenticated, principal=principal)

    async def request_nonce(self) -> ProofExchangeState:
        self._expect(ProofExchangeStates.Authenticated)
        try:
            nonce = await self.civic_sign_service.get_nonce()
        except NonceUnavailableError as e:
            return self._fail(FailureReasons.NonceUnavailable, e)
        return self._transition(ProofExchangeStates.NonceRequested, nonce=nonce)

    async def produce_proof(self) -> ProofExchangeState:
        self._expect(ProofExchangeStates.NonceRequested)
        principal = self.state.principal
        try:
            address = self.signer.address_for(principal)
            proof = await self.signer.request_proof(principal, self.state.nonce)
        except (ProofGenerationError, TypeError, ValueError) as e:
            return self._fail(FailureReasons.ProofGenerationFailed, e)
        return self._transition(
            ProofExchangeStates.ProofProduced, address=address, proof=proof
        )

    async def exchange_token(self) -> ProofExchangeState:
        self._expect(ProofExchangeStates.ProofProduced)
        token_request = TokenRequest(
            did=self.state.principal.to_did(),
            address=self.state.address,
            chain=self.signer.chain.value,
            network=self.network,
            proof=self.state.proof,
            nonceTimestamp=self.state.nonce.timestamp,
        )
        self._transition(ProofExchangeStates.TokenPending)
        try:
            token = await self.civic_sign_service.get_auth_token(
                token_request,
                interval=self.retry_interval,
                max_attempts=self.retry_attempts,
                cancel_event=self.cancel_event,
            )
        except tuple(TOKEN_EXCHANGE_FAILURES) as e:
            reason = next(
                reason
                for error_type, reason in TOKEN_EXCHANGE_FAILURES.items()
                if isinstance(e, error_type)
            )
            return self._fail(reason, e)
        return self._transition(ProofExchangeStates.TokenObtained, token=token)

    async def run(self) -> ProofExchangeState:
        steps = {
            ProofExchangeStates.Unauthenticated: self.authenticate,
            ProofExchangeStates.Authenticated: self.request_nonce,
            ProofExchangeStates.NonceRequested: self.produce_proof,
            ProofExchangeStates.ProofProduced: self.exchange_token,
        }
        while not self.state.is_terminal:
            await steps[self.state.state]()
        return self.state
