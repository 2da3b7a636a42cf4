import typing


class InvalidPrincipalError(Exception):
    pass


class AuthenticationFailedError(Exception):
    pass


class NonceUnavailableError(Exception):
    pass


class ProofGenerationError(Exception):
    pass


class TokenRejectedError(Exception):
    def __init__(self, status_code: int, body: typing.Optional[typing.Any] = None):
        super().__init__(f"Token request rejected. Response status: {status_code}")
        self.status_code = status_code
        self.body = body


class InvalidTokenResponseError(Exception):
    pass
