import typing


class RetriesExhaustedError(Exception):
    def __init__(self, action_name: str, attempts: int, last_result: typing.Any = None):
        super().__init__(
            f"All {attempts} attempts used calling {action_name}, last result: {last_result!r}"
        )
        self.action_name = action_name
        self.attempts = attempts
        self.last_result = last_result


class PollingCancelledError(Exception):
    pass
