import asyncio
import logging
import typing

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from civic_wallet.icp.exceptions.domain.retries import (
    PollingCancelledError,
    RetriesExhaustedError,
)

T = typing.TypeVar("T")

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_POLL_ATTEMPTS = 20


def _action_name(action: typing.Callable) -> str:
    return getattr(action, "__qualname__", None) or repr(action)


async def poll_until_condition_met(
    action: typing.Callable[[], typing.Awaitable[T]],
    is_acceptable: typing.Callable[[T], bool],
    interval: float = DEFAULT_POLL_INTERVAL,
    max_attempts: int = DEFAULT_POLL_ATTEMPTS,
    logger: typing.Optional[logging.Logger] = None,
    cancel_event: typing.Optional[asyncio.Event] = None,
) -> T:
    """Run ``action`` until ``is_acceptable`` accepts its result.

    The predicate decides what counts as done, including terminal failures.
    Between attempts the flow sleeps a fixed ``interval`` seconds. When the
    attempts run out without an acceptable result ``RetriesExhaustedError`` is
    raised carrying the last result. Setting ``cancel_event`` aborts the
    pending wait with ``PollingCancelledError``. Exceptions raised by
    ``action`` propagate unchanged.
    """
    action_name = _action_name(action)
    if max_attempts <= 0:
        if logger:
            logger.debug(f"No attempts left for {action_name}")
        raise RetriesExhaustedError(action_name, 0)

    def check_cancelled():
        if cancel_event is not None and cancel_event.is_set():
            raise PollingCancelledError(f"Polling {action_name} was cancelled")

    async def sleep(seconds: float) -> None:
        if cancel_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        check_cancelled()

    async def attempt() -> T:
        check_cancelled()
        return await action()

    def exhausted(retry_state: RetryCallState):
        raise RetriesExhaustedError(
            action_name, retry_state.attempt_number, retry_state.outcome.result()
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda result: not is_acceptable(result)),
        before_sleep=before_sleep_log(logger, logging.DEBUG) if logger else None,
        retry_error_callback=exhausted,
        sleep=sleep,
    )
    return await retrying(attempt)
