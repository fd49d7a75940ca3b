"""
Retry Engine - bounded-time exponential backoff for single HTTP operations

Wraps one outbound call (an async callable returning an httpx.Response) with
a tenacity retry controller:
- retries transport errors and retryable statuses (5xx by default)
- sleeps initial_delay, then multiplies the delay by backoff_multiplier
- never sleeps past max_elapsed_ms measured from the first attempt

Usage:
    from iojournal.utils.retry import RetryEngine, RetryPolicy

    engine = RetryEngine()
    response = await engine.execute(lambda: client.send(request), RetryPolicy(), url=str(request.url))
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

import httpx
from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    stop_before_delay,
    wait_exponential,
    wait_none,
)

from iojournal.utils.config import settings
from iojournal.utils.errors import NetworkFailure, TransientFailure

logger = logging.getLogger(__name__)

ResponsePredicate = Callable[[httpx.Response], bool]
SendFn = Callable[[], Awaitable[httpx.Response]]
RetryOptions = Union[bool, None, Mapping[str, Any], "RetryPolicy"]


def retry_on_server_error(response: httpx.Response) -> bool:
    """Default predicate: only 5xx responses are transient."""
    return response.status_code >= 500


def retry_on_send_response(response: httpx.Response) -> bool:
    """Event-send predicate: 204 means the event was not stored yet, retry it like a 5xx."""
    return response.status_code == 204 or response.status_code >= 500


class RetryPolicy(BaseModel):
    """Retry policy for one logical operation.

    Stateless: every execute() call starts its own attempt clock.
    """

    max_elapsed_ms: int = Field(default_factory=lambda: settings.RETRY_MAX_ELAPSED_MS, ge=0)
    initial_delay_ms: int = Field(default_factory=lambda: settings.RETRY_INITIAL_DELAY_MS, ge=0)
    backoff_multiplier: float = Field(default_factory=lambda: settings.RETRY_BACKOFF_MULTIPLIER, ge=1.0)
    retry_all_errors: bool = Field(default=False, description="Retry every exception, not only transport errors")
    retry_on_response: ResponsePredicate = Field(default=retry_on_server_error)


def resolve_retry_policy(
    options: RetryOptions,
    retry_on_response: Optional[ResponsePredicate] = None,
) -> Optional[RetryPolicy]:
    """
    Turn caller retry options into a policy.

    Args:
        options: False disables retries; True / None use the configured
            defaults; a mapping overrides fields ({"max_elapsed_ms": ...});
            a RetryPolicy is used as is.
        retry_on_response: Predicate applied when the options do not carry one

    Returns:
        RetryPolicy, or None when retries are disabled
    """
    if options is False:
        return None
    if isinstance(options, RetryPolicy):
        return options

    fields: dict[str, Any] = dict(options) if isinstance(options, Mapping) else {}
    if retry_on_response is not None:
        fields.setdefault("retry_on_response", retry_on_response)
    return RetryPolicy(**fields)


class RetryEngine:
    """Execute HTTP operations under a RetryPolicy."""

    def __init__(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> None:
        """
        Args:
            sleep: Coroutine used between attempts (tests inject a recorder)
        """
        self._sleep = sleep

    async def execute(
        self,
        send: SendFn,
        policy: Optional[RetryPolicy],
        url: str = "",
    ) -> httpx.Response:
        """
        Issue the request until its outcome is not retryable or the budget is spent.

        Args:
            send: Callable returning an awaitable that issues exactly one
                request (a coroutine function or a plain lambda)
            policy: Retry policy, None for a single attempt
            url: Target URL, used for logging and error context

        Returns:
            The first response the policy does not consider retryable

        Raises:
            TransientFailure: Last response was still retryable when retries ran out
            NetworkFailure: Last attempt raised a transport error when retries ran out
        """
        if policy is None:
            exception_types: tuple[type[BaseException], ...] = (httpx.TransportError,)
            predicate = retry_on_server_error
            stop = stop_after_attempt(1)
            wait = wait_none()
        else:
            exception_types = (Exception,) if policy.retry_all_errors else (httpx.TransportError,)
            predicate = policy.retry_on_response
            # counts the upcoming sleep, so the last backoff never overshoots the budget
            stop = stop_before_delay(policy.max_elapsed_ms / 1000.0)
            wait = wait_exponential(
                multiplier=policy.initial_delay_ms / 1000.0,
                exp_base=policy.backoff_multiplier,
                min=0,
            )

        def is_retryable_response(result: Any) -> bool:
            return isinstance(result, httpx.Response) and predicate(result)

        def log_retry(retry_state: RetryCallState) -> None:
            outcome = retry_state.outcome
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            if outcome is not None and outcome.failed:
                cause = repr(outcome.exception())
            else:
                cause = f"HTTP {outcome.result().status_code}" if outcome is not None else "unknown"
            logger.warning(
                "Retrying request (url=%s, attempt=%d, delay=%.3fs): %s",
                url,
                retry_state.attempt_number,
                delay,
                cause,
            )

        def exhausted(retry_state: RetryCallState) -> httpx.Response:
            outcome = retry_state.outcome
            attempts = retry_state.attempt_number
            if outcome is None:
                raise NetworkFailure(f"request to {url} was never attempted", url=url)

            if outcome.failed:
                error = outcome.exception()
                logger.error(
                    "Request failed, retries exhausted (url=%s, attempts=%d): %r", url, attempts, error
                )
                if isinstance(error, httpx.TransportError):
                    raise NetworkFailure(f"request to {url} failed: {error}", url=url) from error
                raise error

            response = outcome.result()
            logger.error(
                "Request failed, retries exhausted (url=%s, attempts=%d, status=%d)",
                url,
                attempts,
                response.status_code,
            )
            raise TransientFailure(response.status_code, response.reason_phrase, url=url)

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(exception_types) | retry_if_result(is_retryable_response),
            stop=stop,
            wait=wait,
            sleep=self._sleep,
            before_sleep=log_retry,
            retry_error_callback=exhausted,
        )
        async def attempt() -> httpx.Response:
            return await send()

        return await retrying(attempt)
