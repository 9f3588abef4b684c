"""
Retry Executor with Exponential Backoff

Runs one backend operation with per-attempt timeouts and retries transient
failures using tenacity.

Backoff:
    delay before retry n (n >= 1) = min(base_delay * multiplier ** (n - 1), max_delay)
    optionally jittered by a uniform factor in [0.5, 1.5]

Retryable by default:
- Network failures (connection reset/refused, DNS, NetworkError)
- Timeouts (per-attempt timeout, BackendTimeoutError)
- HTTP 5xx and HTTP 429
Everything else (4xx, invalid responses, programming errors) fails fast.

Architectural Decision: tenacity AsyncRetrying instead of a hand-rolled loop
- Stop/wait/retry strategies are composable and individually testable
- The sleep function is injectable so tests run without real delays
- ``reraise=True`` surfaces the last real error, never a RetryError

Author: System Architect
Date: 2025-12-16
"""

import asyncio
import random
import socket
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

from search_dispatch.core.config.constants import (
    BACKEND_RETRY_PRESETS,
    MAX_RETRIES,
    RETRY_BACKOFF_MULTIPLIER,
    RETRY_BASE_DELAY,
    RETRY_JITTER_RATIO,
    RETRY_MAX_DELAY,
    Stage,
)
from search_dispatch.core.config.settings import RetrySettings
from search_dispatch.core.exceptions import (
    BackendHTTPError,
    BackendTimeoutError,
    InvalidResponseError,
    NetworkError,
    RateLimitedError,
)
from search_dispatch.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

AttemptCallback = Callable[[bool, BaseException | None, float], None]


def _status_code_of(error: BaseException) -> int | None:
    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(getattr(error, "response", None), "status_code", None)
    return status if isinstance(status, int) else None


def http_status_retry_condition(error: BaseException) -> bool:
    """Retry only HTTP 5xx and 429 responses."""
    status = _status_code_of(error)
    return status is not None and (status >= 500 or status == 429)


def default_retry_condition(error: BaseException) -> bool:
    """
    Classify an error as transient (retry) or terminal.

    Duck-types ``status_code`` / ``response.status_code`` so third-party HTTP
    errors are classified like BackendHTTPError.
    """
    if isinstance(error, InvalidResponseError):
        return False
    if isinstance(error, BackendTimeoutError | asyncio.TimeoutError | TimeoutError):
        return True
    if isinstance(error, NetworkError | ConnectionError | socket.gaierror):
        return True
    if isinstance(error, RateLimitedError):
        return True
    if _status_code_of(error) is not None:
        return http_status_retry_condition(error)
    return "timeout" in str(error).lower()


RETRY_CONDITIONS: dict[str, Callable[[BaseException], bool]] = {
    "default": default_retry_condition,
    "http_only": http_status_retry_condition,
}


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry configuration for one backend.

    Attributes:
        max_retries: Retries after the first attempt (attempts = max_retries + 1)
        base_delay: Delay before the first retry (seconds)
        max_delay: Upper bound for any single delay (seconds)
        backoff_multiplier: Growth factor between consecutive delays
        jitter: Multiply each delay by a uniform factor in [0.5, 1.5]
        timeout: Per-attempt timeout (seconds), None for no limit
        retry_condition: Predicate deciding whether an error is retryable
    """

    max_retries: int = MAX_RETRIES
    base_delay: float = RETRY_BASE_DELAY
    max_delay: float = RETRY_MAX_DELAY
    backoff_multiplier: float = RETRY_BACKOFF_MULTIPLIER
    jitter: bool = False
    timeout: float | None = None
    retry_condition: Callable[[BaseException], bool] = field(
        default=default_retry_condition, compare=False
    )

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryPolicy":
        return cls(
            max_retries=settings.RETRY_MAX_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY,
            max_delay=settings.RETRY_MAX_DELAY,
            backoff_multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
            jitter=settings.RETRY_JITTER,
        )

    @classmethod
    def for_backend(cls, config: Any, defaults: RetrySettings | None = None) -> "RetryPolicy":
        """
        Build the effective policy for a backend.

        Layering (later wins): settings defaults, then the named preset
        (``config.retry_preset``), then the backend's own fields. The
        backend's ``max_retry_attempts`` and ``timeout`` are always explicit.
        """
        policy = cls.from_settings(defaults) if defaults is not None else cls()

        preset_name = getattr(config, "retry_preset", None)
        if preset_name:
            preset = dict(BACKEND_RETRY_PRESETS.get(preset_name, BACKEND_RETRY_PRESETS["default"]))
            condition = RETRY_CONDITIONS[preset.pop("retry_on", "default")]
            policy = replace(policy, retry_condition=condition, **preset)

        overrides: dict[str, Any] = {
            "max_retries": config.max_retry_attempts,
            "timeout": config.timeout,
        }
        if getattr(config, "retry_base_delay", None) is not None:
            overrides["base_delay"] = config.retry_base_delay
        if getattr(config, "retry_max_delay", None) is not None:
            overrides["max_delay"] = config.retry_max_delay
        if getattr(config, "backoff_multiplier", None) is not None:
            overrides["backoff_multiplier"] = config.backoff_multiplier
        return replace(policy, **overrides)

    def delay_for(self, retry_number: int, rng: random.Random | None = None) -> float:
        """Delay before retry ``retry_number`` (1-based)."""
        delay = min(
            self.base_delay * (self.backoff_multiplier ** (retry_number - 1)), self.max_delay
        )
        if self.jitter:
            rng = rng or random
            delay *= rng.uniform(1 - RETRY_JITTER_RATIO, 1 + RETRY_JITTER_RATIO)
        return max(0.0, delay)


class wait_policy_backoff(wait_base):
    """tenacity wait strategy delegating to RetryPolicy.delay_for()."""

    def __init__(self, policy: RetryPolicy, rng: random.Random | None = None):
        self.policy = policy
        self.rng = rng

    def __call__(self, retry_state: RetryCallState) -> float:
        return self.policy.delay_for(retry_state.attempt_number, self.rng)


class RetryExecutor:
    """
    Executes operations under a RetryPolicy.

    Usage:
        executor = RetryExecutor()
        results = await executor.run(
            lambda: backend.search(query, options),
            RetryPolicy.for_backend(backend.config),
            on_attempt=lambda ok, err, elapsed: health.record(backend.id, ok, elapsed, err),
            label=backend.id,
        )
    """

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ):
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        on_attempt: AttemptCallback | None = None,
        label: str | None = None,
    ) -> T:
        """
        Run ``operation`` until it succeeds, fails terminally or attempts run out.

        STAGE-R.1: Retry execution

        Raises:
            BackendTimeoutError: The last attempt exceeded ``policy.timeout``
            Exception: The last error raised by ``operation``
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_retries + 1),
            wait=wait_policy_backoff(policy, self._rng),
            retry=retry_if_exception(policy.retry_condition),
            sleep=self._sleep,
            before_sleep=self._log_retry(label),
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                result = await self._attempt(operation, policy, on_attempt, label)
        return result

    async def _attempt(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        on_attempt: AttemptCallback | None,
        label: str | None,
    ) -> T:
        started = self._clock()
        try:
            if policy.timeout is not None:
                result = await asyncio.wait_for(operation(), timeout=policy.timeout)
            else:
                result = await operation()
        except asyncio.TimeoutError as e:
            error = BackendTimeoutError(
                f"Attempt timed out after {policy.timeout}s",
                backend_id=label,
                details={"timeout": policy.timeout},
            )
            self._notify(on_attempt, False, error, self._clock() - started)
            raise error from e
        except Exception as e:
            self._notify(on_attempt, False, e, self._clock() - started)
            raise
        self._notify(on_attempt, True, None, self._clock() - started)
        return result

    @staticmethod
    def _notify(
        on_attempt: AttemptCallback | None,
        success: bool,
        error: BaseException | None,
        elapsed: float,
    ) -> None:
        if on_attempt is None:
            return
        try:
            on_attempt(success, error, elapsed)
        except Exception as e:
            logger.warning("Attempt callback failed", stage="R.3", error=str(e))

    @staticmethod
    def _log_retry(label: str | None) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "Retrying after transient failure",
                stage=Stage.RETRY.value,
                backend_id=label,
                attempt=retry_state.attempt_number,
                delay=round(retry_state.upcoming_sleep, 3),
                error_type=type(error).__name__ if error else None,
                error=str(error) if error else None,
            )

        return before_sleep
