"""
Resilience around external collaborators.

Each logical call gets a per-attempt timeout, bounded retry with
exponential backoff (tenacity), and a circuit breaker that fails fast
after repeated exhausted calls.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from lead_scoring.errors import CircuitOpenError, CompletionFailure
from lead_scoring.metrics import record_circuit_state, record_llm_latency

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerState:
    """Mutable breaker state."""
    failures: int = 0
    last_failure_time: float = 0.0
    is_open: bool = False
    open_until: float = 0.0
    probe_in_flight: bool = False


class CircuitBreaker:
    """
    Counts consecutive failed calls and opens after the threshold.

    While open, calls fail fast with CircuitOpenError. Once the reset timeout
    elapses the breaker is half-open: one call is let through, and its outcome
    closes or re-opens the circuit.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._state = CircuitBreakerState()

    @property
    def state(self) -> CircuitState:
        if not self._state.is_open:
            return CircuitState.CLOSED
        if self._clock() >= self._state.open_until:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    @property
    def failures(self) -> int:
        return self._state.failures

    def before_call(self) -> None:
        """Raise CircuitOpenError if the circuit is open or its half-open probe is taken."""
        state = self.state
        if state is CircuitState.OPEN:
            raise CircuitOpenError(self.name, self._state.open_until - self._clock())
        if state is CircuitState.HALF_OPEN:
            if self._state.probe_in_flight:
                raise CircuitOpenError(self.name, 0.0)
            self._state.probe_in_flight = True

    def release_probe(self) -> None:
        """Free the half-open slot when the probe ended without an outcome."""
        self._state.probe_in_flight = False

    def record_success(self) -> None:
        if self._state.is_open:
            logger.info(f"Circuit '{self.name}' closed")
            record_circuit_state(self.name, False)
        self._state = CircuitBreakerState()

    def record_failure(self) -> None:
        was_half_open = self.state is CircuitState.HALF_OPEN
        self._state.failures += 1
        self._state.last_failure_time = self._clock()
        self._state.probe_in_flight = False

        if was_half_open or self._state.failures >= self.failure_threshold:
            self._state.is_open = True
            self._state.open_until = self._clock() + self.reset_timeout
            logger.warning(
                f"Circuit '{self.name}' opened after {self._state.failures} failures, "
                f"reset in {self.reset_timeout}s"
            )
            record_circuit_state(self.name, True)

    def reset(self) -> None:
        self._state = CircuitBreakerState()
        record_circuit_state(self.name, False)


class ResilientCaller:
    """Runs coroutine calls with timeout, retry and a circuit breaker."""

    def __init__(
        self,
        breaker: CircuitBreaker,
        max_attempts: int = 3,
        backoff_min: float = 0.5,
        backoff_max: float = 8.0,
        timeout: Optional[float] = 30.0,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    ):
        self.breaker = breaker
        self.max_attempts = max_attempts
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self.timeout = timeout
        self.retry_on = retry_on

    async def call(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Call fn(*args, **kwargs) under the policy.

        Raises:
            CircuitOpenError: the breaker is open; fn was not called
            Exception: the last attempt's exception once retries are exhausted
        """
        self.breaker.before_call()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_min, min=self.backoff_min, max=self.backoff_max),
            retry=retry_if_exception_type(self.retry_on),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    number = attempt.retry_state.attempt_number
                    if number > 1:
                        logger.info(f"Retrying '{self.breaker.name}' (attempt {number}/{self.max_attempts})")
                    result = await asyncio.wait_for(fn(*args, **kwargs), timeout=self.timeout)
        except asyncio.CancelledError:
            self.breaker.release_probe()
            raise
        except Exception:
            self.breaker.record_failure()
            raise

        self.breaker.record_success()
        return result


class ResilientCompletion:
    """
    TextCompletion wrapper.

    Any failure (timeout, provider error, empty output) surfaces as
    CompletionFailure; an open circuit surfaces as CircuitOpenError.
    """

    def __init__(self, inner: Any, caller: ResilientCaller, operation: str = "completion"):
        self.inner = inner
        self.caller = caller
        self.operation = operation

    async def complete(
        self,
        system: str,
        user_text: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        start = time.time()
        try:
            text = await self.caller.call(
                self._complete_once, system, user_text, max_tokens, temperature
            )
        except CircuitOpenError:
            raise
        except Exception as e:
            raise CompletionFailure(f"Text completion failed: {e}") from e
        finally:
            record_llm_latency(self.operation, time.time() - start)

        return text

    async def _complete_once(
        self,
        system: str,
        user_text: str,
        max_tokens: Optional[int],
        temperature: Optional[float],
    ) -> str:
        text = await self.inner.complete(system, user_text, max_tokens=max_tokens, temperature=temperature)
        if not text or not text.strip():
            raise CompletionFailure("Text completion returned empty output")
        return text
