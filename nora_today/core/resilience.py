import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum

from nora_today.core.logging import DOMAIN_REMOTE, get_domain_logger

logger = get_domain_logger(__name__, DOMAIN_REMOTE)


async def retry_with_backoff(
    async_func,
    *,
    max_retries: int = 3,
    base_delay_seconds: float = 0.5,
    retryable_errors: tuple[type[Exception], ...] = (TimeoutError, ConnectionError, asyncio.TimeoutError),
    label: str = "remote",
):
    last_exception = None
    for attempt in range(max(1, max_retries)):
        try:
            return await async_func()
        except retryable_errors as exc:  # type: ignore[misc]
            last_exception = exc
            if attempt >= max_retries - 1:
                break
            delay = base_delay_seconds * (2**attempt)
            logger.info("Retrying %s after %s (attempt %d/%d, %.2fs)", label, type(exc).__name__, attempt + 1, max_retries, delay)
            await asyncio.sleep(delay)
    if last_exception:
        raise last_exception


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Per-service breaker. Every caller runs on the single event loop, so no locking."""

    name: str
    failure_threshold: int = 4
    recovery_timeout_seconds: float = 30.0
    half_open_max_calls: int = 1
    state: CircuitState = field(default=CircuitState.CLOSED)
    failure_count: int = field(default=0)
    last_failure_time: float = field(default=0.0)
    half_open_calls: int = field(default=0)

    def can_execute(self) -> bool:
        if self.state == CircuitState.CLOSED:
            return True
        if self.state == CircuitState.OPEN:
            if time.monotonic() - self.last_failure_time >= self.recovery_timeout_seconds:
                self.state = CircuitState.HALF_OPEN
                self.half_open_calls = 0
            else:
                return False
        if self.half_open_calls < self.half_open_max_calls:
            self.half_open_calls += 1
            return True
        return False

    def record_success(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.half_open_calls = 0

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.monotonic()
        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.warning("Circuit %s opened after %d failures", self.name, self.failure_count)
            self.state = CircuitState.OPEN
            self.half_open_calls = 0

    def status(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
        }


_registry: dict[str, CircuitBreaker] = {}


def get_breaker(name: str) -> CircuitBreaker:
    if name not in _registry:
        _registry[name] = CircuitBreaker(name=name)
    return _registry[name]


def get_breakers_status() -> dict[str, dict]:
    return {name: breaker.status() for name, breaker in _registry.items()}


def reset_breakers() -> None:
    """Drop every breaker (e.g. for tests)."""
    _registry.clear()
