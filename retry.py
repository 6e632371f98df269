"""Retry, backoff and single-flight admission for outbound API calls.

Both upstream clients share this wrapper. A call is admitted only when no
other call for the same service is in flight; once admitted it is attempted
up to ``max_retries + 1`` times. 429 and 5xx responses are retried after an
exponential delay with jitter, or after the upstream Retry-After when one is
given. The final response is handed back as-is, whatever its status: deciding
what an exhausted retry means is left to the calling client.
"""

from __future__ import annotations

import math
import random
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import requests
from loguru import logger

from errors import ServiceBusy, TransportError

MAX_RETRIES = 2
BASE_DELAY_S = 1.0
JITTER_S = 0.5
BUSY_RETRY_AFTER_S = 2
DEFAULT_WAIT_S = 5


def is_retryable_status(status: int) -> bool:
    return status == 429 or status >= 500


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds; None if absent or unusable."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if seconds <= 0:
        return None
    return seconds


def wait_hint(response: requests.Response, default: int = DEFAULT_WAIT_S) -> int:
    """Whole seconds a client should wait, taken from Retry-After when present."""
    seconds = parse_retry_after(response.headers.get("retry-after"))
    if seconds is None:
        return default
    return math.ceil(seconds)


def backoff_delay(
    attempt: int,
    retry_after: Optional[float] = None,
    base_delay: float = BASE_DELAY_S,
    jitter: float = JITTER_S,
    rand: Callable[[], float] = random.random,
) -> float:
    if retry_after is not None:
        return retry_after
    return base_delay * (2 ** attempt) + rand() * jitter


class AdmissionGate:
    """Busy flag for one upstream service.

    The flag is held for a whole retry sequence; a second caller is turned
    away immediately instead of queueing behind the first.
    """

    def __init__(self, name: str, retry_after: int = BUSY_RETRY_AFTER_S) -> None:
        self.name = name
        self.retry_after = retry_after
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def admit(self) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            logger.warning(f"{self.name}: rejecting call, another one is in flight")
            raise ServiceBusy(self.name, self.retry_after)
        try:
            yield
        finally:
            self._lock.release()


class RetryingCaller:
    def __init__(
        self,
        gate: AdmissionGate,
        max_retries: int = MAX_RETRIES,
        base_delay: float = BASE_DELAY_S,
        jitter: float = JITTER_S,
        is_retryable: Callable[[int], bool] = is_retryable_status,
        sleep: Callable[[float], None] = time.sleep,
        rand: Callable[[], float] = random.random,
    ) -> None:
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        self.gate = gate
        self.max_retries = max_retries
        self._base_delay = base_delay
        self._jitter = jitter
        self._is_retryable = is_retryable
        self._sleep = sleep
        self._rand = rand

    def call(self, send: Callable[[], requests.Response]) -> requests.Response:
        """Run ``send`` under the service's busy flag, retrying as needed.

        Raises:
            ServiceBusy: another call for the same service is in flight.
            TransportError: the final attempt failed before any response.
        """
        with self.gate.admit():
            return self._attempt_all(send)

    def _attempt_all(self, send: Callable[[], requests.Response]) -> requests.Response:
        name = self.gate.name
        for attempt in range(self.max_retries + 1):
            final = attempt == self.max_retries
            try:
                response = send()
            except requests.RequestException as exc:
                if final:
                    logger.error(f"{name}: transport failure after {attempt + 1} attempts: {exc}")
                    raise TransportError(str(exc)) from exc
                delay = self._delay(attempt)
                logger.warning(f"{name}: transport failure ({exc}), retry {attempt + 1} in {delay:.2f}s")
                self._sleep(delay)
                continue

            status = response.status_code
            if final or not self._is_retryable(status):
                return response

            retry_after = parse_retry_after(response.headers.get("retry-after"))
            delay = self._delay(attempt, retry_after)
            logger.warning(f"{name}: upstream returned {status}, retry {attempt + 1} in {delay:.2f}s")
            self._sleep(delay)

        # range() always reaches the final attempt, which returns or raises
        raise AssertionError("unreachable")

    def _delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        return backoff_delay(attempt, retry_after, self._base_delay, self._jitter, self._rand)
