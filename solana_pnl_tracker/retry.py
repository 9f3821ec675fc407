import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from . import constants as C
from .errors import RetriesExhausted, ScanCancelled, TransientRpcError

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = C.RETRY_MAX_RETRIES
    base_delay: float = C.RETRY_BASE_DELAY_SEC
    growth: float = C.RETRY_GROWTH
    max_delay: float = C.RETRY_MAX_DELAY_SEC
    max_jitter: float = C.RETRY_MAX_JITTER_SEC

    def delays(self):
        """Backoff series without jitter, one entry per retry."""
        d = self.base_delay
        for _ in range(self.max_retries):
            yield d
            d = min(self.max_delay, d * self.growth)


DEFAULT_POLICY = RetryPolicy()


def check_cancelled(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise ScanCancelled("scan cancelled")


def pause(seconds: float, cancel: Optional[threading.Event] = None,
          sleep: Callable[[float], None] = time.sleep) -> None:
    check_cancelled(cancel)
    if seconds <= 0:
        return
    if cancel is not None:
        if cancel.wait(timeout=seconds):
            raise ScanCancelled("scan cancelled")
        return
    sleep(seconds)


def with_retry(fn: Callable[[], T], label: str, policy: RetryPolicy = DEFAULT_POLICY,
               sleep: Callable[[float], None] = time.sleep,
               cancel: Optional[threading.Event] = None,
               rand: Callable[[], float] = random.random) -> T:
    """
    Call `fn`, retrying TransientRpcError with exponential backoff + jitter.

    Anything else propagates on the first failure. After `policy.max_retries`
    retries the last transient error is re-raised as RetriesExhausted.
    """
    attempt = 0
    delay = policy.base_delay
    while True:
        check_cancelled(cancel)
        try:
            return fn()
        except TransientRpcError as e:
            if attempt >= policy.max_retries:
                raise RetriesExhausted(f"{label} failed after {attempt + 1} attempts: {e}",
                                       method=e.method, attempts=attempt + 1) from e
            wait = delay + rand() * policy.max_jitter
            attempt += 1
            logger.warning("Retrying %s (attempt %d/%d) due to: %s",
                           label, attempt, policy.max_retries, e)
            pause(wait, cancel, sleep)
            delay = min(policy.max_delay, delay * policy.growth)
