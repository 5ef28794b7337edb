from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from .errors import RetryExhaustedError, StoreError

logger = logging.getLogger(__name__)

DEFAULT_RETRYABLE_CODES = frozenset({"ProvisionedThroughputExceededException", "ThrottlingException"})


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    backoff_exponent: float = 2.0
    retryable_codes: frozenset[str] = field(default_factory=lambda: DEFAULT_RETRYABLE_CODES)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.backoff_exponent < 1:
            raise ValueError("backoff_exponent must be >= 1")
        object.__setattr__(self, "retryable_codes", frozenset(self.retryable_codes))

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the failure of 0-indexed ``attempt``."""
        return self.base_delay * (self.backoff_exponent**attempt)

    def is_retryable(self, err: BaseException) -> bool:
        return isinstance(err, StoreError) and err.code in self.retryable_codes


def run_with_retry[R](
    operation: Callable[[], R],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "operation",
) -> R:
    attempt = 0
    while True:
        try:
            return operation()
        except StoreError as err:
            if not policy.is_retryable(err):
                logger.info("%s failed with non-retryable error %s", description, err.code)
                raise

            if attempt >= policy.max_retries:
                logger.error(
                    "%s failed with %s; max retry attempts (%d) exceeded",
                    description,
                    err.code,
                    policy.max_retries,
                )
                raise RetryExhaustedError(attempts=attempt + 1, last_error=err) from err

            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed with %s (attempt %d); retrying after %.3fs",
                description,
                err.code,
                attempt + 1,
                delay,
            )
            if delay > 0:
                sleep(delay)
            attempt += 1


class RetryExecutor:
    def __init__(self, policy: RetryPolicy | None = None, *, sleep: Callable[[float], None] = time.sleep) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def run[R](self, operation: Callable[[], R], *, description: str = "operation") -> R:
        return run_with_retry(operation, self.policy, sleep=self._sleep, description=description)
