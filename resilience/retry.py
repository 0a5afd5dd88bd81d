"""
Resilience - Retry.

============================================================
PURPOSE
============================================================
Exponential backoff for awaited calls and for fire-and-forget
background jobs (repository writes).

delay(attempt) = min(base * multiplier ** attempt, max)

where attempt is the number of failures so far minus one,
so the first retry waits `base`.

============================================================
USAGE
============================================================
    policy = RetryPolicy(max_attempts=3, base_delay_seconds=0.2)
    value = await retry_async(lambda: client.fetch(x), policy, key="fetch")

    queue = RetryQueue(RetryPolicy())
    queue.enqueue("position:42:close", lambda: repo.update_position(...))
    await queue.drain()

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]


# ============================================================
# POLICY
# ============================================================

@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters."""

    max_attempts: int = 5
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 10.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("delays must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Backoff after the failure of attempt number `attempt` (0-based)."""
        return min(self.base_delay_seconds * (self.multiplier ** attempt), self.max_delay_seconds)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "base_delay_seconds": self.base_delay_seconds,
            "max_delay_seconds": self.max_delay_seconds,
            "multiplier": self.multiplier,
        }


# ============================================================
# INLINE RETRY
# ============================================================

async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    key: str = "operation",
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """
    Await operation, retrying with backoff on the listed exceptions.

    Exceptions outside retry_on propagate immediately. When attempts
    are exhausted the last error is re-raised unchanged.
    """
    for attempt in range(policy.max_attempts):
        try:
            return await operation()
        except retry_on as e:
            if attempt + 1 >= policy.max_attempts:
                logger.warning(f"[{key}] failed after {policy.max_attempts} attempts: {e}")
                raise
            delay = policy.delay_for(attempt)
            logger.debug(
                f"[{key}] attempt {attempt + 1}/{policy.max_attempts} failed: {e}, "
                f"retrying in {delay:.2f}s"
            )
            await sleep(delay)
    raise AssertionError("unreachable")


# ============================================================
# BACKGROUND RETRY QUEUE
# ============================================================

@dataclass
class DeadLetter:
    """Job that exhausted its attempts."""
    key: str
    attempts: int
    error: str
    failed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "attempts": self.attempts,
            "error": self.error,
            "failed_at": self.failed_at.isoformat(),
        }


class RetryQueue:
    """
    Keyed background retries for jobs whose outcome the caller
    does not wait on.

    - Enqueueing a key that is still pending replaces the pending job
    - Exhausted jobs are logged at error level and kept in dead_letters
    - Must be used from inside a running event loop
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: SleepFn = asyncio.sleep,
        max_dead_letters: int = 1000,
    ):
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._tasks: Dict[str, asyncio.Task] = {}
        self._dead_letters: List[DeadLetter] = []
        self._max_dead_letters = max_dead_letters
        self._completed = 0

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    @property
    def completed_count(self) -> int:
        return self._completed

    @property
    def dead_letters(self) -> List[DeadLetter]:
        return list(self._dead_letters)

    def enqueue(self, key: str, job: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        """Schedule job under key and return its task."""
        previous = self._tasks.pop(key, None)
        if previous is not None and not previous.done():
            logger.debug(f"[retry_queue] replacing pending job {key}")
            previous.cancel()

        task = asyncio.get_running_loop().create_task(self._run(key, job))
        self._tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._forget(k, t))
        return task

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every pending job to finish (success or dead letter)."""
        while True:
            tasks = [t for t in self._tasks.values() if not t.done()]
            if not tasks:
                return
            _, pending = await asyncio.wait(tasks, timeout=timeout)
            if pending:
                logger.warning(f"[retry_queue] drain timed out with {len(pending)} jobs pending")
                return

    async def close(self) -> None:
        """Cancel pending jobs."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def _run(self, key: str, job: Callable[[], Awaitable[Any]]) -> bool:
        last_error: Optional[BaseException] = None
        for attempt in range(self._policy.max_attempts):
            try:
                await job()
                self._completed += 1
                if attempt:
                    logger.info(f"[retry_queue] {key} succeeded on attempt {attempt + 1}")
                return True
            except Exception as e:
                last_error = e
                if attempt + 1 >= self._policy.max_attempts:
                    break
                delay = self._policy.delay_for(attempt)
                logger.warning(f"[retry_queue] retrying {key} after {delay:.2f}s: {e}")
                await self._sleep(delay)

        logger.error(
            f"[retry_queue] max retry attempts reached for {key}: {last_error}"
        )
        self._dead_letters.append(
            DeadLetter(key=key, attempts=self._policy.max_attempts, error=str(last_error))
        )
        if len(self._dead_letters) > self._max_dead_letters:
            self._dead_letters = self._dead_letters[-self._max_dead_letters:]
        return False

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
