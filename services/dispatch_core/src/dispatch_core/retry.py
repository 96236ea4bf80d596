"""Retry scheduling: exponential backoff with jitter, and two ways to wait.

``ThreadedRetryScheduler`` keeps due retries in a heap inside the process.
``CeleryRetryScheduler`` hands them to the broker with a countdown so any
worker can pick them up.
"""

import heapq
import itertools
import logging
import random
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from celery import Celery

from dispatch_shared.log import message_context
from dispatch_shared.messages import Envelope

from dispatch_core.config import DispatchConfig

logger = logging.getLogger(__name__)

REDELIVER_TASK = "dispatch_core.tasks.redeliver"

JITTER_RATIO = 0.2


def base_delay_ms(attempt: int, base_ms: int, max_ms: int) -> int:
    """Return ``base * 2^(attempt-1)`` capped at *max_ms* (attempt is 1-based)."""
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    # Cap the exponent before shifting so huge attempt numbers stay cheap.
    exponent = min(attempt - 1, 62)
    return min(base_ms * (1 << exponent), max_ms)


def compute_backoff(
    attempt: int,
    base_ms: int,
    max_ms: int,
    rng: random.Random | None = None,
) -> int:
    """Return the delay before retry number *attempt*, in milliseconds.

    The capped exponential delay gets up to 20% random jitter on top so that
    messages failing together do not retry together.
    """
    delay = base_delay_ms(attempt, base_ms, max_ms)
    jitter = (rng or random).uniform(0, delay * JITTER_RATIO)
    return int(delay + jitter)


class RetryScheduler(ABC):
    """Computes retry delays and arranges for the dispatcher to resume later."""

    def __init__(self, config: DispatchConfig, rng: random.Random | None = None) -> None:
        self._config = config
        self._rng = rng or random.Random()

    def schedule_retry(self, envelope: Envelope, attempt: int) -> int:
        """Schedule a retry after failed attempt number *attempt*.

        Returns the delay in milliseconds.
        """
        settings = self._config.for_channel(envelope.channel)
        delay_ms = compute_backoff(
            attempt, settings.base_backoff_ms, settings.max_backoff_ms, self._rng
        )
        logger.info(
            "Retry scheduled",
            extra=message_context(
                envelope.idempotency_key,
                envelope.channel,
                attempt=attempt,
                delay_ms=delay_ms,
            ),
        )
        self._enqueue(envelope, delay_ms)
        return delay_ms

    def schedule_deferred(self, envelope: Envelope, delay_ms: int) -> None:
        """Re-run a send that was held back by the rate limiter.

        Deferrals do not consume the error-retry budget.
        """
        logger.debug(
            "Send deferred",
            extra=message_context(
                envelope.idempotency_key, envelope.channel, delay_ms=delay_ms
            ),
        )
        self._enqueue(envelope, delay_ms)

    @abstractmethod
    def _enqueue(self, envelope: Envelope, delay_ms: int) -> None:
        """Arrange for the envelope to be resumed after *delay_ms*."""


class ThreadedRetryScheduler(RetryScheduler):
    """In-process scheduler: one timer thread, a pool of dispatch threads.

    The timer thread only waits and hands due envelopes to the pool, so a
    slow vendor call never delays other retries. Call ``bind`` with the
    dispatcher's resume callable before ``start``.
    """

    def __init__(
        self,
        config: DispatchConfig,
        rng: random.Random | None = None,
        max_workers: int = 8,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(config, rng)
        self._clock = clock
        self._max_workers = max_workers
        self._heap: list[tuple[float, int, Envelope]] = []
        self._sequence = itertools.count()
        self._condition = threading.Condition()
        self._handler: Callable[[Envelope], Any] | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._thread: threading.Thread | None = None
        self._running = False

    def bind(self, handler: Callable[[Envelope], Any]) -> None:
        self._handler = handler

    def start(self) -> None:
        handler = self._handler
        if handler is None:
            raise RuntimeError("ThreadedRetryScheduler.bind() must be called before start()")
        with self._condition:
            if self._running:
                return
            self._running = True
        executor = self._executor = ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="dispatch-retry"
        )
        self._thread = threading.Thread(
            target=self._run,
            args=(executor, handler),
            name="dispatch-retry-timer",
            daemon=True,
        )
        self._thread.start()
        logger.info("Retry scheduler started", extra={"max_workers": self._max_workers})

    def stop(self, wait: bool = True) -> None:
        """Stop the timer; retries not yet due are dropped from memory.

        Their records stay ``pending``/``pending_retry`` in the state store.
        """
        with self._condition:
            self._running = False
            dropped = len(self._heap)
            self._heap.clear()
            self._condition.notify_all()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
        logger.info("Retry scheduler stopped", extra={"dropped": dropped})

    @property
    def pending(self) -> int:
        with self._condition:
            return len(self._heap)

    def _enqueue(self, envelope: Envelope, delay_ms: int) -> None:
        due = self._clock() + delay_ms / 1000.0
        with self._condition:
            heapq.heappush(self._heap, (due, next(self._sequence), envelope))
            self._condition.notify()

    def _run(
        self, executor: ThreadPoolExecutor, handler: Callable[[Envelope], Any]
    ) -> None:
        while True:
            with self._condition:
                while self._running and not self._due_now():
                    timeout = self._heap[0][0] - self._clock() if self._heap else None
                    self._condition.wait(timeout)
                if not self._running:
                    return
                _, _, envelope = heapq.heappop(self._heap)
            executor.submit(_resume, handler, envelope)

    def _due_now(self) -> bool:
        return bool(self._heap) and self._heap[0][0] <= self._clock()


def _resume(handler: Callable[[Envelope], Any], envelope: Envelope) -> None:
    try:
        handler(envelope)
    except Exception:
        logger.exception(
            "Retry failed",
            extra=message_context(envelope.idempotency_key, envelope.channel),
        )


class CeleryRetryScheduler(RetryScheduler):
    """Hands retries to Celery with a countdown.

    The envelope travels as JSON in the task kwargs; the ``redeliver`` task
    on whichever worker picks it up calls ``Dispatcher.resume``.
    """

    def __init__(
        self,
        celery_app: Celery,
        config: DispatchConfig,
        queue: str | None = None,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(config, rng)
        self._celery = celery_app
        self._queue = queue

    def _enqueue(self, envelope: Envelope, delay_ms: int) -> None:
        options: dict[str, Any] = {"countdown": delay_ms / 1000.0}
        if self._queue is not None:
            options["queue"] = self._queue
        self._celery.send_task(
            REDELIVER_TASK,
            kwargs={"envelope": envelope.model_dump(mode="json")},
            **options,
        )
