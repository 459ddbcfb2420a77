# src/siteagent/engine/substrate.py
"""Execution substrate: run activities with retry, run and schedule workflows.

The engine only configures policy; the substrate owns the retry loop,
per-attempt timeouts and cron scheduling. LocalSubstrate is the
in-process implementation: tenacity for backoff, a bounded thread pool
for workflows, croniter for schedules.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Protocol

from croniter import croniter
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from siteagent.contracts.errors import ActivityFailedError, ActivityTimeoutError, is_retryable
from siteagent.contracts.retry import ActivityOptions
from siteagent.core.logging import get_logger
from siteagent.engine.registry import ActivityRegistry

logger = get_logger(__name__)


class ExecutionSubstrate(Protocol):
    """Primitives the engine consumes."""

    activities: ActivityRegistry
    workflows: ActivityRegistry

    def execute_activity(self, name: str, *args: Any, options: ActivityOptions) -> Any:
        """Run a registered activity under a timeout and retry policy.

        Raises:
            ActivityFailedError: When the final attempt fails
            UnknownActivityError: If the name is not registered
        """
        ...

    def start_workflow(self, name: str, *args: Any) -> Future[Any]:
        """Start a registered workflow and return its future."""
        ...

    def schedule(self, name: str, queue: str, cron: str) -> None:
        """Run a registered workflow on a cron schedule."""
        ...


@dataclass
class _Schedule:
    name: str
    queue: str
    cron: str
    next_fire: float


class LocalSubstrate:
    """In-process execution substrate.

    Activity attempts run on a dedicated pool so a start-to-close timeout can
    abandon them. An abandoned attempt keeps its thread until the call
    returns; its result is discarded.
    """

    def __init__(
        self,
        *,
        max_workers: int = 16,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the substrate.

        Args:
            max_workers: Workflows that may run concurrently
            sleep: Backoff sleep (tests inject a no-op)
            clock: Wall clock for cron scheduling
        """
        self.activities = ActivityRegistry("activity")
        self.workflows = ActivityRegistry("workflow")
        self._sleep = sleep
        self._clock = clock
        self._workflow_pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="siteagent-workflow")
        self._attempt_pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="siteagent-activity")
        self._schedules: list[_Schedule] = []
        self._schedule_lock = threading.Lock()
        self._stop = threading.Event()
        self._scheduler: threading.Thread | None = None

    # -- activities -----------------------------------------------------

    def execute_activity(self, name: str, *args: Any, options: ActivityOptions) -> Any:
        handler = self.activities.get(name)
        policy = options.retry_policy
        attempt = 0

        def log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                "Activity attempt failed, retrying",
                activity=name,
                attempt=retry_state.attempt_number,
                max_attempts=policy.maximum_attempts,
                delay_seconds=delay,
                error=str(error),
            )

        try:
            for attempt_state in Retrying(
                stop=stop_after_attempt(policy.maximum_attempts),
                wait=wait_exponential(
                    multiplier=policy.initial_interval,
                    exp_base=policy.backoff_coefficient,
                    max=policy.maximum_interval,
                ),
                retry=retry_if_exception(is_retryable),
                sleep=self._sleep,
                before_sleep=log_retry,
                reraise=False,
            ):
                with attempt_state:
                    attempt = attempt_state.retry_state.attempt_number
                    return self._run_attempt(name, handler, args, options.start_to_close_timeout)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            assert last_error is not None, "RetryError without exception is impossible"
            raise ActivityFailedError(name, attempt, last_error) from last_error
        except Exception as e:
            # Non-retryable: tenacity re-raises the attempt's own exception
            raise ActivityFailedError(name, attempt, e) from e

        raise RuntimeError("Unexpected state in retry loop")  # pragma: no cover

    def _run_attempt(self, name: str, handler: Callable[..., Any], args: tuple[Any, ...], timeout: float) -> Any:
        future = self._attempt_pool.submit(handler, *args)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as e:
            future.cancel()
            raise ActivityTimeoutError(name, timeout) from e

    # -- workflows ------------------------------------------------------

    def start_workflow(self, name: str, *args: Any) -> Future[Any]:
        handler = self.workflows.get(name)
        return self._workflow_pool.submit(handler, *args)

    def schedule(self, name: str, queue: str, cron: str) -> None:
        """Register a cron schedule for a workflow.

        Raises:
            ValueError: If the cron expression is invalid
            UnknownActivityError: If the workflow is not registered
        """
        if not croniter.is_valid(cron):
            raise ValueError(f"invalid cron expression: {cron!r}")
        self.workflows.get(name)
        next_fire = croniter(cron, self._clock()).get_next(float)
        with self._schedule_lock:
            self._schedules.append(_Schedule(name=name, queue=queue, cron=cron, next_fire=next_fire))
        logger.info("Workflow scheduled", workflow=name, queue=queue, cron=cron)

    def run_due(self, now: float | None = None) -> list[Future[Any]]:
        """Start every scheduled workflow whose fire time has passed."""
        now = self._clock() if now is None else now
        started: list[Future[Any]] = []
        with self._schedule_lock:
            due = [entry for entry in self._schedules if entry.next_fire <= now]
            for entry in due:
                entry.next_fire = croniter(entry.cron, now).get_next(float)
        for entry in due:
            logger.debug("Starting scheduled workflow", workflow=entry.name, queue=entry.queue)
            started.append(self.start_workflow(entry.name))
        return started

    def _seconds_until_next(self) -> float:
        with self._schedule_lock:
            if not self._schedules:
                return 60.0
            soonest = min(entry.next_fire for entry in self._schedules)
        return max(0.0, soonest - self._clock())

    def start(self) -> None:
        """Start the cron scheduler thread (idempotent)."""
        if self._scheduler is not None:
            return
        self._scheduler = threading.Thread(target=self._schedule_loop, name="siteagent-scheduler", daemon=True)
        self._scheduler.start()

    def _schedule_loop(self) -> None:
        while not self._stop.wait(min(self._seconds_until_next(), 60.0)):
            self.run_due()

    @property
    def scheduled(self) -> list[tuple[str, str, str]]:
        with self._schedule_lock:
            return [(entry.name, entry.queue, entry.cron) for entry in self._schedules]

    def close(self, wait: bool = True) -> None:
        self._stop.set()
        if self._scheduler is not None:
            self._scheduler.join(timeout=5.0)
        self._workflow_pool.shutdown(wait=wait)
        self._attempt_pool.shutdown(wait=False, cancel_futures=True)
