import logging
import threading
from typing import Any, Callable, Dict, Hashable, List, Optional

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler

from finance_tracker.exceptions import InvalidRecurrenceError
from finance_tracker.scheduler.recurrence import RecurrenceRule, build_trigger, cron_expression

logger = logging.getLogger(__name__)

# Seconds a missed fire may still run late (e.g. after a busy event loop)
MISFIRE_GRACE_SECONDS = 300


def job_id_for(key: Hashable) -> str:
    """APScheduler job id for a registry key."""
    if isinstance(key, str) and not key.isdigit():
        return key
    return f"reminder_{key}"


class JobRegistry:
    """Owns the live APScheduler jobs, at most one per reminder id.

    ``register``/``cancel``/``cancel_all`` may be called concurrently from API
    handlers and scheduler callbacks; the id-to-job map is guarded by a lock.
    Cancelling only prevents future fires, a callback already running is left
    to finish.
    """

    def __init__(self, scheduler: BaseScheduler):
        self.scheduler = scheduler
        self._jobs: Dict[Hashable, Job] = {}
        self._lock = threading.Lock()

    def register(
        self,
        key: Hashable,
        rule: RecurrenceRule,
        callback: Callable[..., Any],
        *args: Any,
    ) -> Optional[Job]:
        """
        Start a recurring job for *key*, replacing any existing one.

        Args:
            key: Reminder id (or a named system job such as the catch-up sweep)
            rule: Recurrence rule translated into a cron trigger
            callback: Callable invoked on every fire
            *args: Positional arguments passed to *callback*

        Returns:
            The scheduled job, or None if the rule could not be turned into a trigger
        """
        with self._lock:
            self._cancel_locked(key)

            try:
                trigger = build_trigger(rule)
            except InvalidRecurrenceError as e:
                logger.error(f"Not scheduling {key}: {str(e)}")
                return None

            job = self.scheduler.add_job(
                callback,
                trigger,
                id=job_id_for(key),
                replace_existing=True,
                args=list(args),
                coalesce=True,
                misfire_grace_time=MISFIRE_GRACE_SECONDS,
            )
            self._jobs[key] = job

        logger.info(f"Scheduled job {job.id} with pattern {cron_expression(rule)}")
        return job

    def cancel(self, key: Hashable) -> bool:
        """Stop and forget the job for *key*. Returns False if there was none."""
        with self._lock:
            removed = self._cancel_locked(key)
        if removed:
            logger.info(f"Removed job {job_id_for(key)}")
        return removed

    def cancel_all(self) -> int:
        """Stop every registered job, system jobs included. Returns the count."""
        with self._lock:
            keys = list(self._jobs)
            for key in keys:
                self._cancel_locked(key)
        if keys:
            logger.info(f"Removed {len(keys)} scheduled jobs")
        return len(keys)

    def _cancel_locked(self, key: Hashable) -> bool:
        job = self._jobs.pop(key, None)
        if job is None:
            return False
        try:
            job.remove()
        except JobLookupError:
            # Already gone from the scheduler (e.g. after a shutdown)
            logger.debug(f"Job {job.id} was not in the scheduler")
        return True

    def get(self, key: Hashable) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(key)

    def keys(self) -> List[Hashable]:
        with self._lock:
            return list(self._jobs)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
