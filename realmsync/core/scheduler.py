"""Cluster-aware periodic task scheduling.

Each scheduled task is an interval job in a local APScheduler. On every tick
the task runner tries to take the cluster lock named after the task (ttl =
interval); only the node holding the lock runs the task for that window. Nodes
that miss the lock skip the window.
"""
from __future__ import annotations
import logging
import threading
import time
from typing import Any, Callable, Optional, Protocol

import redis
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .exceptions import LockUnavailableError
from .models import ScheduledTask, generate_id

logger = logging.getLogger(__name__)

IDLE = "idle"
LOCKED = "locked"
RUNNING = "running"


def federation_task_name(realm_id: str, federation_id: str) -> str:
    return f"{realm_id}_FederationSync_{federation_id}"


def provider_refresh_task_name(realm_id: str, alias: str) -> str:
    return f"{realm_id}_AutoUpdateIdP_{alias}"


class ClusterLock(Protocol):
    def try_acquire(self, key: str, ttl_seconds: float) -> bool: ...

    def release(self, key: str) -> None: ...


# ─────────────────────────────────────────────────────────────────────────────
# Lock backends
# ─────────────────────────────────────────────────────────────────────────────
class _LockTable:
    def __init__(self):
        self.mutex = threading.Lock()
        self.entries: dict[str, tuple[str, float]] = {}


class InMemoryClusterLock:
    """Process-local cluster lock with ttl expiry.

    Instances created with ``for_node`` share one lock table, which lets a
    single process stand in for several cluster nodes.

    Usage:
        node_a = InMemoryClusterLock(owner="a")
        node_b = node_a.for_node("b")
        node_a.try_acquire("task", 60)   # True
        node_b.try_acquire("task", 60)   # False until released or expired
    """

    def __init__(
        self,
        owner: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
        table: Optional[_LockTable] = None,
    ):
        self.owner = owner or generate_id()
        self.clock = clock
        self._table = table or _LockTable()

    def for_node(self, owner: str) -> "InMemoryClusterLock":
        return InMemoryClusterLock(owner=owner, clock=self.clock, table=self._table)

    def try_acquire(self, key: str, ttl_seconds: float) -> bool:
        now = self.clock()
        with self._table.mutex:
            entry = self._table.entries.get(key)
            if entry is not None and entry[1] > now:
                return False
            self._table.entries[key] = (self.owner, now + ttl_seconds)
            return True

    def release(self, key: str) -> None:
        with self._table.mutex:
            entry = self._table.entries.get(key)
            # Expired and taken over by another node: not ours to release
            if entry is not None and entry[0] == self.owner:
                del self._table.entries[key]

    def holder(self, key: str) -> Optional[str]:
        now = self.clock()
        with self._table.mutex:
            entry = self._table.entries.get(key)
            if entry is None or entry[1] <= now:
                return None
            return entry[0]


class RedisClusterLock:
    """Cluster lock backed by Redis ``SET NX PX`` with token-checked release.

    Redis failures are logged and reported as "not acquired", so a window is
    skipped rather than run without exclusion.
    """

    KEY_PREFIX = "realmsync:lock:"

    # Delete only if the stored token is ours
    RELEASE_SCRIPT = """
    if redis.call('get', KEYS[1]) == ARGV[1] then
        return redis.call('del', KEYS[1])
    else
        return 0
    end
    """

    def __init__(self, client: Optional[Any] = None, url: Optional[str] = None):
        """Initialize the lock.

        Args:
            client: Redis client (takes precedence over ``url``)
            url: Redis URL, e.g. ``redis://redis:6379/0``
        """
        self.client = client if client is not None else redis.Redis.from_url(url or "redis://localhost:6379/0")
        self._tokens: dict[str, str] = {}
        self._mutex = threading.Lock()

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}{key}"

    def try_acquire(self, key: str, ttl_seconds: float) -> bool:
        token = generate_id()
        try:
            acquired = bool(self.client.set(self._key(key), token, nx=True, px=max(1, int(ttl_seconds * 1000))))
        except redis.RedisError as exc:
            logger.warning("[scheduler] Redis lock unavailable for '%s': %s", key, exc)
            return False
        if acquired:
            with self._mutex:
                self._tokens[key] = token
        return acquired

    def release(self, key: str) -> None:
        with self._mutex:
            token = self._tokens.pop(key, None)
        if token is None:
            return
        try:
            self.client.eval(self.RELEASE_SCRIPT, 1, self._key(key), token)
        except redis.RedisError as exc:
            # The key still expires after its ttl
            logger.warning("[scheduler] Redis lock release failed for '%s': %s", key, exc)

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


# ─────────────────────────────────────────────────────────────────────────────
# Runner and scheduler
# ─────────────────────────────────────────────────────────────────────────────
class ClusterAwareTaskRunner:
    """Runs one task window under the cluster lock."""

    def __init__(
        self,
        lock: ClusterLock,
        task: ScheduledTask,
        on_state: Optional[Callable[[str, str], None]] = None,
    ):
        self.lock = lock
        self.task = task
        self._on_state = on_state

    def _set_state(self, state: str) -> None:
        if self._on_state is not None:
            self._on_state(self.task.name, state)

    def run(self, propagate: bool = False) -> bool:
        """Run the task if this node wins the lock for the window.

        Args:
            propagate: Re-raise task errors (after the lock is released)
                instead of logging them; used for on-demand runs

        Returns:
            True if the task ran (successfully or not), False if the window
            was skipped
        """
        name = self.task.name
        try:
            acquired = self.lock.try_acquire(name, self.task.interval_seconds)
        except LockUnavailableError as exc:
            logger.warning("[scheduler] Lock backend unavailable for '%s': %s", name, exc)
            return False
        if not acquired:
            logger.debug("[scheduler] '%s' is held by another node, skipping window", name)
            return False

        self._set_state(LOCKED)
        try:
            self._set_state(RUNNING)
            self.task.task()
        except Exception as exc:
            if propagate:
                raise
            logger.error("[scheduler] Task '%s' failed: %s", name, exc, exc_info=True)
        finally:
            self.lock.release(name)
            self._set_state(IDLE)
        return True


class ClusterAwareScheduler:
    """Schedules named periodic tasks, at most one active execution per name cluster-wide.

    Local timing is delegated to an APScheduler ``BackgroundScheduler``; each
    job body is a ``ClusterAwareTaskRunner`` window.
    """

    def __init__(self, lock: ClusterLock, start_timers: bool = True, max_workers: int = 4):
        """Initialize the scheduler.

        Args:
            lock: Cluster lock shared by all nodes
            start_timers: Let jobs fire on their interval; disable to drive
                windows manually through ``trigger``
            max_workers: Size of the job thread pool
        """
        self.lock = lock
        self.start_timers = start_timers
        self._mutex = threading.RLock()
        self._runners: dict[str, ClusterAwareTaskRunner] = {}
        self._states: dict[str, str] = {}
        self._scheduler = BackgroundScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": ThreadPoolExecutor(max_workers=max_workers)},
            job_defaults={"coalesce": True, "max_instances": 1},
            timezone="UTC",
        )
        # Paused: jobs are registered but never fire
        self._scheduler.start(paused=not start_timers)

    def _record_state(self, name: str, state: str) -> None:
        with self._mutex:
            if name in self._runners:
                self._states[name] = state

    def _remove_job(self, name: str) -> None:
        try:
            self._scheduler.remove_job(name)
        except JobLookupError:
            logger.debug("[scheduler] No job registered for '%s'", name)

    def schedule(self, name: str, interval_seconds: float, task: Callable[[], Any]) -> ScheduledTask:
        """Register ``task`` to run every ``interval_seconds``.

        Scheduling a name that is already scheduled replaces the old task.
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        scheduled = ScheduledTask(name=name, interval_seconds=interval_seconds, task=task)
        runner = ClusterAwareTaskRunner(self.lock, scheduled, on_state=self._record_state)
        with self._mutex:
            self._runners[name] = runner
            self._states[name] = IDLE
            self._scheduler.add_job(
                runner.run,
                trigger=IntervalTrigger(seconds=interval_seconds),
                id=name,
                name=name,
                replace_existing=True,
            )
        logger.info("[scheduler] Scheduled '%s' every %ss", name, interval_seconds)
        return scheduled

    def cancel(self, name: str) -> bool:
        """Stop the local timer for ``name``.

        Other nodes keep their own timers and an in-flight run is not
        aborted. Returns False if not scheduled.
        """
        with self._mutex:
            runner = self._runners.pop(name, None)
            self._states.pop(name, None)
            if runner is None:
                return False
            self._remove_job(name)
        logger.info("[scheduler] Cancelled '%s'", name)
        return True

    def cancel_prefix(self, prefix: str) -> list[str]:
        with self._mutex:
            names = [name for name in self._runners if name.startswith(prefix)]
        return [name for name in names if self.cancel(name)]

    def trigger(self, name: str) -> bool:
        """Run one window of ``name`` on the calling thread.

        Returns:
            True if the task ran, False if skipped or not scheduled
        """
        with self._mutex:
            runner = self._runners.get(name)
        if runner is None:
            return False
        return runner.run()

    def state(self, name: str) -> Optional[str]:
        with self._mutex:
            return self._states.get(name)

    def is_scheduled(self, name: str) -> bool:
        with self._mutex:
            return name in self._runners

    def scheduled_names(self) -> list[str]:
        with self._mutex:
            return sorted(self._runners)

    def shutdown(self, wait: bool = True) -> None:
        """Stop all local timers; with ``wait``, let running windows finish."""
        with self._mutex:
            count = len(self._runners)
            self._runners.clear()
            self._states.clear()
        if self._scheduler.running:
            self._scheduler.remove_all_jobs()
            self._scheduler.shutdown(wait=wait)
        logger.info("[scheduler] Shut down (%d task(s) stopped)", count)
