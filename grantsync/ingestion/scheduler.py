"""
Scheduler for automatic grant updates.

Uses APScheduler to run full updates, quick updates and cleanup passes at
configured intervals, and exposes manual triggers and a status snapshot.
"""

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from grantsync.config import config
from grantsync.database import (
    GrantRepository,
    SourceStatus,
    SourceStore,
    UpdateHistoryStore,
    UpdateRecord,
    SourceOutcome,
    UpdateType,
)
from grantsync.errors import RepositoryWriteError, SourceFormatError, SourceUnavailable
from grantsync.retry import RetryPolicy
from .base import BaseAdapter

logger = logging.getLogger(__name__)

FULL_JOB = "full_update"
QUICK_JOB = "quick_update"
CLEANUP_JOB = "cleanup"
INITIAL_JOB = "initial_update"
INTERVAL_JOBS = (FULL_JOB, QUICK_JOB, CLEANUP_JOB)

# Below this many grants the initial update is a full one
INITIAL_FULL_THRESHOLD = 10

HISTORY_LIMIT = 10


class SystemClock:
    """Wall-clock time and real sleeping."""

    def now(self) -> datetime:
        return datetime.now()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


def new_update_id(now: datetime) -> str:
    return f"update_{int(now.timestamp())}_{uuid.uuid4().hex[:9]}"


class UpdateScheduler:
    """Drives source adapters on full, quick and cleanup cadences."""

    def __init__(
        self,
        repository: GrantRepository,
        sources: SourceStore,
        history: UpdateHistoryStore,
        adapters: list[BaseAdapter],
        clock=None,
        retry_policy: RetryPolicy | None = None,
        scheduler_factory: Callable = BackgroundScheduler,
        full_interval: timedelta = timedelta(hours=24),
        quick_interval: timedelta = timedelta(hours=6),
        cleanup_interval: timedelta = timedelta(hours=1),
        request_delay: float = 2.0,
        history_retention: timedelta = timedelta(days=30),
        initial_update: bool = True,
    ):
        self.repository = repository
        self.sources = sources
        self.history = history
        self.adapters = list(adapters)
        self.clock = clock or SystemClock()
        self.retry_policy = retry_policy or RetryPolicy()
        self.scheduler_factory = scheduler_factory
        self.full_interval = full_interval
        self.quick_interval = quick_interval
        self.cleanup_interval = cleanup_interval
        self.request_delay = request_delay
        self.history_retention = history_retention
        self.initial_update = initial_update

        self._lock = threading.Lock()
        self._scheduler = None
        self._active_lock = threading.Lock()
        self._active: set[str] = set()
        self._rate_lock = threading.Lock()
        self._next_request: dict[str, datetime] = {}
        self._sources_registered = False
        self._agency_counts: dict[str, int] | None = None

    # Lifecycle

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> bool:
        """Start the timers. Returns False if already running."""
        with self._lock:
            if self._scheduler is not None:
                logger.info("Update scheduler already running")
                return False

            scheduler = self.scheduler_factory()
            scheduler.add_job(
                self._timer_update,
                trigger=IntervalTrigger(seconds=self.full_interval.total_seconds()),
                args=[UpdateType.FULL],
                id=FULL_JOB,
                name="Full grant update",
                max_instances=1,
                coalesce=True,
            )
            scheduler.add_job(
                self._timer_update,
                trigger=IntervalTrigger(seconds=self.quick_interval.total_seconds()),
                args=[UpdateType.QUICK],
                id=QUICK_JOB,
                name="Quick grant update",
                max_instances=1,
                coalesce=True,
            )
            scheduler.add_job(
                self._timer_cleanup,
                trigger=IntervalTrigger(seconds=self.cleanup_interval.total_seconds()),
                id=CLEANUP_JOB,
                name="Expire grants and prune history",
                max_instances=1,
                coalesce=True,
            )
            if self.initial_update:
                # No trigger: runs once, as soon as the scheduler starts
                scheduler.add_job(self._timer_initial_update, id=INITIAL_JOB, name="Initial grant update")

            scheduler.start()
            self._scheduler = scheduler

        logger.info(
            "Update scheduler started (full every %s, quick every %s, cleanup every %s)",
            self.full_interval, self.quick_interval, self.cleanup_interval,
        )
        return True

    def stop(self) -> bool:
        """Remove all jobs and shut down. Returns False if not running.

        In-flight runs are not waited for; timer-driven runs stop before
        their next source.
        """
        with self._lock:
            if self._scheduler is None:
                return False
            scheduler, self._scheduler = self._scheduler, None
            scheduler.remove_all_jobs()
            scheduler.shutdown(wait=False)

        logger.info("Update scheduler stopped")
        return True

    # Triggers

    def trigger_manual_update(self, update_type: UpdateType | str = UpdateType.FULL) -> UpdateRecord:
        """Run a full or quick update now, outside the timer cadence."""
        if not isinstance(update_type, UpdateType):
            try:
                update_type = UpdateType(str(update_type).lower())
            except ValueError:
                valid = ", ".join(t.value for t in UpdateType)
                raise ValueError(
                    f"unknown update type {update_type!r} (expected one of: {valid})"
                ) from None
        logger.info("Manual %s update triggered", update_type.value)
        return self.run_update(update_type, manual=True)

    def run_update(self, update_type: UpdateType, manual: bool = False) -> UpdateRecord:
        """Update every enabled source (quick: quick-priority sources only)."""
        self._register_sources()
        now = self.clock.now()
        record = UpdateRecord(
            id=new_update_id(now),
            update_type=update_type,
            started_at=now,
        )
        adapters = [
            a for a in self.adapters
            if a.config.enabled and (update_type == UpdateType.FULL or a.config.quick)
        ]
        logger.info("Starting %s update %s (%d sources)", update_type.value, record.id, len(adapters))

        with self._tracking(record.id):
            for adapter in adapters:
                if not manual and not self.running:
                    logger.info("Scheduler stopped, ending update %s early", record.id)
                    break
                self.clock.sleep(self.request_delay)
                record.results.append(self._update_source(adapter))

        record.completed_at = self.clock.now()
        try:
            self.history.append(record)
        except RepositoryWriteError as e:
            logger.error("Could not record update %s: %s", record.id, e)

        level = logging.INFO if record.success else logging.WARNING
        logger.log(
            level, "Finished %s update %s: %d saved, %s",
            update_type.value, record.id, record.total_saved,
            "success" if record.success else "with errors",
        )
        return record

    def cleanup(self) -> dict:
        """Expire past-deadline grants, prune old history and refresh totals."""
        now = self.clock.now()
        expired = self.repository.expire_older_than(now)
        pruned = self.history.prune_older_than(now - self.history_retention)
        self._agency_counts = self.repository.agency_counts()
        self.sources.set_totals(self.repository.source_counts())

        logger.info(
            "Cleanup: %d grants expired, %d history records pruned, %d agencies active",
            expired, pruned, len(self._agency_counts),
        )
        return {"expired": expired, "pruned": pruned, "agency_counts": dict(self._agency_counts)}

    # Status

    def get_status(self) -> dict:
        self._register_sources()

        next_scheduled = {job_id: None for job_id in INTERVAL_JOBS}
        scheduler = self._scheduler
        if scheduler is not None:
            for job in scheduler.get_jobs():
                if job.id in next_scheduled:
                    next_scheduled[job.id] = job.next_run_time

        with self._active_lock:
            active = sorted(self._active)

        agency_counts = self._agency_counts
        if agency_counts is None:
            agency_counts = self.repository.agency_counts()

        return {
            "running": self.running,
            "active_updates": active,
            "recent_updates": self.history.recent(HISTORY_LIMIT),
            "next_scheduled": next_scheduled,
            "sources": [
                {
                    "name": s.name,
                    "display_name": s.display_name,
                    "kind": s.kind,
                    "enabled": s.enabled,
                    "status": s.status.value,
                    "error": s.error_message,
                    "last_updated": s.last_updated,
                    "total_grants": s.total_grants,
                }
                for s in self.sources.all()
            ],
            "agency_counts": dict(agency_counts),
        }

    # Internals

    @contextmanager
    def _tracking(self, update_id: str):
        with self._active_lock:
            self._active.add(update_id)
        try:
            yield
        finally:
            with self._active_lock:
                self._active.discard(update_id)

    def _register_sources(self) -> None:
        if self._sources_registered:
            return
        for adapter in self.adapters:
            self.sources.ensure(adapter.config)
        self._sources_registered = True

    def _update_source(self, adapter: BaseAdapter) -> SourceOutcome:
        outcome = SourceOutcome(source=adapter.name)

        try:
            self.sources.mark(adapter.name, SourceStatus.UPDATING)
            raws =self.retry_policy.run(lambda: self._fetch(adapter), sleep=self.clock.sleep)
            outcome.fetched = len(raws)
            records = adapter.normalize_all(raws, now=self.clock.now())
            outcome.saved = self.repository.upsert(records, now=self.clock.now())
        except SourceFormatError as e:
            outcome.error = str(e)
            logger.error("%s: unusable response, skipping: %s", adapter.name, e)
        except SourceUnavailable as e:
            outcome.error = str(e)
            logger.error("%s: giving up after retries: %s", adapter.name, e)
        except RepositoryWriteError as e:
            outcome.error = str(e)
            logger.error("%s: saving grants failed: %s", adapter.name, e)
        except Exception as e:
            outcome.error = f"unexpected error: {e}"
            logger.exception("%s: unexpected error during update", adapter.name)

        try:
            if outcome.failed:
                self.sources.mark(adapter.name, SourceStatus.ERROR, error=outcome.error)
            else:
                self.sources.mark(adapter.name, SourceStatus.ACTIVE, now=self.clock.now())
        except RepositoryWriteError as e:
            logger.error("%s: could not record source status: %s", adapter.name, e)
            if not outcome.failed:
                outcome.error = str(e)

        if not outcome.failed:
            logger.info("%s: %d fetched, %d saved", adapter.name, outcome.fetched, outcome.saved)
        return outcome

    def _fetch(self, adapter: BaseAdapter) -> list:
        self._wait_for_rate_limit(adapter)
        return adapter.fetch()

    def _wait_for_rate_limit(self, adapter: BaseAdapter) -> None:
        """Space attempts against one source to its requests-per-hour limit."""
        rate_limit = adapter.config.rate_limit
        if not rate_limit:
            return
        spacing = timedelta(seconds=3600 / rate_limit)

        with self._rate_lock:
            now = self.clock.now()
            allowed_at = max(now, self._next_request.get(adapter.name, now))
            self._next_request[adapter.name] = allowed_at + spacing

        wait = (allowed_at - now).total_seconds()
        if wait > 0:
            logger.debug("%s: rate limited, waiting %.1fs", adapter.name, wait)
            self.clock.sleep(wait)

    def _timer_update(self, update_type: UpdateType) -> None:
        try:
            self.run_update(update_type)
        except Exception:
            logger.exception("Scheduled %s update failed", update_type.value)

    def _timer_cleanup(self) -> None:
        try:
            self.cleanup()
        except Exception:
            logger.exception("Scheduled cleanup failed")

    def run_initial_update(self, manual: bool = True) -> UpdateRecord:
        """Full update while the catalog is nearly empty, quick otherwise."""
        update_type = (
            UpdateType.FULL
            if self.repository.count() < INITIAL_FULL_THRESHOLD
            else UpdateType.QUICK
        )
        logger.info("Running initial %s update", update_type.value)
        return self.run_update(update_type, manual=manual)

    def _timer_initial_update(self) -> None:
        try:
            self.run_initial_update(manual=False)
        except Exception:
            logger.exception("Initial update failed")


def build_scheduler(session_factory=None, adapters: list[BaseAdapter] | None = None, **kwargs) -> UpdateScheduler:
    """UpdateScheduler wired from config.yaml settings."""
    from . import build_adapters

    options = dict(
        retry_policy=RetryPolicy(
            max_retries=config.max_retries,
            base_delay=config.retry_delay_seconds,
        ),
        full_interval=timedelta(hours=config.full_update_hours),
        quick_interval=timedelta(hours=config.quick_update_hours),
        cleanup_interval=timedelta(minutes=config.cleanup_minutes),
        request_delay=config.request_delay_seconds,
        history_retention=timedelta(days=config.history_retention_days),
        initial_update=config.initial_update,
    )
    options.update(kwargs)

    return UpdateScheduler(
        repository=GrantRepository(session_factory),
        sources=SourceStore(session_factory),
        history=UpdateHistoryStore(session_factory),
        adapters=adapters if adapters is not None else build_adapters(config.source_overrides),
        **options,
    )
