"""Tests for the update scheduler."""

from datetime import timedelta

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from grantsync.database import SourceStatus, UpdateType
from grantsync.errors import RepositoryWriteError, SourceFormatError, SourceUnavailable
from grantsync.ingestion.scheduler import UpdateScheduler
from grantsync.retry import RetryPolicy
from conftest import NOW, FakeAdapter, listing, make_record


@pytest.fixture
def make_scheduler(repository, source_store, history, clock):
    def factory(adapters, **kwargs):
        options = dict(
            clock=clock,
            retry_policy=RetryPolicy(max_retries=3, base_delay=5.0),
            request_delay=2.0,
            initial_update=False,
        )
        options.update(kwargs)
        return UpdateScheduler(
            repository=repository,
            sources=source_store,
            history=history,
            adapters=adapters,
            **options,
        )
    return factory


# =============================================================================
# Update runs
# =============================================================================

def test_failing_source_does_not_block_others(make_scheduler, repository, source_store, history, clock):
    """Source A exhausts its retries, source B still saves its grants."""
    failing = FakeAdapter("alpha", error=SourceUnavailable("alpha", "HTTP 503"))
    working = FakeAdapter("beta", listings=[listing("B-1"), listing("B-2")])
    update_scheduler = make_scheduler([failing, working])

    record = update_scheduler.trigger_manual_update("full")

    assert record.success is False
    assert record.outcome("alpha").error == "alpha: HTTP 503"
    assert record.outcome("beta").saved == 2
    assert record.outcome("beta").error is None
    assert repository.count() == 2

    # One attempt plus three retries, with linear backoff between them
    assert failing.calls == 4
    assert clock.sleeps == [2.0, 5.0, 10.0, 15.0, 2.0]

    assert source_store.get("alpha").status == SourceStatus.ERROR
    assert source_store.get("alpha").error_message == "alpha: HTTP 503"
    assert source_store.get("beta").status == SourceStatus.ACTIVE

    [stored] = history.recent(1)
    assert stored.id == record.id
    assert stored.success is False


def test_format_error_is_not_retried(make_scheduler, source_store):
    broken = FakeAdapter("alpha", error=SourceFormatError("alpha", "invalid JSON"))
    update_scheduler = make_scheduler([broken])

    record = update_scheduler.trigger_manual_update(UpdateType.FULL)

    assert broken.calls == 1
    assert record.outcome("alpha").error == "alpha: invalid JSON"
    assert source_store.get("alpha").status == SourceStatus.ERROR


def test_transient_failure_recovers(make_scheduler, repository):
    flaky = FakeAdapter(
        "alpha",
        listings=[listing("A-1")],
        error=lambda call: SourceUnavailable("alpha", "timeout") if call == 1 else None,
    )
    update_scheduler = make_scheduler([flaky])

    record = update_scheduler.trigger_manual_update("full")

    assert record.success
    assert flaky.calls == 2
    assert repository.count() == 1


def test_unexpected_error_is_recorded(make_scheduler):
    crashing = FakeAdapter("alpha", error=RuntimeError("boom"))
    update_scheduler = make_scheduler([crashing])

    record = update_scheduler.trigger_manual_update("full")

    assert record.outcome("alpha").error == "unexpected error: boom"
    assert update_scheduler.get_status()["active_updates"] == []


def test_save_failure_only_aborts_that_source(make_scheduler, repository, source_store, monkeypatch):
    """A persistence error for one source leaves the rest of the run intact."""
    upsert = repository.upsert

    def failing_upsert(records, now=None):
        records = list(records)
        if any(r.source == "alpha" for r in records):
            raise RepositoryWriteError("upserting grants failed: database is locked")
        return upsert(records, now=now)

    monkeypatch.setattr(repository, "upsert", failing_upsert)
    update_scheduler = make_scheduler([
        FakeAdapter("alpha", listings=[listing("A-1")]),
        FakeAdapter("beta", listings=[listing("B-1")]),
    ])

    record = update_scheduler.trigger_manual_update("full")

    assert record.success is False
    assert record.outcome("alpha").fetched == 1
    assert record.outcome("alpha").saved == 0
    assert "database is locked" in record.outcome("alpha").error
    assert record.outcome("beta").saved == 1
    assert repository.count() == 1
    assert source_store.get("alpha").status == SourceStatus.ERROR


def test_status_write_failure_does_not_end_the_run(make_scheduler, source_store, history, monkeypatch):
    """If a source's status cannot be stored, later sources still run."""
    mark = source_store.mark

    def failing_mark(name, status, error=None, now=None):
        if name == "alpha":
            raise RepositoryWriteError("updating source alpha failed: disk I/O error")
        return mark(name, status, error=error, now=now)

    monkeypatch.setattr(source_store, "mark", failing_mark)
    second = FakeAdapter("beta", listings=[listing("B-1")])
    update_scheduler = make_scheduler([FakeAdapter("alpha", listings=[listing("A-1")]), second])

    record = update_scheduler.trigger_manual_update("full")

    assert "disk I/O error" in record.outcome("alpha").error
    assert second.calls == 1
    assert record.outcome("beta").saved == 1
    [stored] = history.recent(1)
    assert stored.id == record.id


def test_quick_update_only_runs_priority_sources(make_scheduler):
    priority = FakeAdapter("alpha", listings=[listing("A-1")], quick=True)
    regular = FakeAdapter("beta", listings=[listing("B-1")])
    update_scheduler = make_scheduler([priority, regular])

    record = update_scheduler.trigger_manual_update("quick")

    assert record.update_type == UpdateType.QUICK
    assert [r.source for r in record.results] == ["alpha"]
    assert regular.calls == 0


def test_disabled_sources_are_skipped(make_scheduler):
    disabled = FakeAdapter("alpha", listings=[listing("A-1")], enabled=False)
    update_scheduler = make_scheduler([disabled])

    record = update_scheduler.trigger_manual_update("full")

    assert record.results == []
    assert disabled.calls == 0


def test_unknown_update_type_raises(make_scheduler):
    update_scheduler = make_scheduler([])

    with pytest.raises(ValueError):
        update_scheduler.trigger_manual_update("hourly")


def test_update_id_format(make_scheduler):
    record = make_scheduler([]).trigger_manual_update("full")

    prefix, timestamp, suffix = record.id.split("_")
    assert prefix == "update"
    assert timestamp == str(int(NOW.timestamp()))
    assert len(suffix) == 9


def test_in_flight_updates_are_tracked(make_scheduler):
    seen = []
    update_scheduler = None

    def capture(adapter):
        seen.extend(update_scheduler.get_status()["active_updates"])

    adapter = FakeAdapter("alpha", listings=[listing("A-1")], on_fetch=capture)
    update_scheduler = make_scheduler([adapter])

    record = update_scheduler.trigger_manual_update("full")

    assert seen == [record.id]
    assert update_scheduler.get_status()["active_updates"] == []


def test_rate_limit_spaces_attempts(make_scheduler, clock):
    """Retries against one source wait out its requests-per-hour limit."""
    flaky = FakeAdapter(
        "alpha",
        listings=[listing("A-1")],
        rate_limit=360,  # one request every 10 seconds
        error=lambda call: SourceUnavailable("alpha", "timeout") if call == 1 else None,
    )
    update_scheduler = make_scheduler([flaky], retry_policy=RetryPolicy(max_retries=3, base_delay=1.0))

    update_scheduler.trigger_manual_update("full")

    # inter-source delay, retry backoff, then the rest of the 10s spacing
    assert clock.sleeps == [2.0, 1.0, 9.0]


def test_initial_update_is_full_for_small_catalog(make_scheduler, repository):
    update_scheduler = make_scheduler([])
    assert update_scheduler.run_initial_update().update_type == UpdateType.FULL

    repository.upsert([make_record(f"G-{i}") for i in range(10)], now=NOW)
    assert update_scheduler.run_initial_update().update_type == UpdateType.QUICK


# =============================================================================
# Cleanup
# =============================================================================

def test_cleanup_expires_prunes_and_counts(make_scheduler, repository, source_store, history, clock):
    adapter = FakeAdapter("grants_gov", listings=[])
    update_scheduler = make_scheduler([adapter])

    old_run = update_scheduler.trigger_manual_update("full")
    clock.current += timedelta(days=31)

    repository.upsert([
        make_record("G-1", agency="NSF", application_deadline=clock.current + timedelta(days=5)),
        make_record("G-2", agency="NSF", application_deadline=clock.current + timedelta(days=50)),
        make_record("G-3", agency="SBA", application_deadline=clock.current + timedelta(days=50)),
    ], now=clock.current)
    clock.current += timedelta(days=10)

    result = update_scheduler.cleanup()

    assert result["expired"] == 1
    assert result["pruned"] == 1
    assert result["agency_counts"] == {"NSF": 1, "SBA": 1}
    assert old_run.id not in [r.id for r in history.recent(10)]
    assert source_store.get("grants_gov").total_grants == 2

    status = update_scheduler.get_status()
    assert status["agency_counts"] == {"NSF": 1, "SBA": 1}


# =============================================================================
# Lifecycle and status
# =============================================================================

def test_start_twice_creates_one_set_of_timers(make_scheduler):
    created = []

    def scheduler_factory():
        scheduler = BackgroundScheduler()
        created.append(scheduler)
        return scheduler

    update_scheduler = make_scheduler([], scheduler_factory=scheduler_factory)
    try:
        assert update_scheduler.start() is True
        assert update_scheduler.start() is False

        assert len(created) == 1
        assert len(created[0].get_jobs()) == 3
        status = update_scheduler.get_status()
        assert status["running"] is True
        assert all(when is not None for when in status["next_scheduled"].values())
    finally:
        update_scheduler.stop()

    assert update_scheduler.stop() is False
    status = update_scheduler.get_status()
    assert status["running"] is False
    assert all(when is None for when in status["next_scheduled"].values())


def test_stopped_timer_run_ends_between_sources(make_scheduler):
    """After stop(), a timer-driven run does not start its next source."""
    update_scheduler = None

    def stop_scheduler(adapter):
        update_scheduler.stop()

    first = FakeAdapter("alpha", listings=[listing("A-1")], on_fetch=stop_scheduler)
    second = FakeAdapter("beta", listings=[listing("B-1")])
    update_scheduler = make_scheduler([first, second])
    update_scheduler.start()

    record = update_scheduler.run_update(UpdateType.FULL)

    assert [r.source for r in record.results] == ["alpha"]
    assert second.calls == 0


def test_manual_run_completes_when_stopped(make_scheduler):
    first = FakeAdapter("alpha", listings=[listing("A-1")])
    second = FakeAdapter("beta", listings=[listing("B-1")])
    update_scheduler = make_scheduler([first, second])

    record = update_scheduler.trigger_manual_update("full")

    assert [r.source for r in record.results] == ["alpha", "beta"]


def test_status_shows_last_ten_updates_and_sources(make_scheduler, clock):
    update_scheduler = make_scheduler([FakeAdapter("alpha", listings=[listing("A-1")])])
    for _ in range(12):
        update_scheduler.trigger_manual_update("full")
        clock.current += timedelta(minutes=1)

    status = update_scheduler.get_status()

    assert len(status["recent_updates"]) == 10
    assert status["running"] is False
    [source] = status["sources"]
    assert source["name"] == "alpha"
    assert source["status"] == "active"
    assert source["error"] is None
