"""Tests for grant persistence, expiry and search."""

from datetime import timedelta

import pytest

from grantsync.database import (
    GrantFilters,
    GrantStatus,
    SourceStatus,
    UpdateRecord,
    SourceOutcome,
    UpdateType,
)
from grantsync.errors import InvalidFilterError
from grantsync.ingestion.base import SourceConfig
from conftest import NOW, make_record


# =============================================================================
# Upsert
# =============================================================================

def test_reupsert_leaves_row_count_unchanged(repository):
    """Upserting the same records twice does not add rows."""
    records = [make_record("G-1"), make_record("G-2")]

    assert repository.upsert(records, now=NOW) == 2
    assert repository.upsert(records, now=NOW) == 2
    assert repository.count() == 2


def test_upsert_overwrites_fields_but_keeps_created_at(repository):
    """A later fetch overwrites the grant, except its creation timestamp."""
    repository.upsert([make_record("G-1", title="Old title")], now=NOW)
    first = repository.get("grants_gov", "G-1")

    repository.upsert([make_record("G-1", title="New title", award_max=500_000)], now=NOW)
    second = repository.get("grants_gov", "G-1")

    assert second.id == first.id
    assert second.title == "New title"
    assert second.award_max == 500_000
    assert second.created_at == first.created_at


def test_duplicate_records_in_batch_collapse_to_last(repository):
    """The last occurrence of a repeated key wins."""
    saved = repository.upsert([
        make_record("G-1", title="First"),
        make_record("G-1", title="Second"),
    ], now=NOW)

    assert saved == 1
    assert repository.get("grants_gov", "G-1").title == "Second"


def test_same_external_id_in_different_sources(repository):
    """External ids only need to be unique within a source."""
    repository.upsert([
        make_record("SHARED", source="grants_gov"),
        make_record("SHARED", source="sba"),
    ], now=NOW)

    assert repository.count() == 2


def test_past_deadline_is_written_expired(repository):
    """A record whose deadline has passed arrives as expired."""
    repository.upsert([
        make_record("OLD", application_deadline=NOW - timedelta(days=1)),
    ], now=NOW)

    assert repository.get("grants_gov", "OLD").status == GrantStatus.EXPIRED


def test_expired_grant_is_not_reactivated_by_upsert(repository):
    """Once expired, a later upsert never moves the row back to active."""
    deadline = NOW + timedelta(days=1)
    repository.upsert([make_record("G-1", application_deadline=deadline)], now=NOW)
    repository.expire_older_than(NOW + timedelta(days=2))

    # Source still reports the stale listing with an apparently open deadline
    repository.upsert([make_record("G-1", application_deadline=deadline)], now=NOW)

    assert repository.get("grants_gov", "G-1").status == GrantStatus.EXPIRED


def test_upsert_writes_tags_for_search(repository):
    """Tags are searchable and replaced on re-upsert."""
    repository.upsert([make_record("G-1", tags=["energy", "rural"])], now=NOW)
    repository.upsert([make_record("G-1", tags=["energy", "export"])], now=NOW)

    assert repository.search(GrantFilters(tags=["export"])).total == 1
    assert repository.search(GrantFilters(tags=["rural"])).total == 0


def test_tag_search_ignores_case(repository):
    repository.upsert([make_record("G-1", tags=["Energy", "Rural-Development"])], now=NOW)

    assert repository.search(GrantFilters(tags=["Energy"])).total == 1
    assert repository.search(GrantFilters(tags=["energy"])).total == 1
    assert repository.search(GrantFilters(tags=["RURAL-DEVELOPMENT"])).total == 1


def test_upsert_empty_batch(repository):
    assert repository.upsert([], now=NOW) == 0


# =============================================================================
# Expiry
# =============================================================================

def test_expire_older_than_is_idempotent(repository):
    """Past-deadline active grants expire once; a second pass changes nothing."""
    repository.upsert([
        make_record("SOON", application_deadline=NOW + timedelta(days=1)),
        make_record("LATER", application_deadline=NOW + timedelta(days=30)),
        make_record("OPEN", application_deadline=None),
    ], now=NOW)

    cutoff = NOW + timedelta(days=2)
    assert repository.expire_older_than(cutoff) == 1
    assert repository.expire_older_than(cutoff) == 0

    assert repository.get("grants_gov", "SOON").status == GrantStatus.EXPIRED
    assert repository.get("grants_gov", "LATER").status == GrantStatus.ACTIVE
    assert repository.get("grants_gov", "OPEN").status == GrantStatus.ACTIVE


def test_expire_skips_pending_review(repository):
    """Only active grants are expired."""
    repository.upsert([
        make_record(
            "REVIEW",
            status=GrantStatus.PENDING_REVIEW,
            application_deadline=NOW + timedelta(days=1),
        ),
    ], now=NOW)

    assert repository.expire_older_than(NOW + timedelta(days=5)) == 0


# =============================================================================
# Search
# =============================================================================

@pytest.fixture
def catalog(repository):
    repository.upsert([
        make_record(
            "A", title="Rural Energy for America", agency="USDA Rural Development",
            category="Energy", award_min=2_500, award_max=500_000,
            tags=["energy", "rural"], application_deadline=NOW + timedelta(days=10),
        ),
        make_record(
            "B", title="SBIR Phase I", agency="National Science Foundation",
            category="Research", award_min=100_000, award_max=275_000,
            tags=["technology", "research"], application_deadline=NOW + timedelta(days=40),
        ),
        make_record(
            "C", title="State Trade Expansion", agency="Small Business Administration",
            category="Trade", award_min=None, award_max=None,
            tags=["export"], application_deadline=NOW + timedelta(days=70),
        ),
        make_record(
            "D", title="Closed program", agency="Department of Energy",
            application_deadline=NOW - timedelta(days=3),
        ),
    ], now=NOW)
    return repository


def test_search_defaults_to_active_newest_first(catalog):
    page = catalog.search()

    assert page.total == 3
    assert [g.external_id for g in page.grants] == ["C", "B", "A"]
    assert page.page == 1
    assert page.total_pages == 1


def test_search_text_is_case_insensitive_over_title_and_agency(catalog):
    assert [g.external_id for g in catalog.search(GrantFilters(query="sbir")).grants] == ["B"]
    assert [g.external_id for g in catalog.search(GrantFilters(query="rural dev")).grants] == ["A"]


def test_search_amount_bounds(catalog):
    """min_amount bounds the award floor, max_amount the award ceiling."""
    low_floor = catalog.search(GrantFilters(min_amount=50_000))
    assert [g.external_id for g in low_floor.grants] == ["B"]

    small = catalog.search(GrantFilters(max_amount=300_000))
    assert [g.external_id for g in small.grants] == ["B"]


def test_search_category_tags_and_deadline(catalog):
    assert catalog.search(GrantFilters(category="Energy")).total == 1
    assert catalog.search(GrantFilters(tags=["export", "research"])).total == 2
    assert catalog.search(GrantFilters(deadline_after=NOW + timedelta(days=30))).total == 2


def test_search_status_filter(catalog):
    expired = catalog.search(GrantFilters(status="expired"))
    assert [g.external_id for g in expired.grants] == ["D"]
    assert catalog.search(GrantFilters(status=None)).total == 4


def test_search_pagination(catalog):
    page = catalog.search(GrantFilters(page=2, page_size=2, sort_by="title", sort_order="asc"))

    assert page.total == 3
    assert page.total_pages == 2
    assert [g.external_id for g in page.grants] == ["C"]


@pytest.mark.parametrize("filters", [
    GrantFilters(page=0),
    GrantFilters(page_size=0),
    GrantFilters(page_size=1000),
    GrantFilters(min_amount=-1),
    GrantFilters(min_amount=10, max_amount=5),
    GrantFilters(sort_by="popularity"),
    GrantFilters(sort_order="sideways"),
    GrantFilters(status="archived"),
])
def test_search_rejects_bad_filters(repository, filters):
    with pytest.raises(InvalidFilterError):
        repository.search(filters)


def test_agency_and_source_counts(catalog):
    assert catalog.agency_counts() == {
        "USDA Rural Development": 1,
        "National Science Foundation": 1,
        "Small Business Administration": 1,
    }
    assert catalog.source_counts() == {"grants_gov": 3}


# =============================================================================
# Source and history tracking
# =============================================================================

def test_source_store_tracks_status_and_errors(source_store):
    source_store.ensure(SourceConfig(
        name="sba", display_name="SBA", base_url="https://www.sba.gov", kind="scraper",
    ))

    source_store.mark("sba", SourceStatus.UPDATING)
    source_store.mark("sba", SourceStatus.ERROR, error="sba: HTTP 503")
    source = source_store.get("sba")
    assert source.status == SourceStatus.ERROR
    assert source.error_message == "sba: HTTP 503"

    source_store.mark("sba", SourceStatus.ACTIVE, now=NOW)
    source = source_store.get("sba")
    assert source.status == SourceStatus.ACTIVE
    assert source.error_message is None
    assert source.last_updated == NOW

    source_store.set_totals({"sba": 7})
    assert source_store.get("sba").total_grants == 7


def test_history_append_recent_and_prune(history):
    for days_ago in (40, 20, 1):
        started = NOW - timedelta(days=days_ago)
        history.append(UpdateRecord(
            id=f"update_{days_ago}",
            update_type=UpdateType.FULL,
            started_at=started,
            completed_at=started + timedelta(minutes=5),
            results=[SourceOutcome(source="sba", fetched=3, saved=3)],
        ))

    recent = history.recent(2)
    assert [r.id for r in recent] == ["update_1", "update_20"]
    assert recent[0].results[0].saved == 3
    assert recent[0].success

    assert history.prune_older_than(NOW - timedelta(days=30)) == 1
    assert len(history.recent(10)) == 2
