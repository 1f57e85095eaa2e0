"""
Grants.gov ingestion.

Uses the public search2 REST API:
https://api.grants.gov/v1/api/search2
"""

import logging
from datetime import datetime, time

from grantsync.config import config
from grantsync.database.models import GrantStatus
from grantsync.errors import SourceFormatError, SourceUnavailable
from .base import BaseAdapter, SourceConfig
from .records import (
    GrantRecord,
    as_list,
    as_text,
    build_tags,
    infer_grant_type,
    parse_amount,
    parse_date,
    summarize,
)

logger = logging.getLogger(__name__)

DETAIL_URL = "https://www.grants.gov/search-results-detail/{id}"


class GrantsGovAdapter(BaseAdapter):
    """Adapter for federal opportunities listed on Grants.gov."""

    default_config = SourceConfig(
        name="grants_gov",
        display_name="Grants.gov",
        base_url="https://api.grants.gov/v1/api/search2",
        kind="api",
        rate_limit=1000,
        quick=True,
    )

    KEYWORD = "small business"
    OPP_STATUSES = "forecasted|posted"
    ROWS_PER_PAGE = 100
    MAX_PAGES = 5

    def fetch(self) -> list[dict]:
        """Fetch posted and forecasted opportunities, a page at a time."""
        headers = {"Content-Type": "application/json"}
        if config.grants_gov_api_key:
            headers["Authorization"] = f"Bearer {config.grants_gov_api_key}"

        hits: list[dict] = []
        for page in range(self.MAX_PAGES):
            body = {
                "keyword": self.KEYWORD,
                "oppStatuses": self.OPP_STATUSES,
                "rows": self.ROWS_PER_PAGE,
                "startRecordNum": page * self.ROWS_PER_PAGE,
            }
            payload = self._post_json(self.config.base_url, json=body, headers=headers)
            page_hits, total = self._unwrap(payload)
            hits.extend(page_hits)

            if not page_hits or len(hits) >= total:
                break

        logger.info("grants_gov: fetched %d opportunities", len(hits))
        return hits

    def _unwrap(self, payload) -> tuple[list[dict], int]:
        if not isinstance(payload, dict):
            raise SourceFormatError(self.name, "response is not a JSON object")

        errorcode = payload.get("errorcode", 0)
        if errorcode not in (0, "0", None):
            raise SourceUnavailable(self.name, f"API error {errorcode}: {payload.get('msg', '')}")

        data = payload.get("data")
        if not isinstance(data, dict) or not isinstance(data.get("oppHits"), list):
            raise SourceFormatError(self.name, "response has no data.oppHits list")

        hits = data["oppHits"]
        total = data.get("hitCount")
        return hits, total if isinstance(total, int) else len(hits)

    def normalize(self, raw) -> GrantRecord:
        if not isinstance(raw, dict):
            return GrantRecord(external_id="", source=self.name, title="")

        external_id = str(raw.get("id") or raw.get("number") or "")
        title = str(raw.get("title") or "").strip()
        description = str(raw.get("synopsis") or raw.get("description") or "").strip()
        agency = (
            as_text(raw.get("agencyName"))
            or as_text(raw.get("agency"))
            or as_text(raw.get("agencyCode"))
        )
        categories = as_list(raw.get("fundingCategories") or raw.get("categories"))
        eligibility = as_list(raw.get("eligibilities") or raw.get("applicantTypes"))
        requirements = as_list(raw.get("requirements"))

        domains, tags = build_tags(
            " ".join([title, description] + requirements + eligibility),
            agency=agency,
            categories=categories,
            eligibility=eligibility,
        )

        close = parse_date(raw.get("closeDate"))
        opened = parse_date(raw.get("openDate"))

        return GrantRecord(
            external_id=external_id,
            source=self.name,
            title=title,
            description=description,
            summary=summarize(description),
            agency=agency,
            category=categories[0] if categories else None,
            grant_type=infer_grant_type(f"{title} {description}"),
            award_min=parse_amount(raw.get("awardFloor")),
            award_max=parse_amount(raw.get("awardCeiling")),
            open_date=opened.date() if opened else None,
            close_date=close.date() if close else None,
            # Applications are accepted through the end of the closing day
            application_deadline=datetime.combine(close.date(), time(23, 59, 59)) if close else None,
            eligible_applicants=eligibility,
            industry_focus=domains,
            tags=tags,
            requirements=requirements,
            application_url=DETAIL_URL.format(id=external_id) if external_id else None,
            status=GrantStatus.ACTIVE,
        )
