"""Private foundation grants from a JSON feed."""

import logging

from grantsync.database.models import GrantStatus
from grantsync.errors import SourceFormatError
from .base import BaseAdapter, SourceConfig
from .records import (
    GrantRecord,
    as_list,
    as_text,
    build_tags,
    infer_grant_type,
    parse_amount,
    parse_date,
    slugify,
    summarize,
)

logger = logging.getLogger(__name__)


class FoundationAdapter(BaseAdapter):
    """Adapter for a feed of foundation listings.

    The feed is either a JSON list of listings or an object with a
    ``grants`` list. Listing keys follow the catalog's own field names
    (title, description, agency, min_amount, max_amount,
    application_deadline, eligible_applicants, industry_focus, tags, ...).
    """

    default_config = SourceConfig(
        name="foundation",
        display_name="Private Foundations",
        base_url="",
        kind="api",
        enabled=False,
        rate_limit=120,
    )

    def fetch(self) -> list[dict]:
        if not self.config.base_url:
            raise SourceFormatError(self.name, "no feed URL configured")

        payload = self._get_json(self.config.base_url, headers={"Accept": "application/json"})
        if isinstance(payload, dict):
            payload = payload.get("grants")
        if not isinstance(payload, list):
            raise SourceFormatError(self.name, "feed is not a list of grants")

        logger.info("foundation: fetched %d listings", len(payload))
        return payload

    def normalize(self, raw) -> GrantRecord:
        if not isinstance(raw, dict):
            return GrantRecord(external_id="", source=self.name, title="")

        title = str(raw.get("title") or "").strip()
        agency = as_text(raw.get("agency")) or as_text(raw.get("foundation"))
        description = str(raw.get("description") or "").strip()
        # Feeds without ids get a stable key from the funder and title
        external_id = str(raw.get("id") or slugify(f"{agency or ''} {title}"))

        categories = as_list(raw.get("category"))
        eligibility = as_list(raw.get("eligible_applicants"))
        requirements = as_list(raw.get("requirements"))
        domains, tags = build_tags(
            " ".join([title, description] + requirements + eligibility),
            agency=agency,
            categories=categories + as_list(raw.get("industry_focus")),
            eligibility=eligibility,
        )
        for tag in as_list(raw.get("tags")):
            tag = slugify(tag)
            if tag and tag not in tags:
                tags.append(tag)

        deadline = parse_date(raw.get("application_deadline"))

        return GrantRecord(
            external_id=external_id,
            source=self.name,
            title=title,
            description=description,
            summary=summarize(description),
            agency=agency,
            category=categories[0] if categories else "Private",
            grant_type=as_text(raw.get("grant_type")) or infer_grant_type(f"{title} {description}"),
            award_min=parse_amount(raw.get("min_amount")),
            award_max=parse_amount(raw.get("max_amount")),
            close_date=deadline.date() if deadline else None,
            application_deadline=deadline,
            eligible_applicants=eligibility,
            industry_focus=domains,
            tags=tags,
            requirements=requirements,
            application_url=as_text(raw.get("application_url")),
            status=GrantStatus.ACTIVE,
        )
