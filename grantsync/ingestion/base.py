"""Base classes for grant source adapters."""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from urllib.parse import urljoin, urlparse
from urllib.robotparser import RobotFileParser

import requests
from bs4 import BeautifulSoup

from grantsync.database.models import GrantStatus
from grantsync.errors import SourceFormatError, SourceUnavailable
from grantsync.matching.text import extract_amounts
from .records import (
    GrantRecord,
    build_tags,
    infer_grant_type,
    parse_amount,
    parse_date,
    slugify,
    summarize,
)

logger = logging.getLogger(__name__)

USER_AGENT = "grantsync/0.3"
REQUEST_TIMEOUT = 30

_DEADLINE = re.compile(
    r"(?:deadline|due|closes?|close date|apply by)\s*:?\s*"
    r"([A-Z][a-z]+\.?\s+\d{1,2},?\s+\d{4}|\d{1,2}/\d{1,2}/\d{4}|\d{4}-\d{2}-\d{2})",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class SourceConfig:
    """Static settings for one grant source."""
    name: str
    display_name: str
    base_url: str
    kind: str = "api"
    enabled: bool = True
    rate_limit: int | None = None
    quick: bool = False

    def with_overrides(self, overrides: dict | None) -> "SourceConfig":
        """Apply config.yaml ``sources.<name>`` settings."""
        allowed = {"display_name", "base_url", "enabled", "rate_limit", "quick"}
        changes = {k: v for k, v in (overrides or {}).items() if k in allowed}
        return replace(self, **changes) if changes else self


class BaseAdapter(ABC):
    """Fetches raw listings from one source and normalizes them.

    Adapters keep only their immutable SourceConfig, so one instance can
    be used from several threads.
    """

    default_config: SourceConfig

    def __init__(self, source_config: SourceConfig | None = None):
        self.config = source_config or self.default_config

    @property
    def name(self) -> str:
        return self.config.name

    @abstractmethod
    def fetch(self) -> list:
        """
        Fetch raw listings.

        Raises:
            SourceUnavailable: network, auth or HTTP failure.
            SourceFormatError: the response could not be parsed.
        """

    @abstractmethod
    def normalize(self, raw) -> GrantRecord:
        """Convert one raw listing to a GrantRecord. Never raises."""

    def normalize_all(self, raws: list, now: datetime | None = None) -> list[GrantRecord]:
        """Normalize listings, dropping those without an id or title."""
        now = now or datetime.now()
        records = []
        for raw in raws:
            record = self.normalize(raw)
            if not record.external_id or not record.title:
                logger.debug("%s: skipping listing without id or title", self.name)
                continue
            record.last_synced_at = now
            records.append(record)
        return records

    # HTTP helpers

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        headers = {"User-Agent": USER_AGENT, **kwargs.pop("headers", {})}
        try:
            response = requests.request(
                method, url, headers=headers, timeout=REQUEST_TIMEOUT, **kwargs
            )
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            raise SourceUnavailable(self.name, f"HTTP {status} from {url}") from e
        except requests.RequestException as e:
            raise SourceUnavailable(self.name, f"request to {url} failed: {e}") from e
        return response

    def _get_json(self, url: str, **kwargs):
        response = self._request("GET", url, **kwargs)
        return self._decode_json(response)

    def _post_json(self, url: str, **kwargs):
        response = self._request("POST", url, **kwargs)
        return self._decode_json(response)

    def _decode_json(self, response: requests.Response):
        try:
            return response.json()
        except ValueError as e:
            raise SourceFormatError(self.name, f"invalid JSON: {e}") from e


class ScraperAdapter(BaseAdapter):
    """Adapter for sources without an API, parsed from HTML with BeautifulSoup.

    Subclasses set ``listing_path`` and the CSS selectors for program
    cards. The page is only fetched when robots.txt allows it; a
    disallowed path gives an empty listing. Cards without a readable
    deadline normalize to pending_review.
    """

    listing_path: str = "/"
    agency: str = ""
    default_grant_type: str | None = None
    card_selector: str = "article"
    title_selector: str = "h2, h3"
    summary_selector: str = "p"
    eligibility_selector: str | None = None

    @property
    def listing_url(self) -> str:
        return urljoin(self.config.base_url, self.listing_path)

    def allowed_by_robots(self) -> bool:
        """Check robots.txt for the listing page.

        An unreachable or missing robots.txt allows crawling; a 401 or 403
        response disallows it.
        """
        parsed = urlparse(self.config.base_url)
        robots_url = f"{parsed.scheme}://{parsed.netloc}/robots.txt"
        try:
            response = requests.get(
                robots_url, headers={"User-Agent": USER_AGENT}, timeout=REQUEST_TIMEOUT
            )
        except requests.RequestException as e:
            logger.warning("%s: robots.txt unavailable (%s), assuming allowed", self.name, e)
            return True
        if response.status_code in (401, 403):
            logger.info("%s: robots.txt access denied (HTTP %d)", self.name, response.status_code)
            return False
        if response.status_code >= 400:
            return True

        parser = RobotFileParser()
        parser.parse(response.text.splitlines())
        return parser.can_fetch(USER_AGENT, self.listing_url)

    def fetch(self) -> list[dict]:
        if not self.allowed_by_robots():
            logger.info("%s: %s disallowed by robots.txt", self.name, self.listing_path)
            return []

        response = self._request("GET", self.listing_url)
        soup = BeautifulSoup(response.text, "html.parser")
        try:
            return self.parse(soup)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise SourceFormatError(self.name, f"unexpected page layout: {e}") from e

    def parse(self, soup: BeautifulSoup) -> list[dict]:
        """Extract one listing dict per program card."""
        listings = []
        for card in soup.select(self.card_selector):
            heading = card.select_one(self.title_selector)
            title = self.text_of(heading)
            if not title:
                continue

            link = heading.find("a", href=True) or card.find("a", href=True)
            url = urljoin(self.listing_url, link["href"]) if link else self.listing_url
            summary = " ".join(
                self.text_of(p) for p in card.select(self.summary_selector)
            )
            eligibility = []
            if self.eligibility_selector:
                eligibility = [self.text_of(li) for li in card.select(self.eligibility_selector)]

            full_text = self.text_of(card)
            deadline = _DEADLINE.search(full_text)
            amounts = extract_amounts(full_text)

            external_id = ""
            if link:
                external_id = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]

            listings.append({
                "id": external_id or slugify(title),
                "title": title,
                "description": summary,
                "url": url,
                "deadline": deadline.group(1) if deadline else None,
                "amount": max(amounts) if amounts else None,
                "eligibility": [e for e in eligibility if e],
            })
        return listings

    def normalize(self, raw) -> GrantRecord:
        if not isinstance(raw, dict):
            return GrantRecord(external_id="", source=self.name, title="")

        title = str(raw.get("title") or "")
        description = str(raw.get("description") or "")
        eligibility = [str(e) for e in raw.get("eligibility") or []]
        domains, tags = build_tags(
            " ".join([title, description] + eligibility),
            agency=self.agency,
            eligibility=eligibility,
        )
        deadline = parse_date(raw.get("deadline"))

        return GrantRecord(
            external_id=str(raw.get("id") or ""),
            source=self.name,
            title=title,
            description=description,
            summary=summarize(description),
            agency=self.agency,
            grant_type=infer_grant_type(f"{title} {description}", self.default_grant_type),
            award_max=parse_amount(raw.get("amount")),
            close_date=deadline.date() if deadline else None,
            application_deadline=deadline,
            eligible_applicants=eligibility,
            industry_focus=domains,
            tags=tags,
            application_url=raw.get("url"),
            status=GrantStatus.ACTIVE if deadline else GrantStatus.PENDING_REVIEW,
        )

    @staticmethod
    def text_of(element) -> str:
        return " ".join(element.get_text(" ").split()) if element else ""
