"""USDA Rural Development programs, scraped from rd.usda.gov."""

from .base import ScraperAdapter, SourceConfig


class USDAAdapter(ScraperAdapter):
    """Scrapes the Rural Development business programs listing."""

    default_config = SourceConfig(
        name="usda",
        display_name="USDA Rural Development",
        base_url="https://www.rd.usda.gov",
        kind="scraper",
        rate_limit=60,
    )

    listing_path = "/programs-services/business-programs"
    agency = "USDA Rural Development"
    card_selector = "div.views-row, article"
    title_selector = "h2, h3, .views-field-title"
    summary_selector = ".views-field-body, p"
    eligibility_selector = ".field--name-field-eligibility li"
