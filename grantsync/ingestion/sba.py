"""Small Business Administration grant programs, scraped from sba.gov."""

from .base import ScraperAdapter, SourceConfig


class SBAAdapter(ScraperAdapter):
    """Scrapes the SBA grants overview page."""

    default_config = SourceConfig(
        name="sba",
        display_name="Small Business Administration",
        base_url="https://www.sba.gov",
        kind="scraper",
        rate_limit=60,
    )

    listing_path = "/funding-programs/grants"
    agency = "Small Business Administration"
    default_grant_type = "sba"
    card_selector = "div.card, article, li.grant-program"
    title_selector = "h2, h3, .card__title"
    summary_selector = "p, .card__body"
    eligibility_selector = ".eligibility li"
