"""Grant source adapters and the update scheduler."""

from .base import BaseAdapter, ScraperAdapter, SourceConfig
from .records import GrantRecord
from .grants_gov import GrantsGovAdapter
from .foundation import FoundationAdapter
from .sba import SBAAdapter
from .usda import USDAAdapter


# Source name -> adapter class, in update order
all_sources = {
    "grants_gov": GrantsGovAdapter,
    "foundation": FoundationAdapter,
    "sba": SBAAdapter,
    "usda": USDAAdapter,
}


def build_adapters(overrides: dict | None = None, names: list[str] | None = None) -> list[BaseAdapter]:
    """
    Instantiate adapters with config.yaml ``sources`` overrides applied.

    Args:
        overrides: Per-source settings keyed by source name.
        names: Only build these sources. If None, build all.

    Returns:
        Adapters in update order.
    """
    overrides = overrides or {}
    adapters = []
    for name, adapter_cls in all_sources.items():
        if names is not None and name not in names:
            continue
        settings = dict(overrides.get(name) or {})
        # A configured feed URL turns a source on unless it is explicitly disabled
        if settings.get("base_url") and "enabled" not in settings:
            settings["enabled"] = True
        adapters.append(adapter_cls(adapter_cls.default_config.with_overrides(settings)))
    return adapters


__all__ = [
    "BaseAdapter",
    "ScraperAdapter",
    "SourceConfig",
    "GrantRecord",
    "GrantsGovAdapter",
    "FoundationAdapter",
    "SBAAdapter",
    "USDAAdapter",
    "all_sources",
    "build_adapters",
]
