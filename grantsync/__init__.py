"""grantsync - Grant data synchronization and proposal matching."""

__version__ = "0.3.0"
