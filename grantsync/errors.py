"""Exception hierarchy for grantsync."""


class GrantSyncError(Exception):
    """Base class for all grantsync errors."""


class SourceUnavailable(GrantSyncError):
    """A grant source could not be reached (network, auth or HTTP error).

    Transient: the scheduler retries these with backoff.
    """

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")


class SourceFormatError(GrantSyncError):
    """A grant source answered with a response that could not be parsed.

    Not retried; the source is skipped for the current run.
    """

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")


class RepositoryWriteError(GrantSyncError):
    """Persisting grants or bookkeeping rows failed."""


class InvalidFilterError(GrantSyncError, ValueError):
    """Search was called with bad filter or pagination parameters."""
