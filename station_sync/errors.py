"""Exceptions raised by the sync layer."""

from typing import Optional


class SyncError(Exception):
    """Base class for all sync failures."""


class ConfigError(SyncError):
    """Required configuration is missing or malformed."""


class SourceError(SyncError):
    """The source store rejected or failed a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SourceConnectionError(SourceError):
    """The source store could not be reached or refused our credentials."""


class SourceTableNotFound(SourceError):
    """The requested table or resource does not exist in the source store."""

    def __init__(self, table: str, status_code: Optional[int] = 404):
        super().__init__(f"Source table not found: {table}", status_code)
        self.table = table


class TargetConnectionError(SyncError):
    """The MySQL target could not be reached or the connection was lost."""


class DumpParseError(SyncError):
    """A MySQL data dump contained a statement we could not parse."""


class WatchdogError(SyncError):
    """A supervised process could not be brought back to a healthy state."""


def driver_message(error: Exception) -> str:
    """A DB-API error's message without the numeric code prefix."""
    args = getattr(error, "args", ())
    if len(args) >= 2 and isinstance(args[0], int):
        return str(args[1])
    return str(error)


def driver_code(error: Exception) -> Optional[int]:
    args = getattr(error, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None
