"""Exceptions raised by ddns-sync.

Provider errors are always scoped to a single domain; the reconciler catches
them at the domain boundary and records a failed status. ConfigError is only
raised while building the configuration snapshot.
"""


class ConfigError(Exception):
    """Invalid or incomplete configuration."""


class ProviderError(Exception):
    """A DNS provider call failed (transport, HTTP status, or response body)."""


class ZoneResolutionError(ProviderError):
    """The zone lookup returned no match or an ambiguous match."""


class RecordListError(ProviderError):
    """Listing the existing records of a zone failed."""


class RecordWriteError(ProviderError):
    """Creating or updating a record failed."""
