"""
Error taxonomy for the harvesting pipeline.

Everything derived from HarvestError is recoverable: the orchestrator logs it
and moves on to the next unit of work. ConfigError and MissingTokenError are
fatal preconditions and are never swallowed.
"""


class HarvestError(Exception):
    """Recoverable pipeline error."""
    pass


# Parse failures

class ListingParseError(HarvestError):
    """The contest listing page could not be turned into records."""
    pass


class ListingMarkerNotFound(ListingParseError):
    """No script block carried the contest payload."""
    pass


class ListingJSONError(ListingParseError):
    """The payload block did not contain valid JSON."""
    pass


class ListingShapeError(ListingParseError):
    """The JSON document did not have the expected nesting."""
    pass


# Transport and access failures

class TransportError(HarvestError):
    """Network error, timeout or unexpected status from a remote service."""

    def __init__(self, message: str, status: int | None = None, url: str | None = None):
        super().__init__(message)
        self.status = status
        self.url = url


class NotFoundError(TransportError):
    """The remote resource does not exist."""
    pass


class BranchNotFoundError(NotFoundError):
    """The repository's default branch could not be determined."""
    pass


class AccessDeniedError(HarvestError):
    """Authentication or authorization was refused."""
    pass


# Decode and compile failures

class DecodeError(HarvestError):
    """Fetched or on-disk content could not be decoded."""
    pass


class SourceReadError(HarvestError):
    """A file in a working copy could not be read."""
    pass


class CompileError(HarvestError):
    """The compiler rejected the input or could not be invoked."""
    pass


# Clone failures

class CloneError(HarvestError):
    """Cloning a repository failed."""
    pass


class CloneAccessDenied(CloneError, AccessDeniedError):
    """The remote refused the clone (private repository, bad credentials)."""
    pass


class CloneNetworkError(CloneError, TransportError):
    """The clone failed for network reasons or timed out."""
    pass


class ClonePathConflict(CloneError):
    """The clone target exists and is not a directory."""
    pass


class ContestCancelled(HarvestError):
    """The run was cancelled before this contest finished."""
    pass


# Fatal preconditions

class ConfigError(Exception):
    """Invalid configuration value."""
    pass


class MissingTokenError(ConfigError):
    """No hosting API token was configured."""
    pass
