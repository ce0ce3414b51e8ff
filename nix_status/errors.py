"""Exception taxonomy for Nix Status.

Query errors carry the :class:`FailureKind` they are reported as, so the
counter can turn any of them into a ``Failure`` status update without a
lookup table.
"""

from nix_status.models import FailureKind


class NixStatusError(Exception):
    """Base class for all Nix Status errors."""


class WatchPathUnavailable(NixStatusError):
    """A monitored path's parent directory does not exist (yet)."""

    def __init__(self, directory: str):
        super().__init__(f"Watch directory does not exist: {directory}")
        self.directory = directory


class QueryError(NixStatusError):
    """A single process-count query failed."""

    kind = FailureKind.QUERY_EXECUTION_FAILED


class QueryToolMissing(QueryError):
    kind = FailureKind.QUERY_TOOL_MISSING


class QueryExecutionFailed(QueryError):
    kind = FailureKind.QUERY_EXECUTION_FAILED


class QueryOutputMalformed(QueryError):
    kind = FailureKind.QUERY_OUTPUT_MALFORMED


class ProcessExecutionCrashed(NixStatusError):
    """The query worker itself died; the loop cannot continue."""

    kind = FailureKind.PROCESS_EXECUTION_CRASHED
