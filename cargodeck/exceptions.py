"""Custom exceptions for cargodeck.

Only :class:`DiscoveryError` and :class:`NoProjectsError` escape the command
surface; project-level problems are folded into failed ``OperationResult``s.
"""


class CargoDeckError(Exception):
    """Base exception for all cargodeck errors."""


class DiscoveryError(CargoDeckError):
    """Raised when a project discovery walk cannot start."""


class InvalidRootError(DiscoveryError):
    """Raised when the scan root is missing or is not a directory."""

    def __init__(self, root: str, reason: str = "not a directory"):
        self.root = root
        self.reason = reason
        super().__init__(f"Invalid scan root '{root}': {reason}")


class NoProjectsError(CargoDeckError):
    """Raised when a batch is requested with no projects to attempt."""


class JobError(CargoDeckError):
    """Base exception for job registry errors."""


class DuplicateJobError(JobError):
    """Raised when a job id is registered while another job holds it."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job '{job_id}' is already registered")


class CacheIOError(CargoDeckError):
    """Raised by stores when persisted state cannot be read or written."""


class ParseError(CargoDeckError, ValueError):
    """Raised when tool output or a manifest cannot be parsed."""
