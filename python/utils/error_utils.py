"""
Error types and message utilities for the artifact cleaner.

Every error raised by a deletion carries actionable guidance (suggested fixes
and context) so that operators reading a failed job's log know where to look.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    CONNECTION = "connection"
    CONCURRENCY = "concurrency"
    RESOURCE = "resource"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [f"❌ {self.message}"]

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\n📋 Additional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


class CleanupError(ActionableError):
    """Base class for errors raised while deleting a single artifact"""


class LockTimeoutError(CleanupError):
    """A named resource stayed busy past the configured wait"""


class DeletionError(CleanupError):
    """The underlying storage or cloud provider failed during a delete call"""


class NotFoundError(CleanupError):
    """The artifact no longer exists; callers treat this as an already-completed delete"""


class CleanupRunError(Exception):
    """Raised after a cleanup run in which at least one deletion failed.

    The run is best-effort: ``result`` still holds the summary of everything
    that was deleted, and ``outcomes`` every per-artifact outcome.
    """

    def __init__(self, cause: BaseException, failed_count: int, result: str, outcomes: Optional[list] = None):
        self.cause = cause
        self.failed_count = failed_count
        self.result = result
        self.outcomes = outcomes or []
        super().__init__(
            f"{failed_count} artifact deletion(s) failed; first failure: {type(cause).__name__}: {cause}"
        )


def create_lock_timeout_error(lock_name: str, timeout: float) -> LockTimeoutError:
    """Create actionable error for a lock that could not be acquired in time"""
    return LockTimeoutError(
        message=f"Failed to acquire lock {lock_name} within {timeout}s",
        category=ErrorCategory.CONCURRENCY,
        suggestions=[
            "Check for a deploy or upload that is currently using this artifact",
            "Retry the cleanup once the running task has finished",
            "Increase cleanup.release_lock_timeout in config.yaml if deploys routinely hold the lock longer",
        ],
        details={"lock_name": lock_name, "timeout": timeout},
    )


def create_not_found_error(kind: str, identifier: str) -> NotFoundError:
    """Create error for an artifact that has already disappeared"""
    return NotFoundError(
        message=f"{kind.capitalize()} {identifier} not found",
        category=ErrorCategory.NOT_FOUND,
        details={"kind": kind, "identifier": identifier},
    )


def create_in_use_error(kind: str, identifier: str, users: List[str]) -> DeletionError:
    """Create actionable error for an artifact still referenced by deployments"""
    return DeletionError(
        message=f"{kind.capitalize()} {identifier} is still in use by: {', '.join(users)}",
        category=ErrorCategory.RESOURCE,
        suggestions=[
            "Delete or redeploy the listed deployments before removing this artifact",
            "Re-run the cleanup later; in-use artifacts are normally skipped by the pickers",
        ],
        details={"kind": kind, "identifier": identifier, "used_by": users},
    )


def create_deletion_error(kind: str, identifier: str, error: Exception) -> DeletionError:
    """Create actionable error for a failed storage or cloud delete call"""
    error_str = str(error).lower()

    suggestions = [
        f"Check the cloud provider console for {kind} {identifier}",
        "Verify the credentials used by the cleaner can delete this resource",
        "Re-run the cleanup; already-deleted artifacts are skipped",
    ]

    if "403" in error_str or "unauthorized" in error_str or "forbidden" in error_str:
        suggestions.insert(0, "Check IAM permissions for delete operations")

    if "timeout" in error_str or "timed out" in error_str:
        suggestions.insert(0, "Check if the cloud API is experiencing high latency")

    return DeletionError(
        message=f"Failed to delete {kind} {identifier}",
        category=ErrorCategory.RESOURCE,
        suggestions=suggestions,
        details={
            "kind": kind,
            "identifier": identifier,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )


def create_mongodb_connection_error(host: str, port: int, error: Exception) -> ActionableError:
    """Create actionable error for MongoDB connection failures"""
    error_str = str(error).lower()

    suggestions = [
        f"Verify MongoDB is running at {host}:{port}",
        "Check network connectivity to MongoDB",
        "Check MongoDB connection settings in config.yaml",
        "Verify MONGODB_PASSWORD environment variable is set (if required)",
    ]

    if "authentication" in error_str or "auth" in error_str:
        suggestions.insert(0, "Verify MongoDB username and password are correct")

    return ActionableError(
        message=f"Failed to connect to MongoDB at {host}:{port}",
        category=ErrorCategory.CONNECTION,
        suggestions=suggestions,
        details={
            "host": host,
            "port": port,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )
