"""Error Hierarchy — typed, categorized exceptions for all curriculum sync failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Per-operation failures never escape commit(): the executor converts them
      into failed OpResults via to_dict()
    - Addressing errors (bad section index, unknown field) are raised synchronously
      by controller methods; they never reach the remote service

Design Decisions:
    - Single hierarchy with CurriculumSyncError base: executor catches the base class
      and records code + message on the failed result
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity for observability and caller handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DEPENDENCY = "dependency"
    EXTERNAL_API = "external_api"
    CANCELLED = "cancelled"
    CONFLICT = "conflict"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    course_id: str | None = None
    op_type: str | None = None
    entity_id: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class CurriculumSyncError(Exception):
    """Base exception for all curriculum sync errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()

    def to_dict(self) -> dict:
        """Structured envelope for logs and failed-result reporting."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "course_id": self.context.course_id,
                    "op_type": self.context.op_type,
                    "entity_id": self.context.entity_id,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


# ─── Addressing Errors (raised by controller methods) ──────────

class ResourceNotFoundError(CurriculumSyncError):
    """Controller addressed an entity that is not in the editable tree."""
    def __init__(
        self, resource_type: str, locator: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} at {locator} not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context,
        )
        self.resource_type = resource_type


class UnknownFieldError(CurriculumSyncError):
    """Field update named a field the entity does not have."""
    def __init__(self, entity_type: str, field_name: str, context: ErrorContext | None = None):
        super().__init__(
            f"{entity_type} has no field '{field_name}'",
            "UNKNOWN_FIELD", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context,
        )
        self.field_name = field_name


# ─── Execution Errors (become failed OpResults) ─────────────────

class SnapshotMissingError(CurriculumSyncError):
    """Entity referenced by an operation is absent from the live snapshot."""
    def __init__(self, entity_type: str, entity_id: str, context: ErrorContext | None = None):
        super().__init__(
            f"Data for {entity_type} {entity_id} not found in snapshot",
            "SNAPSHOT_MISSING", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context,
        )


class UnresolvedIdentityError(CurriculumSyncError):
    """A dependent call needs a temporary id that never reached the server."""
    def __init__(self, entity_type: str, temp_id: str, context: ErrorContext | None = None):
        super().__init__(
            f"{entity_type} {temp_id} has no server id (its create did not succeed)",
            "UNRESOLVED_IDENTITY", ErrorCategory.DEPENDENCY,
            ErrorSeverity.ERROR, context,
        )
        self.temp_id = temp_id


class PersistenceServiceError(CurriculumSyncError):
    """Persistence service call failed at the transport level."""
    def __init__(
        self,
        message: str,
        failure_type: str,
        status_code: int | None = None,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"Persistence service error ({failure_type}): {message}",
            "PERSISTENCE_SERVICE_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, ctx,
        )
        self.failure_type = failure_type
        self.status_code = status_code


# ─── Commit Lifecycle Errors ────────────────────────────────────

class CommitAbortedError(CurriculumSyncError):
    """Cancellation token was aborted before or during a commit."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Commit aborted",
            "COMMIT_ABORTED", ErrorCategory.CANCELLED,
            ErrorSeverity.WARNING, context,
        )


class CommitInProgressError(CurriculumSyncError):
    """A second commit/retry was started while one is still in flight."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "A commit is already in progress; commits must be serialized",
            "COMMIT_IN_PROGRESS", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context,
        )
