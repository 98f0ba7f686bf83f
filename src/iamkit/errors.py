"""
Exception hierarchy for iamkit.

All iamkit exceptions inherit from IAMError, allowing callers to catch
all iamkit-specific exceptions with a single except clause.

Exception Categories:
    - StorageNotConfiguredError / ConfigError: Engine or settings misconfigured
    - StorageError: A storage backend failed to read or write
    - OperatorError: A condition operator raised instead of returning a bool
    - HookError: An instrumentation hook raised on the evaluation path
    - AccessDeniedError: A guarded call was denied

The decision engine itself never lets these escape from evaluate();
they are converted into denied Decisions. They surface directly from
storage backends, settings loading and the access_control decorator.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from iamkit.schema import Decision


# =============================================================================
# Error Codes
# =============================================================================

# Configuration errors: 1xxx
ERROR_STORAGE_NOT_CONFIGURED = 1001
ERROR_CONFIG_INVALID = 1002

# Storage errors: 2xxx
ERROR_STORAGE_CONNECTION = 2001
ERROR_STORAGE_READ = 2002
ERROR_STORAGE_WRITE = 2003

# Evaluation errors: 3xxx
ERROR_OPERATOR_FAILED = 3001
ERROR_HOOK_FAILED = 3002

# Access errors: 4xxx
ERROR_ACCESS_DENIED = 4001


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class IAMError(Exception):
    """
    Base exception for all iamkit errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


def error_reason(err: BaseException) -> str:
    """
    Return the text used as a Decision reason for an error.

    IAMError subclasses contribute their bare message; anything else
    contributes str(err), falling back to the class name when empty.
    """
    if isinstance(err, IAMError):
        return err.message
    text = str(err)
    return text or err.__class__.__name__


# =============================================================================
# Configuration Errors
# =============================================================================


@dataclass
class StorageNotConfiguredError(IAMError):
    """Raised when the engine is asked to evaluate without a storage backend."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = "No storage adapter configured"
        if self.code == 0:
            self.code = ERROR_STORAGE_NOT_CONFIGURED
        if not self.suggestion:
            self.suggestion = "Pass a storage backend to AccessEngine(storage=...)"


@dataclass
class ConfigError(IAMError):
    """Raised when settings cannot be loaded or are invalid."""

    source: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid configuration: {self.source}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        self.context["source"] = self.source


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(IAMError):
    """
    Base class for storage backend errors.

    Attributes:
        operation: The operation that failed (e.g., "get_roles", "save_policy")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Storage operation failed: {self.operation}"
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when a storage backend cannot be opened."""

    location: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to open storage: {self.location}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the storage path is valid and writable"
        super().__post_init__()
        self.context["location"] = self.location


@dataclass
class StorageReadError(StorageError):
    """Raised when a read operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Storage read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Storage write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


# =============================================================================
# Evaluation Errors
# =============================================================================


@dataclass
class OperatorError(IAMError):
    """Raised when a condition operator raises instead of returning a bool."""

    operator: str = ""
    key: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Condition operator '{self.operator}' failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_OPERATOR_FAILED
        if not self.suggestion:
            self.suggestion = "Operators must return False for unsupported inputs instead of raising"
        self.context.update({
            "operator": self.operator,
            "key": self.key,
            "underlying_error": self.underlying_error,
        })


@dataclass
class HookError(IAMError):
    """
    Raised when an instrumentation hook fails on the evaluation path.

    The message is the hook's own error message, so the resulting
    denied Decision carries it verbatim.
    """

    hook: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Hook {self.hook} failed"
        if self.code == 0:
            self.code = ERROR_HOOK_FAILED
        self.context["hook"] = self.hook


# =============================================================================
# Access Errors
# =============================================================================


@dataclass
class AccessDeniedError(IAMError):
    """
    Raised by guarded callables when the engine denies access.

    Attributes:
        action: The action that was requested
        resource: The resource that was requested
        decision: The denied Decision, including its trace
    """

    action: str = ""
    resource: str = ""
    decision: "Decision | None" = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        reason = self.decision.trace.reason if self.decision is not None else None
        if not self.message:
            self.message = f"Access denied: {self.action} on {self.resource}"
            if reason:
                self.message += f" ({reason})"
        if self.code == 0:
            self.code = ERROR_ACCESS_DENIED
        self.context.update({
            "action": self.action,
            "resource": self.resource,
            "reason": reason,
        })
