"""
Result values and the error taxonomy.

Every fallible operation in the co-signer returns a Result instead of
raising across a component boundary. Failures carry a short
user-facing message and, separately, the raw technical detail.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    """Error taxonomy shared by all components."""
    # Builder / simulation
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_OUTPUT = "INVALID_OUTPUT"
    INVALID_MULTISIG = "INVALID_MULTISIG"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    BUILD_FAILED = "BUILD_FAILED"
    SIMULATION_FAILED = "SIMULATION_FAILED"

    # Signer / connectivity
    NOT_INSTALLED = "NOT_INSTALLED"
    USER_REJECTED = "USER_REJECTED"
    CONNECTION_FAILED = "CONNECTION_FAILED"
    SIGNING_FAILED = "SIGNING_FAILED"
    UNKNOWN = "UNKNOWN"

    # Export / import codec
    IMPORT_FORMAT_ERROR = "IMPORT_FORMAT_ERROR"
    UNSUPPORTED_VERSION = "UNSUPPORTED_VERSION"
    DUPLICATE_IMPORT = "DUPLICATE_IMPORT"
    MISSING_REQUIRED_DATA = "MISSING_REQUIRED_DATA"

    # Draft editing / pending store
    DUPLICATE_SIGNER = "DUPLICATE_SIGNER"
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    BUSY = "BUSY"


@dataclass(frozen=True)
class OperationError:
    """
    A failed operation.

    Attributes:
        code: Taxonomy entry
        message: Short message suitable for prominent display
        details: Raw underlying detail for diagnostics, if any
    """
    code: ErrorCode
    message: str
    details: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            return f"{self.code.value}: {self.message} ({self.details})"
        return f"{self.code.value}: {self.message}"


class CosignerError(Exception):
    """Raised when a failed Result is unwrapped."""

    def __init__(self, error: OperationError):
        super().__init__(str(error))
        self.error = error

    @property
    def code(self) -> ErrorCode:
        return self.error.code


@dataclass(frozen=True)
class Result(Generic[T]):
    """Success or failure of an operation."""

    ok: bool
    value: Any = None
    error: Optional[OperationError] = None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(ok=True, value=value)

    @classmethod
    def failure(
        cls,
        code: ErrorCode,
        message: str,
        details: Optional[str] = None,
    ) -> "Result":
        return cls(ok=False, error=OperationError(code, message, details))

    @classmethod
    def from_error(cls, error: OperationError) -> "Result":
        return cls(ok=False, error=error)

    def unwrap(self) -> Any:
        """Return the value, or raise CosignerError for a failure."""
        if not self.ok:
            raise CosignerError(self.error)
        return self.value

    def __bool__(self) -> bool:
        return self.ok
