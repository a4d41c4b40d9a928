"""
Exceptions for configurer.

Every error raised by the loader carries a stable ``kind`` so callers can
tell an expected condition (e.g. a provider that cannot write) apart from a
real failure, and an optional ``details`` mapping for logging.
"""

from typing import Any, Dict, Optional


class ConfigurerError(Exception):
    """Base exception for all configurer errors."""

    kind = "error"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary representation."""
        return {
            "error": self.__class__.__name__,
            "kind": self.kind,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class InvalidError(ConfigurerError):
    """Raised when an input, tag or option is invalid."""

    kind = "invalid"

    def __init__(self, what: str, reason: Optional[str] = None, **kwargs: Any) -> None:
        message = f"{what} is invalid"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, **kwargs)


class ParseError(InvalidError):
    """Raised when a literal can't be parsed into its destination type."""

    def __init__(self, field: str, value: str, reason: str) -> None:
        ConfigurerError.__init__(
            self,
            f"failed to parse {value!r} for {field}: {reason}",
            details={"field": field, "value": value},
        )


class RequiredError(ConfigurerError):
    """Raised when a mandatory value or credential is missing."""

    kind = "required"

    def __init__(self, what: str, **kwargs: Any) -> None:
        super().__init__(f"{what} is required", **kwargs)


class NotSupportedError(ConfigurerError):
    """Raised when a provider doesn't implement an operation."""

    kind = "not_supported"

    def __init__(self, what: str = "operation", **kwargs: Any) -> None:
        super().__init__(f"{what} is not supported", **kwargs)


class FailedToError(ConfigurerError):
    """Raised when an upstream call (file, network, SDK) fails."""

    kind = "failed_to"

    def __init__(
        self, action: str, error: Optional[BaseException] = None, **kwargs: Any
    ) -> None:
        message = f"failed to {action}"
        if error is not None:
            message = f"{message}: {error}"
            details = kwargs.setdefault("details", {}) or {}
            details["error"] = str(error)
            kwargs["details"] = details
        super().__init__(message, **kwargs)
        self.error = error


class NotFoundError(ConfigurerError):
    """Raised when a requested key, parameter or secret doesn't exist."""

    kind = "not_found"

    def __init__(self, what: str, **kwargs: Any) -> None:
        super().__init__(f"{what} not found", **kwargs)


class MissingError(ConfigurerError):
    """Raised when an upstream response lacks an expected value."""

    kind = "missing"

    def __init__(self, what: str, **kwargs: Any) -> None:
        super().__init__(f"{what} is missing", **kwargs)


class ValidationError(ConfigurerError):
    """Raised when the final validation pass finds rule violations."""

    kind = "validation"
