"""
WARDEN v1.0 - Centralized Exception Hierarchy
=============================================

Provides structured exception types for the access-control engine.

Exception Categories:
    - ValidationError: Malformed policy or role rejected at registration
    - NotFoundError: Unknown policy id, role, or audit entry
    - EvaluationError: A condition could not be evaluated (never raised past
      the condition evaluator; recorded on the decision instead)
    - ComplianceError: A blocking compliance violation forced a denial
    - PermissionDeniedError: A guarded call was refused
    - AuditSinkError: The durable audit sink rejected a batch
    - ConfigurationError: Configuration and setup problems

Author: WARDEN Development Team
Version: 1.0.0
"""

from typing import Any, Dict, List, Optional


class WardenError(Exception):
    """
    Base exception for all WARDEN errors.

    Attributes:
        message: Human-readable error description
        code: Optional error code for programmatic handling
        details: Optional dict with additional context
        recoverable: Whether error can potentially be retried
    """

    # Default recoverability - subclasses can override
    recoverable: bool = True

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for audit metadata and logs."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(WardenError):
    """Base exception for definitions rejected at registration."""

    recoverable = False

    def __init__(self, message: str, errors: Optional[List[str]] = None, **kwargs):
        kwargs.setdefault("code", "VALIDATION")
        super().__init__(message, **kwargs)
        self.errors = errors or []
        self.details.setdefault("errors", self.errors)


class PolicyValidationError(ValidationError):
    """Policy failed validation on upsert."""

    def __init__(self, message: str, policy_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.policy_id = policy_id


class RoleValidationError(ValidationError):
    """Role definition failed validation on registration."""

    def __init__(self, message: str, role: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.role = role


# =============================================================================
# LOOKUP ERRORS
# =============================================================================


class NotFoundError(WardenError):
    """Base exception for lookups of unknown identifiers."""

    recoverable = False

    def __init__(self, message: str, identifier: Optional[str] = None, **kwargs):
        kwargs.setdefault("code", "NOT_FOUND")
        super().__init__(message, **kwargs)
        self.identifier = identifier


class RoleNotFoundError(NotFoundError):
    """Role is not registered."""

    pass


class PolicyNotFoundError(NotFoundError):
    """Policy id is not in the store."""

    pass


class AuditEntryNotFoundError(NotFoundError):
    """Audit sequence number does not exist."""

    pass


# =============================================================================
# EVALUATION & COMPLIANCE ERRORS
# =============================================================================


class EvaluationError(WardenError):
    """A condition could not be evaluated. Treated as a false condition."""

    def __init__(
        self,
        message: str,
        condition_id: Optional[str] = None,
        kind: Optional[str] = None,
        **kwargs,
    ):
        kwargs.setdefault("code", "EVALUATION")
        super().__init__(message, **kwargs)
        self.condition_id = condition_id
        self.kind = kind


class ComplianceError(WardenError):
    """A mandatory compliance requirement was not met."""

    recoverable = False

    def __init__(self, message: str, flags: Optional[List[str]] = None, **kwargs):
        kwargs.setdefault("code", "COMPLIANCE")
        super().__init__(message, **kwargs)
        self.flags = flags or []


class PermissionDeniedError(WardenError):
    """A guarded operation was refused by the decision engine."""

    recoverable = False

    def __init__(self, message: str, decision: Any = None, **kwargs):
        kwargs.setdefault("code", "DENIED")
        super().__init__(message, **kwargs)
        self.decision = decision


# =============================================================================
# INFRASTRUCTURE ERRORS
# =============================================================================


class AuditSinkError(WardenError):
    """Durable audit sink did not acknowledge a batch."""

    pass


class ConfigurationError(WardenError):
    """Base exception for configuration errors."""

    recoverable = False


# =============================================================================
# HELPERS
# =============================================================================


def is_recoverable(error: Exception) -> bool:
    """
    Determine if an error is potentially recoverable.

    Recoverable errors can be retried after a delay.
    Non-recoverable errors require intervention.
    """
    if hasattr(error, "recoverable"):
        return error.recoverable

    return not isinstance(error, (SystemExit, KeyboardInterrupt, MemoryError))


def is_critical(error: Exception) -> bool:
    """
    Determine if an error indicates a misconfiguration or blocked access
    that requires immediate attention.
    """
    critical_types = (
        ComplianceError,
        RoleNotFoundError,
        ConfigurationError,
    )
    return isinstance(error, critical_types)


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    # Base
    "WardenError",
    # Validation
    "ValidationError",
    "PolicyValidationError",
    "RoleValidationError",
    # Lookup
    "NotFoundError",
    "RoleNotFoundError",
    "PolicyNotFoundError",
    "AuditEntryNotFoundError",
    # Evaluation
    "EvaluationError",
    "ComplianceError",
    "PermissionDeniedError",
    # Infrastructure
    "AuditSinkError",
    "ConfigurationError",
    # Helpers
    "is_recoverable",
    "is_critical",
]
