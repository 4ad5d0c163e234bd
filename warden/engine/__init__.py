# WARDEN Engine - Access Decisions
"""
Access-control decision engine for profile data.

Modules:
    constants: System-wide constants and default thresholds
    exceptions: Centralized exception hierarchy
    models: Enumerations and immutable records
    locks: Reader-writer lock primitives
    collaborators: Clock, identity and audit sink interfaces
    role_registry: Role definitions and inheritance
    condition_evaluator: Fail-closed condition strategies
    policy_store: Versioned, prioritized policies
    field_access: Field-level access and masking
    audit_log: Append-only, hash-chained decision log
    anomaly_detector: Per-user behavioural baselines
    decision_engine: Multi-policy evaluation
"""

from .constants import (
    VERSION,
    SYSTEM_NAME,
    CRITICAL_PRIORITY_THRESHOLD,
    RISK_CEILING,
    FIELD_RESOURCE_PREFIX,
)

from .exceptions import (
    WardenError,
    ValidationError,
    PolicyValidationError,
    RoleValidationError,
    NotFoundError,
    RoleNotFoundError,
    PolicyNotFoundError,
    AuditEntryNotFoundError,
    EvaluationError,
    ComplianceError,
    PermissionDeniedError,
    AuditSinkError,
    ConfigurationError,
    is_recoverable,
    is_critical,
)

from .models import (
    Permission,
    UserRole,
    Relationship,
    ProfileVisibility,
    PolicyType,
    ConditionKind,
    ConditionOperator,
    ActionType,
    AuditLevel,
    PolicyExceptionType,
    ComplianceStandard,
    RiskLevel,
    AccessType,
    MaskType,
    RequirementType,
    FallbackAction,
    DecisionOutcome,
    DeviationType,
    DeviationSeverity,
    Condition,
    PolicyAction,
    PolicyException,
    ComplianceRequirement,
    PolicyMetadata,
    Policy,
    DataMaskingRule,
    FieldAccessRule,
    ConditionalPermission,
    RoleDefinition,
    AccessContext,
    PermissionRequirement,
    ConditionalGrant,
    FieldAccessResult,
    AccessDecision,
    AuditEntry,
    PatternDeviation,
)

from .locks import ReadWriteLock, KeyedReadWriteLocks

from .collaborators import (
    Clock,
    SystemClock,
    ManualClock,
    IdentityProvider,
    AuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
)

from .role_registry import RoleRegistry
from .condition_evaluator import ConditionEvaluator
from .policy_store import PolicyStore
from .field_access import FieldAccessEvaluator, apply_mask
from .audit_log import AuditLog
from .anomaly_detector import AnomalyConfig, AccessPattern, AnomalyDetector
from .decision_engine import EngineConfig, DecisionEngine

__all__ = [
    # Constants
    "VERSION",
    "SYSTEM_NAME",
    "CRITICAL_PRIORITY_THRESHOLD",
    "RISK_CEILING",
    "FIELD_RESOURCE_PREFIX",
    # Exceptions
    "WardenError",
    "ValidationError",
    "PolicyValidationError",
    "RoleValidationError",
    "NotFoundError",
    "RoleNotFoundError",
    "PolicyNotFoundError",
    "AuditEntryNotFoundError",
    "EvaluationError",
    "ComplianceError",
    "PermissionDeniedError",
    "AuditSinkError",
    "ConfigurationError",
    "is_recoverable",
    "is_critical",
    # Models
    "Permission",
    "UserRole",
    "Relationship",
    "ProfileVisibility",
    "PolicyType",
    "ConditionKind",
    "ConditionOperator",
    "ActionType",
    "AuditLevel",
    "PolicyExceptionType",
    "ComplianceStandard",
    "RiskLevel",
    "AccessType",
    "MaskType",
    "RequirementType",
    "FallbackAction",
    "DecisionOutcome",
    "DeviationType",
    "DeviationSeverity",
    "Condition",
    "PolicyAction",
    "PolicyException",
    "ComplianceRequirement",
    "PolicyMetadata",
    "Policy",
    "DataMaskingRule",
    "FieldAccessRule",
    "ConditionalPermission",
    "RoleDefinition",
    "AccessContext",
    "PermissionRequirement",
    "ConditionalGrant",
    "FieldAccessResult",
    "AccessDecision",
    "AuditEntry",
    "PatternDeviation",
    # Locks
    "ReadWriteLock",
    "KeyedReadWriteLocks",
    # Collaborators
    "Clock",
    "SystemClock",
    "ManualClock",
    "IdentityProvider",
    "AuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    # Components
    "RoleRegistry",
    "ConditionEvaluator",
    "PolicyStore",
    "FieldAccessEvaluator",
    "apply_mask",
    "AuditLog",
    "AnomalyConfig",
    "AccessPattern",
    "AnomalyDetector",
    "EngineConfig",
    "DecisionEngine",
]
