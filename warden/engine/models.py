"""
WARDEN v1.0 - Access Control Data Model
=======================================

Closed enumerations and immutable records shared by every engine component:
roles, permissions, conditions, policies, field rules, access contexts,
decisions and audit entries.

Policies, role definitions and decisions are frozen dataclasses. Collection
fields are normalised to tuples/frozensets on construction so a stored
definition cannot be changed behind the engine's back.

Author: WARDEN Development Team
Version: 1.0.0
"""

import copy
import hashlib
import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from .constants import RELATIONSHIP_STRENGTH


# ============================================================
# Enumerations
# ============================================================


class Permission(str, Enum):
    """Profile permissions. Closed set."""

    READ = "read"
    EDIT = "edit"
    DELETE = "delete"
    ADMIN = "admin"
    MODERATE = "moderate"
    EXPORT = "export"
    AUDIT = "audit"


class UserRole(str, Enum):
    """Roles, least to most privileged."""

    GUEST = "guest"
    USER = "user"
    PREMIUM = "premium"
    MODERATOR = "moderator"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class Relationship(str, Enum):
    """Relationship between requester and profile owner."""

    SELF = "self"
    FRIEND = "friend"
    CONNECTION = "connection"
    STRANGER = "stranger"

    @property
    def strength(self) -> int:
        return RELATIONSHIP_STRENGTH[self.value]


class ProfileVisibility(str, Enum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    FRIENDS = "friends"
    PRIVATE = "private"
    RESTRICTED = "restricted"


class PolicyType(str, Enum):
    ROLE_BASED = "role_based"
    ATTRIBUTE_BASED = "attribute_based"
    RELATIONSHIP = "relationship"
    TIME_BASED = "time_based"
    LOCATION_BASED = "location_based"
    CUSTOM = "custom"


class ConditionKind(str, Enum):
    ROLE = "role"
    ATTRIBUTE = "attribute"
    TIME = "time"
    LOCATION = "location"
    RELATIONSHIP = "relationship"
    SECURITY = "security"
    CUSTOM = "custom"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN_RANGE = "in_range"
    REGEX = "regex"


class ActionType(str, Enum):
    GRANT = "grant"
    DENY = "deny"
    REQUIRE_APPROVAL = "require_approval"
    ESCALATE = "escalate"
    AUDIT = "audit"
    NOTIFY = "notify"


class AuditLevel(str, Enum):
    NONE = "none"
    BASIC = "basic"
    DETAILED = "detailed"
    COMPREHENSIVE = "comprehensive"


class PolicyExceptionType(str, Enum):
    EMERGENCY = "emergency"
    MAINTENANCE = "maintenance"
    COMPLIANCE = "compliance"
    EXECUTIVE = "executive"
    TEMPORARY = "temporary"


class ComplianceStandard(str, Enum):
    GDPR = "GDPR"
    SOX = "SOX"
    ISO27001 = "ISO27001"
    NIST = "NIST"
    HIPAA = "HIPAA"
    PCI_DSS = "PCI_DSS"
    CUSTOM = "custom"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AccessType(str, Enum):
    """Kind of access requested against a single field."""

    READ = "read"
    WRITE = "write"
    DELETE = "delete"


class MaskType(str, Enum):
    PARTIAL = "partial"
    FULL = "full"
    HASH = "hash"
    ENCRYPT = "encrypt"
    REDACT = "redact"


class RequirementType(str, Enum):
    MFA = "mfa"
    APPROVAL = "approval"
    DELEGATION = "delegation"
    ESCALATION = "escalation"
    AUDIT = "audit"
    CUSTOM = "custom"


class FallbackAction(str, Enum):
    DENY = "deny"
    ALLOW = "allow"
    ESCALATE = "escalate"


class DecisionOutcome(str, Enum):
    """Final outcome of one evaluation. Exactly six terminal states."""

    GRANTED = "granted"
    DENIED = "denied"
    CONDITIONAL = "conditional"
    INHERITED = "inherited"
    DELEGATED = "delegated"
    ESCALATED = "escalated"

    @property
    def allowed(self) -> bool:
        return self in _ALLOWED_OUTCOMES


_ALLOWED_OUTCOMES = frozenset(
    {
        DecisionOutcome.GRANTED,
        DecisionOutcome.INHERITED,
        DecisionOutcome.DELEGATED,
        DecisionOutcome.ESCALATED,
    }
)


class DeviationType(str, Enum):
    TIME = "time"
    PERMISSION = "permission"
    RESOURCE = "resource"
    LOCATION = "location"
    DEVICE = "device"
    FREQUENCY = "frequency"


class DeviationSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ============================================================
# Conditions
# ============================================================


@dataclass(frozen=True)
class Condition:
    """
    Typed predicate over an AccessContext.

    `field` is a dotted path for attribute/security conditions, the
    restriction name for time conditions ("allowed_hours", "blocked_hours",
    "date_range", "days_of_week"), "ip" or a geo attribute for location
    conditions, "relationship" or "min_relationship" for relationship
    conditions, and the registered evaluator name for custom conditions.
    """

    kind: ConditionKind
    field: str = ""
    operator: ConditionOperator = ConditionOperator.EQUALS
    value: Any = None
    negated: bool = False
    condition_id: str = ""
    timezone: str = "UTC"
    weight: float = 1.0


# ============================================================
# Policies
# ============================================================


@dataclass(frozen=True)
class PolicyAction:
    """One action of a policy, applied in order when its conditions pass."""

    action_type: ActionType
    permissions: FrozenSet[Permission] = frozenset()
    escalation_level: int = 0
    audit_level: AuditLevel = AuditLevel.NONE
    notification_targets: Tuple[str, ...] = ()
    delegated_from: Optional[str] = None
    description: str = ""

    def __post_init__(self):
        object.__setattr__(self, "permissions", frozenset(self.permissions))
        object.__setattr__(self, "notification_targets", tuple(self.notification_targets))

    def covers(self, permission: Permission) -> bool:
        """Empty permission set means every permission."""
        return not self.permissions or permission in self.permissions

    @classmethod
    def grant(cls, *permissions: Permission, delegated_from: Optional[str] = None) -> "PolicyAction":
        return cls(ActionType.GRANT, frozenset(permissions), delegated_from=delegated_from)

    @classmethod
    def deny(cls, *permissions: Permission) -> "PolicyAction":
        return cls(ActionType.DENY, frozenset(permissions))

    @classmethod
    def require_approval(cls, *permissions: Permission, description: str = "") -> "PolicyAction":
        return cls(ActionType.REQUIRE_APPROVAL, frozenset(permissions), description=description)

    @classmethod
    def escalate(cls, level: int, *permissions: Permission) -> "PolicyAction":
        return cls(ActionType.ESCALATE, frozenset(permissions), escalation_level=level)

    @classmethod
    def audit(cls, level: AuditLevel = AuditLevel.BASIC) -> "PolicyAction":
        return cls(ActionType.AUDIT, audit_level=level)

    @classmethod
    def notify(cls, *targets: str) -> "PolicyAction":
        return cls(ActionType.NOTIFY, notification_targets=tuple(targets))


@dataclass(frozen=True)
class PolicyException:
    """Time-boxed waiver of a policy's denials."""

    exception_type: PolicyExceptionType
    reason: str
    granted_permissions: FrozenSet[Permission]
    valid_from: datetime
    valid_until: datetime
    approved_by: str = ""
    audit_required: bool = True

    def __post_init__(self):
        object.__setattr__(self, "granted_permissions", frozenset(self.granted_permissions))

    def is_active(self, now: datetime) -> bool:
        return self.valid_from <= now < self.valid_until

    def covers(self, permission: Permission) -> bool:
        return permission in self.granted_permissions


@dataclass(frozen=True)
class ComplianceRequirement:
    standard: ComplianceStandard
    requirement: str
    mandatory: bool = False
    # Context attribute that must be truthy for a mandatory requirement
    required_attribute: Optional[str] = None

    @property
    def flag(self) -> str:
        return f"{self.standard.value}:{self.requirement}"


@dataclass(frozen=True)
class PolicyMetadata:
    tags: Tuple[str, ...] = ()
    category: str = ""
    risk_level: RiskLevel = RiskLevel.LOW
    compliance: Tuple[ComplianceRequirement, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "tags", tuple(self.tags))
        object.__setattr__(self, "compliance", tuple(self.compliance))


@dataclass(frozen=True)
class Policy:
    """
    Prioritized rule mapping conditions to actions.

    Higher priority wins; ties keep insertion order. An empty
    `target_permissions` set applies the policy to every permission.
    """

    policy_id: str
    name: str
    actions: Tuple[PolicyAction, ...]
    priority: int = 0
    policy_type: PolicyType = PolicyType.ROLE_BASED
    conditions: Tuple[Condition, ...] = ()
    active: bool = True
    resource_patterns: Tuple[str, ...] = ("*",)
    target_permissions: FrozenSet[Permission] = frozenset()
    exceptions: Tuple[PolicyException, ...] = ()
    metadata: PolicyMetadata = field(default_factory=PolicyMetadata)
    description: str = ""
    version: int = 1

    def __post_init__(self):
        object.__setattr__(self, "actions", tuple(self.actions))
        object.__setattr__(self, "conditions", tuple(self.conditions))
        # A bare string is kept as-is so validation can reject it
        if not isinstance(self.resource_patterns, str):
            object.__setattr__(self, "resource_patterns", tuple(self.resource_patterns))
        object.__setattr__(self, "target_permissions", frozenset(self.target_permissions))
        object.__setattr__(self, "exceptions", tuple(self.exceptions))

    def with_version(self, version: int) -> "Policy":
        return replace(self, version=version)


# ============================================================
# Roles and Fields
# ============================================================


@dataclass(frozen=True)
class DataMaskingRule:
    """Masking applied instead of a denial while its guard conditions hold."""

    mask_type: MaskType
    replacement: str = "*"
    visible_chars: int = 4
    conditions: Tuple[Condition, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "conditions", tuple(self.conditions))


@dataclass(frozen=True)
class FieldAccessRule:
    field_name: str
    read: bool = True
    write: bool = False
    delete: bool = False
    visibility: ProfileVisibility = ProfileVisibility.PUBLIC
    gdpr_protected: bool = False
    encryption_required: bool = False
    audit_required: bool = False
    masking_rules: Tuple[DataMaskingRule, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "masking_rules", tuple(self.masking_rules))

    def permits(self, access_type: AccessType) -> bool:
        return {
            AccessType.READ: self.read,
            AccessType.WRITE: self.write,
            AccessType.DELETE: self.delete,
        }[access_type]


@dataclass(frozen=True)
class ConditionalPermission:
    """Role permission that only holds while its conditions pass."""

    permission: Permission
    conditions: Tuple[Condition, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "conditions", tuple(self.conditions))


@dataclass(frozen=True)
class RoleDefinition:
    base_permissions: FrozenSet[Permission] = frozenset()
    restricted_permissions: FrozenSet[Permission] = frozenset()
    inherits_from: Tuple[UserRole, ...] = ()
    conditional_permissions: Tuple[ConditionalPermission, ...] = ()
    field_rules: Mapping[str, FieldAccessRule] = field(default_factory=dict)
    security_level: int = 0
    requires_mfa: bool = False
    description: str = ""

    def __post_init__(self):
        object.__setattr__(self, "base_permissions", frozenset(self.base_permissions))
        object.__setattr__(self, "restricted_permissions", frozenset(self.restricted_permissions))
        object.__setattr__(self, "inherits_from", tuple(self.inherits_from))
        object.__setattr__(self, "conditional_permissions", tuple(self.conditional_permissions))
        object.__setattr__(self, "field_rules", MappingProxyType(dict(self.field_rules)))


# ============================================================
# Context
# ============================================================


@dataclass(frozen=True)
class AccessContext:
    """Everything the engine needs to decide one request, resolved by the caller."""

    user_id: str
    role: UserRole
    permission: Permission
    resource: str
    profile_owner_id: Optional[str] = None
    session_id: str = ""
    device_id: str = ""
    ip_address: str = ""
    timestamp: Optional[datetime] = None
    relationship: Optional[Relationship] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    @property
    def resolved_relationship(self) -> Relationship:
        """Explicit relationship, else self for the owner, else stranger."""
        if self.relationship is not None:
            return Relationship(self.relationship)
        if self.profile_owner_id is not None and self.user_id == self.profile_owner_id:
            return Relationship.SELF
        return Relationship.STRANGER

    @property
    def location(self) -> str:
        return str(
            self.attributes.get("location")
            or self.attributes.get("country")
            or self.ip_address
            or "unknown"
        )

    def snapshot(self) -> "AccessContext":
        """Copy with a detached, read-only attribute bag."""
        return replace(self, attributes=MappingProxyType(copy.deepcopy(dict(self.attributes))))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "role": self.role.value,
            "permission": self.permission.value,
            "resource": self.resource,
            "profile_owner_id": self.profile_owner_id,
            "session_id": self.session_id,
            "device_id": self.device_id,
            "ip_address": self.ip_address,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "relationship": self.resolved_relationship.value,
            "attributes": dict(self.attributes),
        }


# ============================================================
# Decisions
# ============================================================


@dataclass(frozen=True)
class PermissionRequirement:
    requirement_type: RequirementType
    description: str = ""
    fallback: FallbackAction = FallbackAction.DENY
    timeout_minutes: int = 15
    policy_id: str = ""


@dataclass(frozen=True)
class ConditionalGrant:
    permission: Permission
    valid_until: datetime
    requires_revalidation: bool = True
    monitoring_required: bool = False
    policy_id: str = ""


@dataclass(frozen=True)
class FieldAccessResult:
    allowed: bool
    masked: bool = False
    masking_rule: Optional[DataMaskingRule] = None
    audit_required: bool = False
    reason: str = ""


@dataclass(frozen=True)
class AccessDecision:
    """Immutable result of one evaluation."""

    outcome: DecisionOutcome
    permission: Permission
    reason: str
    granted_permissions: FrozenSet[Permission] = frozenset()
    denied_permissions: FrozenSet[Permission] = frozenset()
    conditional_grants: Tuple[ConditionalGrant, ...] = ()
    requirements: Tuple[PermissionRequirement, ...] = ()
    audit_required: bool = False
    risk_score: int = 0
    policy_references: Tuple[str, ...] = ()
    evaluated_policies: Tuple[str, ...] = ()
    compliance_flags: Tuple[str, ...] = ()
    evaluation_errors: Tuple[str, ...] = ()
    notification_targets: Tuple[str, ...] = ()
    masking_rule: Optional[DataMaskingRule] = None
    decided_at: Optional[datetime] = None

    @property
    def allowed(self) -> bool:
        return self.outcome.allowed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "permission": self.permission.value,
            "reason": self.reason,
            "granted_permissions": sorted(p.value for p in self.granted_permissions),
            "denied_permissions": sorted(p.value for p in self.denied_permissions),
            "conditional_grants": [
                {
                    "permission": g.permission.value,
                    "valid_until": g.valid_until.isoformat(),
                    "requires_revalidation": g.requires_revalidation,
                    "monitoring_required": g.monitoring_required,
                    "policy_id": g.policy_id,
                }
                for g in self.conditional_grants
            ],
            "requirements": [
                {
                    "type": r.requirement_type.value,
                    "description": r.description,
                    "fallback": r.fallback.value,
                    "policy_id": r.policy_id,
                }
                for r in self.requirements
            ],
            "audit_required": self.audit_required,
            "risk_score": self.risk_score,
            "policy_references": list(self.policy_references),
            "evaluated_policies": list(self.evaluated_policies),
            "compliance_flags": list(self.compliance_flags),
            "evaluation_errors": list(self.evaluation_errors),
            "notification_targets": list(self.notification_targets),
            "masking": self.masking_rule.mask_type.value if self.masking_rule else None,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
        }


# ============================================================
# Audit and Anomalies
# ============================================================


@dataclass(frozen=True)
class AuditEntry:
    """Immutable record of one evaluation, chained to its predecessor by hash."""

    sequence: int
    timestamp: datetime
    context: AccessContext
    decision: AccessDecision
    policy_ids: Tuple[str, ...] = ()
    previous_hash: str = ""
    integrity_hash: str = ""

    @property
    def user_id(self) -> str:
        return self.context.user_id

    @property
    def permission(self) -> Permission:
        return self.context.permission

    @property
    def outcome(self) -> DecisionOutcome:
        return self.decision.outcome

    @property
    def risk_score(self) -> int:
        return self.decision.risk_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context.to_dict(),
            "decision": self.decision.to_dict(),
            "policy_ids": list(self.policy_ids),
            "risk_score": self.risk_score,
            "previous_hash": self.previous_hash,
            "integrity_hash": self.integrity_hash,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def compute_hash(self) -> str:
        """SHA256 over the canonical entry, excluding its own hash."""
        content = self.to_dict()
        content.pop("integrity_hash")
        return hashlib.sha256(
            json.dumps(content, sort_keys=True, default=str).encode()
        ).hexdigest()


@dataclass(frozen=True)
class PatternDeviation:
    user_id: str
    deviation_type: DeviationType
    severity: DeviationSeverity
    confidence: float
    description: str
    observed: str
    detected_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "type": self.deviation_type.value,
            "severity": self.severity.value,
            "confidence": round(self.confidence, 2),
            "description": self.description,
            "observed": self.observed,
            "detected_at": self.detected_at.isoformat(),
        }


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
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
]
