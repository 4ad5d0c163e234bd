# WARDEN - Profile Access Control
"""
WARDEN: policy-driven access control for user profile data.

Core Components:
    - Role Registry: Role inheritance and effective permissions
    - Policy Store: Versioned, prioritized RBAC/ABAC policies
    - Decision Engine: Fail-closed multi-policy evaluation
    - Field Access: Field visibility and masking
    - Audit Log: Hash-chained decision trail
    - Anomaly Detector: Per-user behavioural baselines

Example:
    from warden import AccessControlService, AccessContext, Permission, UserRole

    service = AccessControlService()
    decision = service.evaluate(AccessContext(
        user_id="u1",
        role=UserRole.USER,
        permission=Permission.READ,
        resource="profile:u2",
        profile_owner_id="u2",
    ))

Author: WARDEN Development Team
Version: 1.0.0
"""

from warden.engine import (
    AccessContext,
    AccessDecision,
    AccessType,
    DecisionOutcome,
    DecisionEngine,
    Permission,
    Policy,
    PolicyAction,
    Condition,
    ConditionKind,
    ConditionOperator,
    Relationship,
    RoleDefinition,
    UserRole,
    WardenError,
)
from warden.access import AccessControlService
from warden.core import ConfigManager, WardenConfig

__version__ = "1.0.0"
__author__ = "WARDEN Development Team"

__all__ = [
    "AccessControlService",
    "AccessContext",
    "AccessDecision",
    "AccessType",
    "DecisionOutcome",
    "DecisionEngine",
    "Permission",
    "Policy",
    "PolicyAction",
    "Condition",
    "ConditionKind",
    "ConditionOperator",
    "Relationship",
    "RoleDefinition",
    "UserRole",
    "WardenError",
    "ConfigManager",
    "WardenConfig",
]
