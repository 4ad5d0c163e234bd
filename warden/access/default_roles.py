"""
WARDEN v1.0 - Default Role Catalog
==================================

The six built-in roles, their profile field rules and a small set of
baseline policies. Hosts may load these as a starting point and upsert
their own policies on top.

Hierarchy:
    guest -> user -> premium
                  -> moderator -> admin -> superadmin

Author: WARDEN Development Team
Version: 1.0.0
"""

from typing import Dict, List

from warden.engine.models import (
    AuditLevel,
    ComplianceRequirement,
    ComplianceStandard,
    Condition,
    ConditionalPermission,
    ConditionKind,
    ConditionOperator,
    DataMaskingRule,
    FieldAccessRule,
    MaskType,
    Permission,
    Policy,
    PolicyAction,
    PolicyMetadata,
    PolicyType,
    ProfileVisibility,
    Relationship,
    RiskLevel,
    RoleDefinition,
    UserRole,
)

# Masks apply unless the requester owns the profile.
NOT_SELF = Condition(
    kind=ConditionKind.RELATIONSHIP,
    operator=ConditionOperator.NOT_EQUALS,
    value=Relationship.SELF,
    condition_id="not-self",
)

IS_SELF = Condition(
    kind=ConditionKind.RELATIONSHIP,
    operator=ConditionOperator.EQUALS,
    value=Relationship.SELF,
    condition_id="is-self",
)

FRIEND_OR_CLOSER = Condition(
    kind=ConditionKind.RELATIONSHIP,
    field="min_relationship",
    value=Relationship.FRIEND,
    condition_id="friend-or-closer",
)

PROFILE_RESOURCES = ("profile:*", "field:*")


# =============================================================================
# FIELD RULES
# =============================================================================


def _public_fields() -> Dict[str, FieldAccessRule]:
    return {
        "display_name": FieldAccessRule("display_name"),
        "avatar_url": FieldAccessRule("avatar_url"),
        "bio": FieldAccessRule("bio"),
    }


def _member_fields() -> Dict[str, FieldAccessRule]:
    return {
        "display_name": FieldAccessRule("display_name", write=True),
        "bio": FieldAccessRule("bio", write=True),
        "email": FieldAccessRule(
            "email",
            write=True,
            visibility=ProfileVisibility.AUTHENTICATED,
            masking_rules=(DataMaskingRule(MaskType.PARTIAL, visible_chars=4, conditions=(NOT_SELF,)),),
        ),
        "phone": FieldAccessRule(
            "phone",
            write=True,
            visibility=ProfileVisibility.FRIENDS,
            masking_rules=(DataMaskingRule(MaskType.PARTIAL, visible_chars=2, conditions=(NOT_SELF,)),),
        ),
        "location": FieldAccessRule("location", write=True, visibility=ProfileVisibility.FRIENDS),
        "date_of_birth": FieldAccessRule(
            "date_of_birth",
            write=True,
            visibility=ProfileVisibility.PRIVATE,
            gdpr_protected=True,
        ),
    }


def _staff_fields() -> Dict[str, FieldAccessRule]:
    return {
        "email": FieldAccessRule("email", visibility=ProfileVisibility.RESTRICTED, audit_required=True),
        "date_of_birth": FieldAccessRule(
            "date_of_birth",
            visibility=ProfileVisibility.RESTRICTED,
            gdpr_protected=True,
            masking_rules=(DataMaskingRule(MaskType.REDACT, conditions=(NOT_SELF,)),),
        ),
        "ssn": FieldAccessRule(
            "ssn",
            visibility=ProfileVisibility.RESTRICTED,
            gdpr_protected=True,
            encryption_required=True,
            masking_rules=(DataMaskingRule(MaskType.PARTIAL, visible_chars=4, conditions=(NOT_SELF,)),),
        ),
    }


# =============================================================================
# ROLES
# =============================================================================


def default_roles() -> Dict[UserRole, RoleDefinition]:
    """Role definitions in registration order (parents first)."""
    return {
        UserRole.GUEST: RoleDefinition(
            base_permissions=frozenset({Permission.READ}),
            field_rules=_public_fields(),
            description="Unauthenticated visitor",
        ),
        UserRole.USER: RoleDefinition(
            restricted_permissions=frozenset({Permission.ADMIN, Permission.AUDIT}),
            inherits_from=(UserRole.GUEST,),
            conditional_permissions=(
                ConditionalPermission(Permission.EDIT, (IS_SELF,)),
                ConditionalPermission(Permission.DELETE, (IS_SELF,)),
                ConditionalPermission(Permission.EXPORT, (IS_SELF,)),
            ),
            field_rules=_member_fields(),
            security_level=2,
            description="Registered member",
        ),
        UserRole.PREMIUM: RoleDefinition(
            inherits_from=(UserRole.USER,),
            conditional_permissions=(ConditionalPermission(Permission.EXPORT, (FRIEND_OR_CLOSER,)),),
            security_level=3,
            description="Paying member, may export friends' profiles",
        ),
        UserRole.MODERATOR: RoleDefinition(
            base_permissions=frozenset({Permission.MODERATE}),
            inherits_from=(UserRole.USER,),
            security_level=5,
            requires_mfa=True,
            description="Community moderator",
        ),
        UserRole.ADMIN: RoleDefinition(
            base_permissions=frozenset(
                {Permission.ADMIN, Permission.AUDIT, Permission.DELETE, Permission.EXPORT}
            ),
            inherits_from=(UserRole.MODERATOR,),
            field_rules=_staff_fields(),
            security_level=8,
            requires_mfa=True,
            description="Platform administrator",
        ),
        UserRole.SUPERADMIN: RoleDefinition(
            base_permissions=frozenset(Permission),
            inherits_from=(UserRole.ADMIN,),
            security_level=10,
            requires_mfa=True,
            description="Unrestricted operator",
        ),
    }


# =============================================================================
# BASELINE POLICIES
# =============================================================================


def default_policies() -> List[Policy]:
    """Baseline policies covering self-service, public reads and staff moderation."""
    return [
        Policy(
            policy_id="baseline-guest-readonly",
            name="Guests are read-only",
            priority=8,
            policy_type=PolicyType.ROLE_BASED,
            conditions=(Condition(kind=ConditionKind.ROLE, value=UserRole.GUEST),),
            actions=(
                PolicyAction.deny(
                    Permission.EDIT,
                    Permission.DELETE,
                    Permission.EXPORT,
                    Permission.ADMIN,
                    Permission.MODERATE,
                    Permission.AUDIT,
                ),
            ),
            resource_patterns=PROFILE_RESOURCES,
            metadata=PolicyMetadata(tags=("baseline",), category="security", risk_level=RiskLevel.MEDIUM),
        ),
        Policy(
            policy_id="baseline-self-service",
            name="Owners manage their own profile",
            priority=5,
            policy_type=PolicyType.RELATIONSHIP,
            conditions=(IS_SELF,),
            actions=(
                PolicyAction.grant(Permission.READ, Permission.EDIT, Permission.DELETE, Permission.EXPORT),
            ),
            resource_patterns=PROFILE_RESOURCES,
            metadata=PolicyMetadata(
                tags=("baseline",),
                category="self-service",
                compliance=(
                    ComplianceRequirement(ComplianceStandard.GDPR, "Art.15 right of access"),
                    ComplianceRequirement(ComplianceStandard.GDPR, "Art.17 right to erasure"),
                ),
            ),
        ),
        Policy(
            policy_id="baseline-staff-moderation",
            name="Staff moderate member profiles",
            priority=4,
            policy_type=PolicyType.ROLE_BASED,
            conditions=(
                Condition(
                    kind=ConditionKind.ROLE,
                    operator=ConditionOperator.CONTAINS,
                    value=(UserRole.MODERATOR, UserRole.ADMIN, UserRole.SUPERADMIN),
                ),
            ),
            actions=(
                PolicyAction.grant(Permission.EDIT, Permission.MODERATE),
                PolicyAction.audit(AuditLevel.DETAILED),
            ),
            resource_patterns=PROFILE_RESOURCES,
            target_permissions=frozenset({Permission.EDIT, Permission.MODERATE}),
            metadata=PolicyMetadata(tags=("baseline",), category="moderation", risk_level=RiskLevel.MEDIUM),
        ),
        Policy(
            policy_id="baseline-sensitive-audit",
            name="Sensitive operations are audited",
            priority=3,
            policy_type=PolicyType.ATTRIBUTE_BASED,
            actions=(PolicyAction.audit(AuditLevel.COMPREHENSIVE),),
            resource_patterns=PROFILE_RESOURCES,
            target_permissions=frozenset(
                {Permission.DELETE, Permission.EXPORT, Permission.ADMIN, Permission.AUDIT}
            ),
            metadata=PolicyMetadata(
                tags=("baseline",),
                category="compliance",
                risk_level=RiskLevel.HIGH,
                compliance=(
                    ComplianceRequirement(ComplianceStandard.GDPR, "Art.30 records of processing"),
                    ComplianceRequirement(ComplianceStandard.SOX, "Access logging"),
                ),
            ),
        ),
        Policy(
            policy_id="baseline-public-read",
            name="Profiles are readable",
            priority=1,
            policy_type=PolicyType.ROLE_BASED,
            actions=(PolicyAction.grant(Permission.READ),),
            resource_patterns=PROFILE_RESOURCES,
            target_permissions=frozenset({Permission.READ}),
            metadata=PolicyMetadata(tags=("baseline",), category="visibility"),
        ),
    ]


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "NOT_SELF",
    "IS_SELF",
    "FRIEND_OR_CLOSER",
    "PROFILE_RESOURCES",
    "default_roles",
    "default_policies",
]
