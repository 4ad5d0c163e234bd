"""
WARDEN v1.0 - Field Access Evaluator
====================================

Resolves per-field read/write/delete permission and data-masking rules.

Resolution order for one field:
    1. Nearest FieldAccessRule in the role hierarchy (missing rule -> denied)
    2. Access-type flag on the rule
    3. GDPR protection: reads need the `audit` permission
    4. Visibility against the requester's relationship
    5. Masking rules: first rule whose guard holds (or cannot be
       evaluated) masks the value instead of denying it

Author: WARDEN Development Team
Version: 1.0.0
"""

import hashlib
import logging
from typing import Any, FrozenSet, Optional, Protocol

from .condition_evaluator import ConditionEvaluator
from .constants import REDACTED_VALUE
from .exceptions import ConfigurationError
from .models import (
    AccessContext,
    AccessType,
    DataMaskingRule,
    FieldAccessResult,
    MaskType,
    Permission,
    ProfileVisibility,
    Relationship,
    UserRole,
)
from .role_registry import RoleRegistry

logger = logging.getLogger("WARDEN_FieldAccess")


class Encryptor(Protocol):
    def encrypt_text(self, plaintext: str) -> str:
        ...


class FieldAccessEvaluator:
    """Field-level access and masking decisions for one role."""

    def __init__(
        self,
        roles: RoleRegistry,
        conditions: Optional[ConditionEvaluator] = None,
    ):
        self._roles = roles
        self._conditions = conditions if conditions is not None else ConditionEvaluator()

    def can_access_field(
        self,
        role: UserRole,
        field_name: str,
        access_type: AccessType = AccessType.READ,
        context: Optional[AccessContext] = None,
    ) -> FieldAccessResult:
        """
        Decide access to one field.

        Without a context, visibility levels that depend on the requester's
        relationship deny and every masking rule applies.

        Raises:
            RoleNotFoundError: role is not registered
        """
        access_type = AccessType(access_type)
        rule = self._roles.field_rule(role, field_name)
        if rule is None:
            return FieldAccessResult(allowed=False, reason=f"no access rule for field '{field_name}'")

        audit_required = rule.audit_required or rule.gdpr_protected

        if not rule.permits(access_type):
            return FieldAccessResult(
                allowed=False,
                audit_required=audit_required,
                reason=f"{access_type.value} not permitted on field '{field_name}'",
            )

        effective = self._roles.effective_permissions(role)

        if rule.gdpr_protected and access_type == AccessType.READ and Permission.AUDIT not in effective:
            logger.debug(f"GDPR field '{field_name}' denied to {role}: audit permission missing")
            return FieldAccessResult(
                allowed=False,
                audit_required=True,
                reason=f"field '{field_name}' is GDPR-protected and requires the audit permission",
            )

        if not self._visible(rule.visibility, role, effective, context):
            return FieldAccessResult(
                allowed=False,
                audit_required=audit_required,
                reason=f"field '{field_name}' visibility is {rule.visibility.value}",
            )

        if access_type == AccessType.READ:
            for masking_rule in rule.masking_rules:
                if self._guard_holds(masking_rule, context):
                    return FieldAccessResult(
                        allowed=True,
                        masked=True,
                        masking_rule=masking_rule,
                        audit_required=audit_required,
                        reason=f"field '{field_name}' masked ({masking_rule.mask_type.value})",
                    )

        return FieldAccessResult(allowed=True, audit_required=audit_required)

    @staticmethod
    def _visible(
        visibility: ProfileVisibility,
        role: UserRole,
        effective: FrozenSet[Permission],
        context: Optional[AccessContext],
    ) -> bool:
        if visibility == ProfileVisibility.PUBLIC:
            return True
        if visibility == ProfileVisibility.AUTHENTICATED:
            return UserRole(role) != UserRole.GUEST

        relationship = context.resolved_relationship if context else None
        if visibility == ProfileVisibility.FRIENDS:
            return relationship is not None and relationship.strength >= Relationship.FRIEND.strength
        if visibility == ProfileVisibility.PRIVATE:
            return relationship == Relationship.SELF
        if visibility == ProfileVisibility.RESTRICTED:
            return relationship == Relationship.SELF or bool(
                effective & {Permission.ADMIN, Permission.MODERATE}
            )
        return False

    def _guard_holds(self, rule: DataMaskingRule, context: Optional[AccessContext]) -> bool:
        if context is None:
            return True
        passed, errors = self._conditions.evaluate_all(rule.conditions, context)
        return passed or bool(errors)


def apply_mask(value: Any, rule: DataMaskingRule, encryptor: Optional[Encryptor] = None) -> str:
    """Render a field value through a masking rule."""
    text = "" if value is None else str(value)
    mask_type = MaskType(rule.mask_type)

    if mask_type == MaskType.PARTIAL:
        visible = max(0, rule.visible_chars)
        if len(text) <= visible:
            return rule.replacement * len(text)
        return rule.replacement * (len(text) - visible) + (text[-visible:] if visible else "")
    if mask_type == MaskType.FULL:
        return rule.replacement * len(text)
    if mask_type == MaskType.HASH:
        return hashlib.sha256(text.encode()).hexdigest()
    if mask_type == MaskType.ENCRYPT:
        if not text:
            return ""
        if encryptor is None:
            raise ConfigurationError("Encrypt masking requires an encryptor", code="NO_ENCRYPTOR")
        return encryptor.encrypt_text(text)
    return REDACTED_VALUE


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "Encryptor",
    "FieldAccessEvaluator",
    "apply_mask",
]
