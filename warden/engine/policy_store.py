"""
WARDEN v1.0 - Policy Store
==========================

Holds versioned, prioritized policies and validates them on insert.

Applicable policies are returned sorted by (priority desc, insertion order
asc). Re-upserting an id keeps its original insertion slot and bumps its
version; every stored version is kept in the policy's history.

Author: WARDEN Development Team
Version: 1.0.0
"""

import itertools
import logging
import math
import re
from dataclasses import replace
from fnmatch import fnmatchcase
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import PolicyNotFoundError, PolicyValidationError
from .locks import ReadWriteLock
from .models import (
    AccessContext,
    ActionType,
    Condition,
    ConditionKind,
    ConditionOperator,
    Permission,
    Policy,
    PolicyAction,
    Relationship,
    UserRole,
)

logger = logging.getLogger("WARDEN_PolicyStore")


class PolicyStore:
    """
    Versioned policy catalogue.

    Example:
        store = PolicyStore()
        store.upsert(Policy(
            policy_id="owner-edit",
            name="Owners edit their profile",
            priority=5,
            conditions=(Condition(ConditionKind.RELATIONSHIP, value="self"),),
            actions=(PolicyAction.grant(Permission.EDIT),),
        ))
        policies = store.applicable_policies(context)
    """

    def __init__(self, lock: Optional[ReadWriteLock] = None):
        self._lock = lock if lock is not None else ReadWriteLock()
        self._policies: Dict[str, Policy] = {}
        self._order: Dict[str, int] = {}
        self._history: Dict[str, List[Policy]] = {}
        self._sequence = itertools.count()

    @property
    def lock(self) -> ReadWriteLock:
        return self._lock

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def upsert(self, policy: Policy) -> Policy:
        """
        Validate and store a policy.

        Returns:
            The stored policy with its assigned version

        Raises:
            PolicyValidationError: policy is malformed
        """
        normalized, errors = self._normalize(policy)
        if errors:
            raise PolicyValidationError(
                f"Policy {policy.policy_id!r} rejected: {'; '.join(errors)}",
                errors=errors,
                policy_id=policy.policy_id,
            )

        with self._lock.write_lock():
            previous = self._policies.get(normalized.policy_id)
            # Numbering continues across a remove and re-add of the same id
            history = self._history.get(normalized.policy_id)
            version = history[-1].version + 1 if history else 1
            stored = normalized.with_version(version)

            if previous is None:
                self._order[stored.policy_id] = next(self._sequence)
            self._policies[stored.policy_id] = stored
            self._history.setdefault(stored.policy_id, []).append(stored)

        logger.info(
            f"Policy {'updated' if previous else 'added'}: {stored.policy_id} "
            f"v{stored.version} priority={stored.priority} active={stored.active}"
        )
        return stored

    def remove(self, policy_id: str) -> None:
        """
        Raises:
            PolicyNotFoundError: id is not stored
        """
        with self._lock.write_lock():
            if policy_id not in self._policies:
                raise PolicyNotFoundError(f"Policy not found: {policy_id}", identifier=policy_id)
            del self._policies[policy_id]
            del self._order[policy_id]
        logger.info(f"Policy removed: {policy_id}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, policy_id: str) -> Policy:
        with self._lock.read_lock():
            policy = self._policies.get(policy_id)
            if policy is None:
                raise PolicyNotFoundError(f"Policy not found: {policy_id}", identifier=policy_id)
            return policy

    def history(self, policy_id: str) -> List[Policy]:
        with self._lock.read_lock():
            if policy_id not in self._history:
                raise PolicyNotFoundError(f"Policy not found: {policy_id}", identifier=policy_id)
            return list(self._history[policy_id])

    def list_policies(self) -> List[Policy]:
        with self._lock.read_lock():
            return self._sorted(self._policies.values())

    def applicable_policies(self, context: AccessContext) -> List[Policy]:
        """Active policies matching the context resource and permission, highest priority first."""
        with self._lock.read_lock():
            return self._sorted(
                p for p in self._policies.values() if p.active and self._matches(p, context)
            )

    def __len__(self) -> int:
        return len(self._policies)

    def __contains__(self, policy_id: str) -> bool:
        return policy_id in self._policies

    def _sorted(self, policies) -> List[Policy]:
        return sorted(policies, key=lambda p: (-p.priority, self._order[p.policy_id]))

    @staticmethod
    def _matches(policy: Policy, context: AccessContext) -> bool:
        if policy.target_permissions and context.permission not in policy.target_permissions:
            return False
        return any(fnmatchcase(context.resource, pattern) for pattern in policy.resource_patterns)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _normalize(self, policy: Policy) -> Tuple[Policy, List[str]]:
        """Coerce enum-valued fields and collect every validation error."""
        errors: List[str] = []

        if not isinstance(policy.policy_id, str) or not policy.policy_id.strip():
            errors.append("policy_id must be a non-empty string")
        if not policy.name:
            errors.append("name is required")

        priority = policy.priority
        if isinstance(priority, bool) or not isinstance(priority, int):
            if isinstance(priority, float) and math.isfinite(priority) and priority.is_integer():
                priority = int(priority)
            else:
                errors.append(f"priority must be a finite integer, got {priority!r}")

        if not policy.actions:
            errors.append("at least one action is required")

        target_permissions = _coerce_permissions(policy.target_permissions, "target_permissions", errors)
        actions = tuple(self._normalize_action(a, i, errors) for i, a in enumerate(policy.actions))
        conditions = tuple(
            self._normalize_condition(c, f"conditions[{i}]", errors)
            for i, c in enumerate(policy.conditions)
        )

        for i, exception in enumerate(policy.exceptions):
            if exception.valid_until <= exception.valid_from:
                errors.append(f"exceptions[{i}]: valid_until must be after valid_from")
            _coerce_permissions(exception.granted_permissions, f"exceptions[{i}]", errors)

        patterns = policy.resource_patterns
        if isinstance(patterns, str):
            errors.append(f"resource_patterns must be a sequence of patterns, not the string {patterns!r}")
        elif not patterns:
            errors.append("at least one resource pattern is required")
        else:
            for i, pattern in enumerate(patterns):
                if not isinstance(pattern, str) or not pattern:
                    errors.append(f"resource_patterns[{i}] must be a non-empty string, got {pattern!r}")

        if errors:
            return policy, errors

        return (
            replace(
                policy,
                priority=priority,
                actions=actions,
                conditions=conditions,
                target_permissions=target_permissions,
            ),
            errors,
        )

    def _normalize_action(self, action: PolicyAction, index: int, errors: List[str]) -> PolicyAction:
        where = f"actions[{index}]"
        try:
            action_type = ActionType(action.action_type)
        except ValueError:
            errors.append(f"{where}: unknown action type {action.action_type!r}")
            return action

        permissions = _coerce_permissions(action.permissions, where, errors)
        if action_type == ActionType.GRANT and not permissions:
            errors.append(f"{where}: grant requires at least one permission")
        if action_type == ActionType.NOTIFY and not action.notification_targets:
            errors.append(f"{where}: notify requires at least one target")

        return replace(action, action_type=action_type, permissions=permissions)

    def _normalize_condition(self, condition: Condition, where: str, errors: List[str]) -> Condition:
        try:
            kind = ConditionKind(condition.kind)
        except ValueError:
            errors.append(f"{where}: unknown condition kind {condition.kind!r}")
            return condition
        try:
            operator = ConditionOperator(condition.operator)
        except ValueError:
            errors.append(f"{where}: unknown operator {condition.operator!r}")
            return condition

        value = condition.value
        if operator == ConditionOperator.REGEX:
            try:
                re.compile(value)
            except (re.error, TypeError) as e:
                errors.append(f"{where}: invalid regex {value!r}: {e}")
        if operator == ConditionOperator.IN_RANGE and not _is_pair(value):
            errors.append(f"{where}: in_range requires a (low, high) pair")
        if kind == ConditionKind.ROLE and not _all_members(UserRole, value):
            errors.append(f"{where}: unknown role {value!r}")
        if kind == ConditionKind.RELATIONSHIP and not _all_members(Relationship, value):
            errors.append(f"{where}: unknown relationship {value!r}")
        if kind in (ConditionKind.ATTRIBUTE, ConditionKind.SECURITY, ConditionKind.CUSTOM) and not condition.field:
            errors.append(f"{where}: {kind.value} condition requires a field")

        return replace(condition, kind=kind, operator=operator)


# =============================================================================
# HELPERS
# =============================================================================


def _coerce_permissions(values, where: str, errors: List[str]) -> frozenset:
    result = set()
    for value in values:
        try:
            result.add(Permission(value))
        except ValueError:
            errors.append(f"{where}: unknown permission {value!r}")
    return frozenset(result)


def _all_members(enum_cls, value: Any) -> bool:
    values = value if isinstance(value, (list, tuple, set, frozenset)) else [value]
    try:
        for v in values:
            enum_cls(v)
    except ValueError:
        return False
    return True


def _is_pair(value: Any) -> bool:
    if isinstance(value, dict):
        return "start" in value and "end" in value
    return isinstance(value, (list, tuple)) and len(value) == 2


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "PolicyStore",
]
