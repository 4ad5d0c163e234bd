"""
WARDEN v1.0 - Role Registry
===========================

Stores role definitions and resolves inheritance hierarchies.

Roles form a DAG through `inherits_from`. Registration rejects cycles,
unregistered parents and permissions that are both granted and restricted.
Effective permissions are the union of base permissions over the inherited
closure, minus the role's own restrictions and any ancestor restriction the
role does not explicitly grant again.

Author: WARDEN Development Team
Version: 1.0.0
"""

import logging
from typing import Dict, FrozenSet, List, Optional, Set

from .exceptions import RoleNotFoundError, RoleValidationError
from .locks import ReadWriteLock
from .models import (
    ConditionalPermission,
    FieldAccessRule,
    Permission,
    RoleDefinition,
    UserRole,
)

logger = logging.getLogger("WARDEN_RoleRegistry")


def _is_member(enum_cls, value) -> bool:
    try:
        enum_cls(value)
    except ValueError:
        return False
    return True


class RoleRegistry:
    """
    Registry of role definitions.

    Example:
        registry = RoleRegistry()
        registry.register(UserRole.GUEST, RoleDefinition(base_permissions={Permission.READ}))
        registry.register(
            UserRole.USER,
            RoleDefinition(base_permissions={Permission.EDIT}, inherits_from=(UserRole.GUEST,)),
        )
        registry.effective_permissions(UserRole.USER)  # {READ, EDIT}
    """

    def __init__(self, lock: Optional[ReadWriteLock] = None):
        self._lock = lock if lock is not None else ReadWriteLock()
        self._roles: Dict[UserRole, RoleDefinition] = {}

    @property
    def lock(self) -> ReadWriteLock:
        return self._lock

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def register(self, role: UserRole, definition: RoleDefinition) -> None:
        """
        Register or redefine a role.

        Raises:
            RoleValidationError: cycle, unknown parent or conflicting permissions
        """
        try:
            role = UserRole(role)
        except ValueError:
            raise RoleValidationError(f"Unknown role identifier: {role}", role=str(role))

        with self._lock.write_lock():
            errors = self._validate(role, definition)
            if errors:
                raise RoleValidationError(
                    f"Role {role.value} rejected: {'; '.join(errors)}",
                    errors=errors,
                    role=role.value,
                )
            self._roles[role] = definition

        logger.info(
            f"Role registered: {role.value} "
            f"(base={len(definition.base_permissions)}, inherits={[r.value for r in definition.inherits_from]})"
        )

    def unregister(self, role: UserRole) -> None:
        role = UserRole(role)
        with self._lock.write_lock():
            if role not in self._roles:
                raise RoleNotFoundError(f"Role not registered: {role.value}", identifier=role.value)
            dependants = [r.value for r, d in self._roles.items() if role in d.inherits_from]
            if dependants:
                raise RoleValidationError(
                    f"Role {role.value} is inherited by {dependants}",
                    errors=[f"inherited by {name}" for name in dependants],
                    role=role.value,
                )
            del self._roles[role]
        logger.info(f"Role unregistered: {role.value}")

    def _validate(self, role: UserRole, definition: RoleDefinition) -> List[str]:
        errors = []

        for permission in definition.base_permissions | definition.restricted_permissions:
            if not _is_member(Permission, permission):
                errors.append(f"unknown permission '{permission}'")

        overlap = definition.base_permissions & definition.restricted_permissions
        if overlap:
            names = sorted(str(getattr(p, "value", p)) for p in overlap)
            errors.append(f"permissions both granted and restricted: {names}")

        for conditional in definition.conditional_permissions:
            if not _is_member(Permission, conditional.permission):
                errors.append(f"unknown conditional permission '{conditional.permission}'")

        for name, rule in definition.field_rules.items():
            if name != rule.field_name:
                errors.append(f"field rule key '{name}' does not match rule field '{rule.field_name}'")

        if not 0 <= definition.security_level <= 10:
            errors.append("security_level must be within 0-10")

        for parent in definition.inherits_from:
            if not _is_member(UserRole, parent):
                errors.append(f"unknown parent role '{parent}'")
                continue
            parent = UserRole(parent)
            if parent == role:
                errors.append("role cannot inherit from itself")
            elif parent not in self._roles:
                errors.append(f"parent role '{parent.value}' is not registered")
            elif self._reaches(parent, role):
                errors.append(f"inheriting from '{parent.value}' creates a cycle")

        return errors

    def _reaches(self, start: UserRole, target: UserRole) -> bool:
        """True when `target` is in the inherited closure of `start`."""
        stack = [start]
        seen: Set[UserRole] = set()
        while stack:
            current = stack.pop()
            if current == target:
                return True
            if current in seen:
                continue
            seen.add(current)
            definition = self._roles.get(current)
            if definition:
                stack.extend(UserRole(p) for p in definition.inherits_from)
        return False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_role(self, role: UserRole) -> bool:
        with self._lock.read_lock():
            return role in self._roles

    def get(self, role: UserRole) -> RoleDefinition:
        with self._lock.read_lock():
            return self._require(role)

    def list_roles(self) -> List[UserRole]:
        with self._lock.read_lock():
            return list(self._roles)

    def _require(self, role: UserRole) -> RoleDefinition:
        definition = self._roles.get(role)
        if definition is None:
            raise RoleNotFoundError(f"Role not registered: {role}", identifier=str(role))
        return definition

    def role_hierarchy(self, role: UserRole) -> List[UserRole]:
        """The role followed by its ancestors, nearest first."""
        with self._lock.read_lock():
            self._require(role)
            order: List[UserRole] = []
            queue = [UserRole(role)]
            while queue:
                current = queue.pop(0)
                if current in order:
                    continue
                order.append(current)
                queue.extend(UserRole(p) for p in self._roles[current].inherits_from)
            return order

    def effective_permissions(self, role: UserRole) -> FrozenSet[Permission]:
        """
        Resolve the permission set of a role.

        Raises:
            RoleNotFoundError: role is not registered
        """
        with self._lock.read_lock():
            hierarchy = self.role_hierarchy(role)
            own = self._roles[hierarchy[0]]

            granted: Set[Permission] = set()
            inherited_restrictions: Set[Permission] = set()
            for current in hierarchy:
                definition = self._roles[current]
                granted |= definition.base_permissions
                if current != hierarchy[0]:
                    inherited_restrictions |= definition.restricted_permissions

            granted -= own.restricted_permissions
            granted -= inherited_restrictions - own.base_permissions
            return frozenset(Permission(p) for p in granted)

    def conditional_permissions(self, role: UserRole) -> List[ConditionalPermission]:
        with self._lock.read_lock():
            return [
                conditional
                for current in self.role_hierarchy(role)
                for conditional in self._roles[current].conditional_permissions
            ]

    def field_rule(self, role: UserRole, field_name: str) -> Optional[FieldAccessRule]:
        """Nearest field rule in the role's hierarchy."""
        with self._lock.read_lock():
            for current in self.role_hierarchy(role):
                rule = self._roles[current].field_rules.get(field_name)
                if rule is not None:
                    return rule
            return None

    def get_statistics(self) -> Dict[str, object]:
        with self._lock.read_lock():
            return {
                "roles": [r.value for r in self._roles],
                "field_rules": sum(len(d.field_rules) for d in self._roles.values()),
            }


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "RoleRegistry",
]
