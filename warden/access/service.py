"""
WARDEN v1.0 - Access Control Service
====================================

Host-facing facade over the decision engine.

Wires the registry, store, evaluators, audit log and anomaly detector
from a WardenConfig, resolves relationships through the host's
IdentityProvider, and exposes the administrative, query and reporting
operations.

Example:
    service = AccessControlService(identity=my_identity_provider)
    if service.has_permission("u1", UserRole.USER, Permission.READ, "profile:u2",
                              profile_owner_id="u2"):
        ...

Author: WARDEN Development Team
Version: 1.0.0
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from warden.access.default_roles import default_policies, default_roles
from warden.access.reports import (
    AccessAnalytics,
    ComplianceReport,
    compute_access_analytics,
    export_access_data,
    generate_compliance_report,
    period_window,
)
from warden.core.config_manager import WardenConfig
from warden.core.encryption import get_field_encryptor
from warden.engine.anomaly_detector import AnomalyDetector
from warden.engine.audit_log import AuditLog
from warden.engine.collaborators import (
    AuditSink,
    Clock,
    IdentityProvider,
    InMemoryAuditSink,
    LoggingAuditSink,
    SystemClock,
)
from warden.engine.condition_evaluator import ConditionEvaluator, CustomPredicate
from warden.engine.decision_engine import DecisionEngine
from warden.engine.exceptions import PermissionDeniedError, ValidationError, WardenError
from warden.engine.field_access import Encryptor, FieldAccessEvaluator, apply_mask
from warden.engine.locks import ReadWriteLock
from warden.engine.models import (
    AccessContext,
    AccessDecision,
    AccessType,
    AuditEntry,
    DecisionOutcome,
    FieldAccessResult,
    MaskType,
    PatternDeviation,
    Permission,
    Policy,
    Relationship,
    RoleDefinition,
    UserRole,
)
from warden.engine.policy_store import PolicyStore
from warden.engine.role_registry import RoleRegistry

logger = logging.getLogger("WARDEN_Service")


def _build_sink(kind: str) -> Optional[AuditSink]:
    if kind == "logging":
        return LoggingAuditSink()
    if kind == "memory":
        return InMemoryAuditSink()
    return None


class AccessControlService:
    """
    Access-control facade.

    Registry and store share one reader-writer lock, so an evaluation sees
    a consistent role/policy snapshot while administrative writes wait.
    """

    def __init__(
        self,
        config: Optional[WardenConfig] = None,
        identity: Optional[IdentityProvider] = None,
        clock: Optional[Clock] = None,
        audit_sink: Optional[AuditSink] = None,
        encryptor: Optional[Encryptor] = None,
    ):
        self.cfg = config or WardenConfig()
        self._identity = identity
        self._clock = clock if clock is not None else SystemClock()
        self._encryptor = encryptor

        lock = ReadWriteLock()
        self._roles = RoleRegistry(lock)
        self._policies = PolicyStore(lock)
        self._conditions = ConditionEvaluator()
        self._fields = FieldAccessEvaluator(self._roles, self._conditions)
        self._audit = AuditLog(
            sink=audit_sink if audit_sink is not None else _build_sink(self.cfg.audit.sink),
            buffer_size=self.cfg.audit.buffer_size,
            hash_chain=self.cfg.audit.hash_chain,
        )
        self._detector = AnomalyDetector(config=self.cfg.anomaly, clock=self._clock)
        self._engine = DecisionEngine(
            roles=self._roles,
            policies=self._policies,
            conditions=self._conditions,
            fields=self._fields,
            audit_log=self._audit,
            detector=self._detector,
            clock=self._clock,
            config=self.cfg.engine,
        )

        if self.cfg.load_default_roles:
            self.load_defaults()

        logger.info(
            f"AccessControlService initialized: {len(self._roles.list_roles())} roles, "
            f"{len(self._policies)} policies"
        )

    def load_defaults(self) -> None:
        """Register the built-in role catalog and baseline policies."""
        for role, definition in default_roles().items():
            self._roles.register(role, definition)
        for policy in default_policies():
            self._policies.upsert(policy)

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def engine(self) -> DecisionEngine:
        return self._engine

    @property
    def roles(self) -> RoleRegistry:
        return self._roles

    @property
    def policies(self) -> PolicyStore:
        return self._policies

    @property
    def audit_log(self) -> AuditLog:
        return self._audit

    @property
    def detector(self) -> AnomalyDetector:
        return self._detector

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def resolve_relationship(self, user_id: str, profile_owner_id: Optional[str]) -> Relationship:
        """Requester/owner relationship; strangers unless the host says otherwise."""
        if profile_owner_id is None:
            return Relationship.STRANGER
        if user_id == profile_owner_id:
            return Relationship.SELF
        if self._identity is None:
            return Relationship.STRANGER
        return Relationship(self._identity.relationship(user_id, profile_owner_id))

    def evaluate(self, context: AccessContext) -> AccessDecision:
        """
        Decide one request.

        Raises:
            RoleNotFoundError: context role is not registered
            ValidationError: context names an unknown role or permission
        """
        if context.relationship is None and context.profile_owner_id is not None:
            context = replace(
                context,
                relationship=self.resolve_relationship(context.user_id, context.profile_owner_id),
            )
        return self._engine.evaluate(context)

    def has_permission(
        self,
        user_id: str,
        role: Optional[UserRole],
        permission: Permission,
        resource: str,
        profile_owner_id: Optional[str] = None,
        **attributes: Any,
    ) -> bool:
        """True only when the decision allows access; errors deny."""
        try:
            if role is None:
                role = self._role_of(user_id)
            decision = self.evaluate(
                AccessContext(
                    user_id=user_id,
                    role=role,
                    permission=permission,
                    resource=resource,
                    profile_owner_id=profile_owner_id,
                    attributes=attributes,
                )
            )
        except WardenError as e:
            logger.warning(f"has_permission({user_id}, {permission}) denied on error: {e}")
            return False
        return decision.allowed

    def effective_permissions(self, user_id: str, role: Optional[UserRole] = None) -> List[Permission]:
        """
        Role-derived permissions in declaration order.

        Raises:
            RoleNotFoundError: role is not registered
        """
        if role is None:
            role = self._role_of(user_id)
        effective = self._roles.effective_permissions(role)
        return [p for p in Permission if p in effective]

    def _role_of(self, user_id: str) -> UserRole:
        if self._identity is None:
            raise WardenError(f"No identity provider to resolve role of {user_id}", code="NO_IDENTITY")
        role = self._identity.role_of(user_id)
        try:
            return UserRole(role)
        except ValueError:
            raise ValidationError(f"Identity provider returned unknown role {role!r} for {user_id}")

    def can_access_field(
        self,
        role: UserRole,
        field_name: str,
        access_type: AccessType = AccessType.READ,
        context: Optional[AccessContext] = None,
    ) -> FieldAccessResult:
        return self._fields.can_access_field(role, field_name, access_type, context)

    def render_field(self, value: Any, result: FieldAccessResult) -> Any:
        """
        Value to return to the requester for a field access result.

        Raises:
            PermissionDeniedError: the result does not allow access
        """
        if not result.allowed:
            raise PermissionDeniedError(result.reason or "field access denied")
        if not result.masked or result.masking_rule is None:
            return value
        encryptor = self._encryptor
        if encryptor is None and result.masking_rule.mask_type == MaskType.ENCRYPT:
            encryptor = get_field_encryptor()
        return apply_mask(value, result.masking_rule, encryptor)

    def register_custom_condition(self, name: str, predicate: CustomPredicate) -> None:
        self._conditions.register_custom(name, predicate)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def register_role(self, role: UserRole, definition: RoleDefinition) -> None:
        self._roles.register(role, definition)

    def unregister_role(self, role: UserRole) -> None:
        self._roles.unregister(role)

    def upsert_policy(self, policy: Policy) -> Policy:
        """
        Validate and store a policy.

        Raises:
            PolicyValidationError: policy is malformed
        """
        return self._policies.upsert(policy)

    def remove_policy(self, policy_id: str) -> None:
        """
        Raises:
            PolicyNotFoundError: unknown policy id
        """
        self._policies.remove(policy_id)

    def get_policy(self, policy_id: str) -> Policy:
        return self._policies.get(policy_id)

    def list_policies(self) -> List[Policy]:
        return self._policies.list_policies()

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def query_audit_log(
        self,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        user_id: Optional[str] = None,
        permission: Optional[Permission] = None,
        outcome: Optional[DecisionOutcome] = None,
        limit: Optional[int] = None,
    ) -> List[AuditEntry]:
        return self._audit.query(
            start_time=start_time,
            end_time=end_time,
            user_id=user_id,
            permission=Permission(permission) if permission else None,
            outcome=DecisionOutcome(outcome) if outcome else None,
            limit=limit,
        )

    def get_audit_entry(self, sequence: int) -> AuditEntry:
        return self._audit.get(sequence)

    def flush_audit(self) -> int:
        return self._audit.flush()

    def verify_audit_integrity(self) -> bool:
        return self._audit.verify_integrity()

    # ------------------------------------------------------------------
    # Anomalies
    # ------------------------------------------------------------------

    def detect_anomalies(self, user_id: Optional[str] = None) -> List[PatternDeviation]:
        """Deviations for one user, or for every tracked user when omitted."""
        if user_id is not None:
            return self._detector.detect(user_id)
        deviations = [d for found in self._detector.detect_all().values() for d in found]
        return sorted(deviations, key=lambda d: d.confidence, reverse=True)

    def detect_all_anomalies(self) -> Dict[str, List[PatternDeviation]]:
        return self._detector.detect_all()

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def access_analytics(
        self,
        period: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> AccessAnalytics:
        """
        Analytics over the audit log.

        `period` ("day", "week" or "month") selects a window ending now and
        replaces any explicit bounds.
        """
        if period is not None:
            start_time, end_time = period_window(period, self._clock.now())
        entries = self._audit.query(start_time=start_time, end_time=end_time)
        deviations = [
            d
            for d in self._detector.recent_deviations()
            if (start_time is None or d.detected_at >= start_time)
            and (end_time is None or d.detected_at <= end_time)
        ]
        return compute_access_analytics(entries, deviations, start_time, end_time)

    def export_access_data(
        self,
        fmt: str = "json",
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> str:
        entries = self._audit.query(start_time=start_time, end_time=end_time)
        return export_access_data(entries, fmt, exported_at=self._clock.now())

    def compliance_report(
        self,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> ComplianceReport:
        entries = self._audit.query(start_time=start_time, end_time=end_time)
        return generate_compliance_report(
            entries,
            self._policies.list_policies(),
            generated_at=self._clock.now(),
            period_start=start_time,
            period_end=end_time,
            integrity_ok=self._audit.verify_integrity(),
        )

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "engine": self._engine.get_statistics(),
            "roles": self._roles.get_statistics(),
            "anomalies": self._detector.get_statistics(),
            "audit_entries": len(self._audit),
            "audit_pending": self._audit.pending_count,
        }


__all__ = ["AccessControlService"]
