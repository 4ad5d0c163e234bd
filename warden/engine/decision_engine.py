"""
WARDEN v1.0 - Decision Engine
=============================

Orchestrates the role registry, condition evaluator, policy store and field
evaluator into a single AccessDecision per request, then records it in the
audit log and feeds the anomaly detector.

Algorithm:
    1. No applicable policy            -> denied, risk = no_policy_risk_score
    2. Policies in priority order; conditions AND-combined (fail closed)
    3. Actions in order: grant / deny / require_approval / escalate /
       audit / notify. A deny is final; an active policy exception
       covering the permission turns that deny into an escalation.
    4. A critical policy (priority > threshold) with a non-deny outcome
       stops evaluation
    5. Role permissions add an implicit `inherited` grant when no policy
       decided and nothing was denied
    6. Field resources are checked against field rules and masking
    7. Mandatory compliance requirements left unmet force a denial
    8. Risk = role + relationship + sensitivity + contextual + errors;
       above the ceiling forces a denial

No error path yields access: uncertainty always resolves to denied.

Author: WARDEN Development Team
Version: 1.0.0
"""

import copy
import logging
import threading
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Deque, Dict, FrozenSet, List, Optional

from .anomaly_detector import AnomalyDetector
from .audit_log import AuditLog
from .collaborators import Clock, SystemClock
from .condition_evaluator import MISSING, ConditionEvaluator, lookup
from .constants import (
    CONDITIONAL_GRANT_TTL_MINUTES,
    CRITICAL_PRIORITY_THRESHOLD,
    EVALUATION_ERROR_RISK,
    NO_POLICY_RISK_SCORE,
    RELATIONSHIP_RISK,
    RISK_CEILING,
    ROLE_BASE_RISK,
    SENSITIVE_PERMISSION_RISK,
    SENSITIVE_PERMISSIONS,
    clamp_risk,
    field_name,
    is_field_resource,
)
from .exceptions import ComplianceError, EvaluationError, RoleNotFoundError, ValidationError
from .field_access import FieldAccessEvaluator
from .models import (
    AccessContext,
    AccessDecision,
    AccessType,
    ActionType,
    AuditLevel,
    ConditionalGrant,
    DataMaskingRule,
    DecisionOutcome,
    Permission,
    PermissionRequirement,
    Policy,
    RequirementType,
    UserRole,
)
from .policy_store import PolicyStore
from .role_registry import RoleRegistry

logger = logging.getLogger("WARDEN_DecisionEngine")

_FIELD_ACCESS = {
    Permission.READ: AccessType.READ,
    Permission.EDIT: AccessType.WRITE,
    Permission.DELETE: AccessType.DELETE,
}


@dataclass
class EngineConfig:
    """Configuration for the decision engine."""

    critical_priority_threshold: int = CRITICAL_PRIORITY_THRESHOLD
    risk_ceiling: int = RISK_CEILING
    no_policy_risk_score: int = NO_POLICY_RISK_SCORE
    evaluation_error_risk: int = EVALUATION_ERROR_RISK
    sensitive_permission_risk: int = SENSITIVE_PERMISSION_RISK
    conditional_grant_ttl_minutes: int = CONDITIONAL_GRANT_TTL_MINUTES
    history_size: int = 1000


@dataclass
class _Evaluation:
    """Mutable accumulator for one evaluate() call."""

    outcome: Optional[DecisionOutcome] = None
    reason: str = ""
    deciding_policy: str = ""
    policy_references: List[str] = field(default_factory=list)
    evaluated: List[str] = field(default_factory=list)
    requirements: List[PermissionRequirement] = field(default_factory=list)
    audit_required: bool = False
    notification_targets: List[str] = field(default_factory=list)
    compliance_flags: List[str] = field(default_factory=list)
    compliance_errors: List[ComplianceError] = field(default_factory=list)
    errors: List[EvaluationError] = field(default_factory=list)
    masking_rule: Optional[DataMaskingRule] = None


class DecisionEngine:
    """
    Access-control decision engine.

    Example:
        engine = DecisionEngine(registry, store)
        decision = engine.evaluate(AccessContext(
            user_id="u1",
            role=UserRole.USER,
            permission=Permission.READ,
            resource="profile:u2",
            profile_owner_id="u2",
        ))
        if decision.allowed:
            ...
    """

    def __init__(
        self,
        roles: RoleRegistry,
        policies: PolicyStore,
        conditions: Optional[ConditionEvaluator] = None,
        fields: Optional[FieldAccessEvaluator] = None,
        audit_log: Optional[AuditLog] = None,
        detector: Optional[AnomalyDetector] = None,
        clock: Optional[Clock] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.cfg = config or EngineConfig()
        self._clock = clock if clock is not None else SystemClock()
        self._roles = roles
        self._policies = policies
        self._conditions = conditions if conditions is not None else ConditionEvaluator()
        self._fields = fields if fields is not None else FieldAccessEvaluator(roles, self._conditions)
        self._audit = audit_log if audit_log is not None else AuditLog()
        self._detector = detector if detector is not None else AnomalyDetector(clock=self._clock)

        self._decision_history: Deque[AccessDecision] = deque(maxlen=self.cfg.history_size)
        self._stats_lock = threading.Lock()
        self._stats: Dict[str, Any] = {
            "total_evaluations": 0,
            "by_outcome": {o.value: 0 for o in DecisionOutcome},
            "evaluation_errors": 0,
            "risk_ceiling_denials": 0,
            "compliance_denials": 0,
        }

        logger.info(
            f"DecisionEngine initialized: critical_priority>{self.cfg.critical_priority_threshold}, "
            f"risk_ceiling={self.cfg.risk_ceiling}"
        )

    @property
    def audit_log(self) -> AuditLog:
        return self._audit

    @property
    def detector(self) -> AnomalyDetector:
        return self._detector

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, context: AccessContext) -> AccessDecision:
        """
        Decide one access request.

        Raises:
            RoleNotFoundError: context role is not registered
            ValidationError: context names an unknown role or permission
        """
        try:
            context = replace(
                context,
                role=UserRole(context.role),
                permission=Permission(context.permission),
            )
        except ValueError as e:
            raise ValidationError(f"Invalid access context: {e}", errors=[str(e)])

        now = self._clock.now()
        if context.timestamp is None:
            context = replace(context, timestamp=now)

        state = _Evaluation()

        with self._roles.lock.read_lock(), self._policies.lock.read_lock():
            if not self._roles.has_role(context.role):
                raise RoleNotFoundError(
                    f"Role not registered: {context.role.value}", identifier=context.role.value
                )
            effective = self._roles.effective_permissions(context.role)
            policies = self._policies.applicable_policies(context)

            if policies:
                self._apply_policies(policies, context, state, now)
                self._merge_role_permissions(context, effective, state)
                if is_field_resource(context.resource) and state.outcome != DecisionOutcome.DENIED:
                    self._check_field(context, state)
                self._enforce_compliance(state)

        if not policies:
            decision = AccessDecision(
                outcome=DecisionOutcome.DENIED,
                permission=context.permission,
                reason="no applicable policy",
                denied_permissions=frozenset({context.permission}),
                audit_required=True,
                risk_score=self.cfg.no_policy_risk_score,
                decided_at=now,
            )
        else:
            risk = self._risk_score(context, len(state.errors))
            if risk > self.cfg.risk_ceiling and state.outcome != DecisionOutcome.DENIED:
                with self._stats_lock:
                    self._stats["risk_ceiling_denials"] += 1
                logger.warning(
                    f"Risk ceiling: {context.user_id} {context.permission.value} "
                    f"risk={risk} > {self.cfg.risk_ceiling}, forcing denial"
                )
                state.outcome = DecisionOutcome.DENIED
                state.reason = f"risk score {risk} exceeds ceiling {self.cfg.risk_ceiling}"
            decision = self._build(context, state, risk, now)

        self._audit.record(context, decision, now)
        self._detector.observe(context, decision)
        self._track(decision, len(state.errors))

        logger.debug(
            f"Decision {context.user_id} {context.permission.value} {context.resource}: "
            f"{decision.outcome.value} risk={decision.risk_score} ({decision.reason})"
        )
        return decision

    def _apply_policies(
        self,
        policies: List[Policy],
        context: AccessContext,
        state: _Evaluation,
        now: datetime,
    ) -> None:
        for policy in policies:
            state.evaluated.append(policy.policy_id)

            passed, errors = self._conditions.evaluate_all(policy.conditions, context)
            state.errors.extend(errors)
            if not passed:
                continue

            outcome, requirements = self._apply_actions(policy, context, state, now)
            self._collect_compliance(policy, context, state)

            if outcome is None:
                continue

            state.policy_references.append(policy.policy_id)

            if outcome == DecisionOutcome.DENIED:
                state.outcome = outcome
                state.reason = f"denied by policy '{policy.policy_id}'"
                state.deciding_policy = policy.policy_id
                state.requirements = []
                return

            if state.outcome is None:
                state.outcome = outcome
                state.reason = f"{outcome.value} by policy '{policy.policy_id}'"
                state.deciding_policy = policy.policy_id
                state.requirements = requirements

            if policy.priority > self.cfg.critical_priority_threshold:
                logger.debug(f"Critical policy {policy.policy_id} (priority {policy.priority}) short-circuits")
                return

    def _apply_actions(
        self,
        policy: Policy,
        context: AccessContext,
        state: _Evaluation,
        now: datetime,
    ):
        """Apply one policy's actions in order; returns (outcome, requirements)."""
        permission = context.permission
        outcome: Optional[DecisionOutcome] = None
        requirements: List[PermissionRequirement] = []

        for action in policy.actions:
            if action.audit_level != AuditLevel.NONE:
                state.audit_required = True

            if action.action_type == ActionType.GRANT:
                if permission in action.permissions and outcome is None:
                    outcome = (
                        DecisionOutcome.DELEGATED if action.delegated_from else DecisionOutcome.GRANTED
                    )

            elif action.action_type == ActionType.DENY:
                if action.covers(permission):
                    exception = next(
                        (e for e in policy.exceptions if e.is_active(now) and e.covers(permission)),
                        None,
                    )
                    if exception is None:
                        return DecisionOutcome.DENIED, []
                    logger.warning(
                        f"Policy exception {exception.exception_type.value} waives deny of "
                        f"{permission.value} in {policy.policy_id} ({exception.reason})"
                    )
                    state.compliance_flags.append(f"exception:{exception.exception_type.value}")
                    state.audit_required = state.audit_required or exception.audit_required
                    outcome = DecisionOutcome.ESCALATED

            elif action.action_type in (ActionType.REQUIRE_APPROVAL, ActionType.ESCALATE):
                if action.covers(permission):
                    outcome = DecisionOutcome.CONDITIONAL
                    if action.action_type == ActionType.REQUIRE_APPROVAL:
                        requirement_type = RequirementType.APPROVAL
                        description = action.description or "approval required"
                    else:
                        requirement_type = RequirementType.ESCALATION
                        description = action.description or f"escalation to level {action.escalation_level}"
                    requirements.append(
                        PermissionRequirement(
                            requirement_type=requirement_type,
                            description=description,
                            timeout_minutes=self.cfg.conditional_grant_ttl_minutes,
                            policy_id=policy.policy_id,
                        )
                    )

            elif action.action_type == ActionType.AUDIT:
                state.audit_required = True

            elif action.action_type == ActionType.NOTIFY:
                for target in action.notification_targets:
                    if target not in state.notification_targets:
                        state.notification_targets.append(target)

        return outcome, requirements

    def _merge_role_permissions(
        self,
        context: AccessContext,
        effective: FrozenSet[Permission],
        state: _Evaluation,
    ) -> None:
        if state.outcome is not None:
            return

        if context.permission in effective:
            state.outcome = DecisionOutcome.INHERITED
            state.reason = f"inherited from role '{context.role.value}'"
            return

        for conditional in self._roles.conditional_permissions(context.role):
            if conditional.permission != context.permission:
                continue
            passed, errors = self._conditions.evaluate_all(conditional.conditions, context)
            state.errors.extend(errors)
            if passed:
                state.outcome = DecisionOutcome.INHERITED
                state.reason = f"conditionally inherited from role '{context.role.value}'"
                return

        state.outcome = DecisionOutcome.DENIED
        state.reason = "no policy or role grants the permission"

    def _check_field(self, context: AccessContext, state: _Evaluation) -> None:
        name = field_name(context.resource)
        access_type = _FIELD_ACCESS.get(context.permission, AccessType.READ)
        result = self._fields.can_access_field(context.role, name, access_type, context)

        rule = self._roles.field_rule(context.role, name)
        if rule is not None and rule.gdpr_protected:
            state.compliance_flags.append(f"GDPR:field:{name}")

        state.audit_required = state.audit_required or result.audit_required
        if not result.allowed:
            state.outcome = DecisionOutcome.DENIED
            state.reason = result.reason
        elif result.masked:
            state.masking_rule = result.masking_rule

    def _collect_compliance(self, policy: Policy, context: AccessContext, state: _Evaluation) -> None:
        for requirement in policy.metadata.compliance:
            flag = requirement.flag
            if flag not in state.compliance_flags:
                state.compliance_flags.append(flag)
            if requirement.mandatory and requirement.required_attribute:
                value = lookup(context.attributes, requirement.required_attribute)
                if value is MISSING or not value:
                    state.compliance_errors.append(
                        ComplianceError(
                            f"{flag} requires '{requirement.required_attribute}' (policy {policy.policy_id})",
                            flags=[flag],
                        )
                    )

    def _enforce_compliance(self, state: _Evaluation) -> None:
        if not state.compliance_errors or state.outcome == DecisionOutcome.DENIED:
            return
        for error in state.compliance_errors:
            logger.warning(f"Compliance block: {error.message}")
            state.compliance_flags.append(f"blocked:{error.flags[0]}")
        with self._stats_lock:
            self._stats["compliance_denials"] += 1
        state.outcome = DecisionOutcome.DENIED
        state.reason = state.compliance_errors[0].message
        state.audit_required = True

    # ------------------------------------------------------------------
    # Risk & Assembly
    # ------------------------------------------------------------------

    def _risk_score(self, context: AccessContext, error_count: int) -> int:
        relationship = context.resolved_relationship
        score = ROLE_BASE_RISK.get(context.role.value, 0)
        score += RELATIONSHIP_RISK.get(relationship.value, 0)
        if context.permission.value in SENSITIVE_PERMISSIONS:
            score += self.cfg.sensitive_permission_risk
        score += self._detector.contextual_risk(context)
        score += error_count * self.cfg.evaluation_error_risk
        return clamp_risk(score)

    def _build(
        self,
        context: AccessContext,
        state: _Evaluation,
        risk: int,
        now: datetime,
    ) -> AccessDecision:
        permission = context.permission
        outcome = state.outcome or DecisionOutcome.DENIED

        conditional_grants = ()
        requirements = ()
        if outcome == DecisionOutcome.CONDITIONAL:
            requirements = tuple(state.requirements)
            conditional_grants = (
                ConditionalGrant(
                    permission=permission,
                    valid_until=now + timedelta(minutes=self.cfg.conditional_grant_ttl_minutes),
                    requires_revalidation=True,
                    monitoring_required=state.audit_required,
                    policy_id=state.deciding_policy,
                ),
            )

        return AccessDecision(
            outcome=outcome,
            permission=permission,
            reason=state.reason or "denied",
            granted_permissions=frozenset({permission}) if outcome.allowed else frozenset(),
            denied_permissions=frozenset({permission}) if outcome == DecisionOutcome.DENIED else frozenset(),
            conditional_grants=conditional_grants,
            requirements=requirements,
            audit_required=state.audit_required,
            risk_score=risk,
            policy_references=tuple(state.policy_references),
            evaluated_policies=tuple(state.evaluated),
            compliance_flags=tuple(state.compliance_flags),
            evaluation_errors=tuple(str(e) for e in state.errors),
            notification_targets=tuple(state.notification_targets),
            masking_rule=state.masking_rule if outcome.allowed else None,
            decided_at=now,
        )

    def _track(self, decision: AccessDecision, error_count: int) -> None:
        with self._stats_lock:
            self._stats["total_evaluations"] += 1
            self._stats["by_outcome"][decision.outcome.value] += 1
            self._stats["evaluation_errors"] += error_count
            self._decision_history.append(decision)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_statistics(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = copy.deepcopy(self._stats)
        total = stats["total_evaluations"]
        allowed = sum(stats["by_outcome"][o.value] for o in DecisionOutcome if o.allowed)
        return {
            "total_evaluations": total,
            "by_outcome": stats["by_outcome"],
            "allow_rate": allowed / total if total > 0 else 0.0,
            "evaluation_errors": stats["evaluation_errors"],
            "risk_ceiling_denials": stats["risk_ceiling_denials"],
            "compliance_denials": stats["compliance_denials"],
            "policies": len(self._policies),
        }

    def get_recent_decisions(self, limit: int = 50) -> List[AccessDecision]:
        with self._stats_lock:
            return list(self._decision_history)[-limit:]


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "EngineConfig",
    "DecisionEngine",
]
