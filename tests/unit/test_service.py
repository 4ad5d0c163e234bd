"""
Tests for Access Control Service
================================

Tests the facade over default roles and baseline policies.
"""

import pytest

from warden.access.service import AccessControlService
from warden.core.config_manager import AuditConfig, WardenConfig
from warden.core.encryption import FieldEncryptor
from warden.engine.exceptions import (
    PermissionDeniedError,
    PolicyNotFoundError,
    PolicyValidationError,
    RoleValidationError,
)
from warden.engine.models import (
    AccessContext,
    ActionType,
    Condition,
    ConditionKind,
    DataMaskingRule,
    DecisionOutcome,
    FieldAccessResult,
    MaskType,
    Permission,
    Policy,
    PolicyAction,
    Relationship,
    UserRole,
)


def request(user_id, role, permission, resource="profile:bob", owner="bob", **kwargs):
    return AccessContext(
        user_id=user_id,
        role=role,
        permission=permission,
        resource=resource,
        profile_owner_id=owner,
        **kwargs,
    )


class TestBaselineDecisions:
    """Decisions produced by the default catalog."""

    def test_guest_can_read_profiles(self, service):
        decision = service.evaluate(request("visitor", UserRole.GUEST, Permission.READ))
        assert decision.outcome == DecisionOutcome.GRANTED
        assert decision.reason == "granted by policy 'baseline-public-read'"

    def test_guest_cannot_edit(self, service):
        decision = service.evaluate(request("visitor", UserRole.GUEST, Permission.EDIT))
        assert decision.outcome == DecisionOutcome.DENIED
        assert decision.reason == "denied by policy 'baseline-guest-readonly'"

    def test_owner_edits_own_profile(self, service):
        decision = service.evaluate(request("bob", UserRole.USER, Permission.EDIT))
        assert decision.outcome == DecisionOutcome.GRANTED

    def test_friend_cannot_edit(self, service):
        decision = service.evaluate(request("alice", UserRole.USER, Permission.EDIT))
        assert decision.outcome == DecisionOutcome.DENIED
        assert decision.reason == "no policy or role grants the permission"

    def test_moderator_edit_is_audited(self, service):
        decision = service.evaluate(request("mod", UserRole.MODERATOR, Permission.EDIT))
        assert decision.outcome == DecisionOutcome.GRANTED
        assert decision.audit_required

    def test_admin_delete_inherited_and_flagged(self, service):
        decision = service.evaluate(request("root", UserRole.ADMIN, Permission.DELETE))
        assert decision.outcome == DecisionOutcome.INHERITED
        assert decision.audit_required
        assert "SOX:Access logging" in decision.compliance_flags

    def test_premium_export_needs_friendship(self, service):
        connection = service.evaluate(request("carol", UserRole.PREMIUM, Permission.EXPORT))
        friend = service.evaluate(
            request("carol", UserRole.PREMIUM, Permission.EXPORT, relationship=Relationship.FRIEND)
        )
        assert connection.outcome == DecisionOutcome.DENIED
        assert friend.outcome == DecisionOutcome.INHERITED

    def test_relationship_resolved_through_identity(self, service):
        service.evaluate(request("alice", UserRole.USER, Permission.READ))
        entry = service.query_audit_log(user_id="alice")[0]
        assert entry.context.relationship == Relationship.FRIEND

    def test_field_read_masked_for_friend(self, service):
        decision = service.evaluate(request("alice", UserRole.USER, Permission.READ, resource="field:phone"))
        assert decision.allowed
        assert decision.masking_rule.mask_type == MaskType.PARTIAL

    def test_guest_field_without_rule(self, service):
        decision = service.evaluate(request("visitor", UserRole.GUEST, Permission.READ, resource="field:email"))
        assert decision.outcome == DecisionOutcome.DENIED


class TestHasPermission:
    """Tests for the boolean check."""

    def test_role_given(self, service):
        assert service.has_permission("alice", UserRole.USER, Permission.READ, "profile:bob", "bob")
        assert not service.has_permission("alice", UserRole.USER, Permission.DELETE, "profile:bob", "bob")

    def test_role_from_identity(self, service):
        assert service.has_permission("root", None, Permission.DELETE, "profile:bob", "bob")

    def test_no_identity_denies(self, clock):
        service = AccessControlService(WardenConfig(audit=AuditConfig(sink="none")), clock=clock)
        assert not service.has_permission("alice", None, Permission.READ, "profile:bob", "bob")

    def test_invalid_permission_denies(self, service):
        assert not service.has_permission("alice", UserRole.USER, "impersonate", "profile:bob", "bob")

    def test_custom_condition(self, service):
        service.register_custom_condition("verified", lambda condition, ctx: ctx.attributes.get("verified"))
        service.upsert_policy(
            Policy(
                policy_id="verified-export",
                name="Verified members export",
                priority=6,
                conditions=(Condition(ConditionKind.CUSTOM, field="verified"),),
                actions=(PolicyAction.grant(Permission.EXPORT),),
            )
        )

        assert service.has_permission("alice", UserRole.USER, Permission.EXPORT, "profile:bob", "bob", verified=True)
        assert not service.has_permission("alice", UserRole.USER, Permission.EXPORT, "profile:bob", "bob")


class TestRelationshipsAndRoles:
    """Tests for relationship resolution and role queries."""

    def test_resolve_relationship(self, service):
        assert service.resolve_relationship("bob", "bob") == Relationship.SELF
        assert service.resolve_relationship("alice", "bob") == Relationship.FRIEND
        assert service.resolve_relationship("carol", "bob") == Relationship.CONNECTION
        assert service.resolve_relationship("alice", None) == Relationship.STRANGER

    def test_effective_permissions_ordered(self, service):
        assert service.effective_permissions("root") == [
            Permission.READ,
            Permission.DELETE,
            Permission.ADMIN,
            Permission.MODERATE,
            Permission.EXPORT,
            Permission.AUDIT,
        ]
        assert service.effective_permissions("anyone", UserRole.GUEST) == [Permission.READ]

    def test_unregister_role_in_use(self, service):
        with pytest.raises(RoleValidationError):
            service.unregister_role(UserRole.ADMIN)


class TestFields:
    """Tests for field access and rendering."""

    def test_render_masked(self, service):
        ctx = request("alice", UserRole.USER, Permission.READ, relationship=Relationship.FRIEND)
        result = service.can_access_field(UserRole.USER, "phone", context=ctx)
        assert service.render_field("555-0100", result) == "******00"

    def test_render_unmasked(self, service):
        result = service.can_access_field(UserRole.GUEST, "bio")
        assert service.render_field("Hello", result) == "Hello"

    def test_render_denied(self, service):
        result = service.can_access_field(UserRole.GUEST, "email")
        with pytest.raises(PermissionDeniedError):
            service.render_field("a@example.com", result)

    def test_render_encrypted_uses_injected_encryptor(self, clock):
        class Upper:
            def encrypt_text(self, plaintext):
                return plaintext.upper()

        service = AccessControlService(clock=clock, encryptor=Upper(), audit_sink=None,
                                       config=WardenConfig(audit=AuditConfig(sink="none")))
        result = FieldAccessResult(allowed=True, masked=True, masking_rule=DataMaskingRule(MaskType.ENCRYPT))
        assert service.render_field("abc", result) == "ABC"

    def test_render_encrypted_empty_value(self, clock):
        service = AccessControlService(
            WardenConfig(audit=AuditConfig(sink="none")),
            clock=clock,
            encryptor=FieldEncryptor(master_key="test-master-key", iterations=1000),
        )
        result = FieldAccessResult(allowed=True, masked=True, masking_rule=DataMaskingRule(MaskType.ENCRYPT))
        assert service.render_field("", result) == ""
        assert service.render_field(None, result) == ""


class TestAdministration:
    """Tests for policy administration."""

    def test_baseline_loaded(self, service):
        ids = [p.policy_id for p in service.list_policies()]
        assert ids[0] == "baseline-guest-readonly"
        assert ids[-1] == "baseline-public-read"

    def test_defaults_can_be_skipped(self, clock):
        service = AccessControlService(
            WardenConfig(load_default_roles=False, audit=AuditConfig(sink="none")), clock=clock
        )
        assert service.list_policies() == []
        assert service.roles.list_roles() == []

    def test_upsert_and_remove(self, service):
        stored = service.upsert_policy(
            Policy(policy_id="extra", name="Extra", priority=2, actions=(PolicyAction.audit(),))
        )
        assert stored.actions[0].action_type == ActionType.AUDIT
        assert service.get_policy("extra").version == 1

        service.remove_policy("extra")
        with pytest.raises(PolicyNotFoundError):
            service.get_policy("extra")

    def test_invalid_policy_rejected(self, service):
        with pytest.raises(PolicyValidationError):
            service.upsert_policy(Policy(policy_id="bad", name="Bad", actions=()))

    def test_remove_unknown(self, service):
        with pytest.raises(PolicyNotFoundError):
            service.remove_policy("missing")


class TestAuditAndStatistics:
    """Tests for audit access, anomalies and statistics."""

    def test_engine_and_service_share_audit_log(self, service, sink):
        assert service.engine.audit_log is service.audit_log

        service.has_permission("alice", UserRole.USER, Permission.READ, "profile:bob", "bob")

        assert len(service.audit_log) == 1
        assert sink.entries == []
        assert service.flush_audit() == 1
        assert [e.user_id for e in sink.entries] == ["alice"]
        assert service.get_statistics()["audit_pending"] == 0

    def test_audit_flow(self, service, sink):
        service.has_permission("alice", UserRole.USER, Permission.READ, "profile:bob", "bob")
        service.has_permission("visitor", UserRole.GUEST, Permission.EDIT, "profile:bob", "bob")

        assert len(service.query_audit_log()) == 2
        assert service.query_audit_log(outcome="denied")[0].user_id == "visitor"
        assert service.query_audit_log(user_id="nobody") == []
        assert service.get_audit_entry(1).user_id == "alice"
        assert service.verify_audit_integrity()

        assert service.flush_audit() == 2
        assert len(sink.entries) == 2

    def test_no_anomalies_without_baseline(self, service):
        service.has_permission("alice", UserRole.USER, Permission.READ, "profile:bob", "bob")
        assert service.detect_anomalies() == []
        assert service.detect_anomalies("alice") == []
        assert service.detect_all_anomalies() == {}

    def test_statistics(self, service):
        service.has_permission("alice", UserRole.USER, Permission.READ, "profile:bob", "bob")
        stats = service.get_statistics()

        assert set(stats) == {"engine", "roles", "anomalies", "audit_entries", "audit_pending"}
        assert stats["engine"]["total_evaluations"] == 1
        assert stats["engine"]["policies"] == 5
        assert stats["audit_entries"] == 1
        assert stats["audit_pending"] == 1
