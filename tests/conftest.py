"""
WARDEN Test Configuration
=========================

Pytest fixtures and configuration for WARDEN tests.
"""

import pytest
from datetime import datetime, timezone

from warden.access.default_roles import default_policies, default_roles
from warden.access.service import AccessControlService
from warden.core.config_manager import AuditConfig, WardenConfig
from warden.engine.audit_log import AuditLog
from warden.engine.collaborators import InMemoryAuditSink, ManualClock
from warden.engine.decision_engine import DecisionEngine
from warden.engine.models import AccessContext, Permission, Relationship, UserRole
from warden.engine.policy_store import PolicyStore
from warden.engine.role_registry import RoleRegistry


class StaticIdentity:
    """Identity provider backed by fixed tables."""

    def __init__(self, relationships=None, roles=None):
        self.relationships = relationships or {}
        self.roles = roles or {}

    def relationship(self, user_id, profile_owner_id):
        return self.relationships.get((user_id, profile_owner_id), Relationship.STRANGER)

    def role_of(self, user_id):
        return self.roles[user_id]


@pytest.fixture
def clock():
    """Manual clock at 2024-01-01 12:00 UTC (a Monday)."""
    return ManualClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def registry():
    """Role registry with the default six-role catalog."""
    roles = RoleRegistry()
    for role, definition in default_roles().items():
        roles.register(role, definition)
    return roles


@pytest.fixture
def store():
    """Empty policy store."""
    return PolicyStore()


@pytest.fixture
def sink():
    return InMemoryAuditSink()


@pytest.fixture
def engine(registry, store, clock, sink):
    """Decision engine over the default roles and an empty store."""
    return DecisionEngine(
        roles=registry,
        policies=store,
        audit_log=AuditLog(sink=sink),
        clock=clock,
    )


@pytest.fixture
def identity():
    return StaticIdentity(
        relationships={
            ("alice", "bob"): Relationship.FRIEND,
            ("carol", "bob"): Relationship.CONNECTION,
        },
        roles={
            "alice": UserRole.USER,
            "bob": UserRole.USER,
            "carol": UserRole.PREMIUM,
            "mod": UserRole.MODERATOR,
            "root": UserRole.ADMIN,
        },
    )


@pytest.fixture
def service(clock, identity, sink):
    """Service with default roles and baseline policies."""
    config = WardenConfig(audit=AuditConfig(sink="memory"))
    return AccessControlService(config=config, identity=identity, clock=clock, audit_sink=sink)


@pytest.fixture
def make_context():
    """Factory for access contexts with sensible defaults."""
    def _make(
        user_id="alice",
        role=UserRole.USER,
        permission=Permission.READ,
        resource="profile:bob",
        profile_owner_id="bob",
        **kwargs,
    ):
        return AccessContext(
            user_id=user_id,
            role=role,
            permission=permission,
            resource=resource,
            profile_owner_id=profile_owner_id,
            **kwargs,
        )
    return _make


@pytest.fixture
def policy_defaults():
    """The baseline policy list."""
    return default_policies()
