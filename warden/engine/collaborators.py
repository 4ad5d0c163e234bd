"""
WARDEN v1.0 - Host Collaborators
================================

Interfaces the engine consumes from the host application, plus the small
in-process implementations used by default and in tests.

    Clock            -> current time (inject ManualClock for determinism)
    IdentityProvider -> requester/owner relationship and user role lookup
    AuditSink        -> durable append-only store behind the AuditLog buffer

Author: WARDEN Development Team
Version: 1.0.0
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Protocol, Sequence

from .models import AuditEntry, Relationship, UserRole

logger = logging.getLogger("WARDEN_AuditSink")


# ============================================================
# Clock
# ============================================================


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, **kwargs) -> datetime:
        """Advance by timedelta keyword arguments (minutes=5, hours=1, ...)."""
        with self._lock:
            self._now = self._now + timedelta(**kwargs)
            return self._now

    def set(self, moment: datetime) -> None:
        with self._lock:
            self._now = moment


# ============================================================
# Identity
# ============================================================


class IdentityProvider(Protocol):
    def relationship(self, user_id: str, profile_owner_id: str) -> Relationship:
        ...

    def role_of(self, user_id: str) -> UserRole:
        ...


# ============================================================
# Audit Sinks
# ============================================================


class AuditSink(Protocol):
    def write(self, entries: Sequence[AuditEntry]) -> None:
        """Persist a batch. Raise AuditSinkError to leave it pending."""
        ...


class InMemoryAuditSink:
    """Keeps acknowledged entries in a list."""

    def __init__(self):
        self.entries: List[AuditEntry] = []
        self._lock = threading.Lock()

    def write(self, entries: Sequence[AuditEntry]) -> None:
        with self._lock:
            self.entries.extend(entries)


class LoggingAuditSink:
    """Writes each entry as a structured AUDIT log record."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._logger = log or logger

    def write(self, entries: Sequence[AuditEntry]) -> None:
        for entry in entries:
            self._logger.info(
                "AUDIT",
                extra={
                    "audit_event": entry.to_dict(),
                    "event_hash": entry.integrity_hash,
                },
            )


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "Clock",
    "SystemClock",
    "ManualClock",
    "IdentityProvider",
    "AuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
]
