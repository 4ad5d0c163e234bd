"""
WARDEN v1.0 - Audit Log
=======================

Append-only, ordered record of every access decision.

Each entry receives the next value of a single process-wide sequence and
is chained to its predecessor by SHA256 hash. The in-process log is the
write-ahead buffer in front of the durable AuditSink: entries stay pending
until the sink acknowledges a flush, and a failed flush leaves them
pending for the next attempt. Appending never touches the sink; the host
drains it with `flush`, usually from an AuditFlushWorker tick.

Author: WARDEN Development Team
Version: 1.0.0
"""

import hashlib
import itertools
import json
import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .collaborators import AuditSink
from .constants import AUDIT_BUFFER_SIZE, GENESIS_HASH
from .exceptions import AuditEntryNotFoundError, AuditSinkError
from .models import AccessContext, AccessDecision, AuditEntry, DecisionOutcome, Permission

logger = logging.getLogger("WARDEN_AuditLog")


class AuditLog:
    """
    Central audit buffer.

    All decisions flow through this class.
    """

    def __init__(
        self,
        sink: Optional[AuditSink] = None,
        buffer_size: int = AUDIT_BUFFER_SIZE,
        hash_chain: bool = True,
    ):
        self._sink = sink
        self._buffer_size = buffer_size
        self._hash_chain = hash_chain

        self._entries: List[AuditEntry] = []
        self._counter = itertools.count(1)
        self._last_hash = GENESIS_HASH
        self._acknowledged = 0

        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record(
        self,
        context: AccessContext,
        decision: AccessDecision,
        timestamp: datetime,
    ) -> AuditEntry:
        """Build and append the entry for one decision."""
        entry = AuditEntry(
            sequence=0,
            timestamp=timestamp,
            context=context,
            decision=decision,
            policy_ids=decision.evaluated_policies,
        )
        sequence = self.append(entry)
        return self.get(sequence)

    def append(self, entry: AuditEntry) -> int:
        """
        Append an entry and return its sequence number.

        The entry's sequence and hashes are assigned here; values supplied
        by the caller for those fields are ignored.
        """
        with self._lock:
            sequence = next(self._counter)
            stored = replace(
                entry,
                sequence=sequence,
                context=entry.context.snapshot(),
                previous_hash=self._last_hash if self._hash_chain else "",
                integrity_hash="",
            )
            stored = replace(stored, integrity_hash=stored.compute_hash())
            self._entries.append(stored)
            self._last_hash = stored.integrity_hash

        logger.debug(
            f"Audit #{sequence}: {stored.user_id} {stored.permission.value} "
            f"{stored.context.resource} -> {stored.outcome.value}"
        )

        return sequence

    def flush(self) -> int:
        """
        Drain pending entries to the sink, at most `buffer_size` per write.

        Runs on the caller's thread. A rejected batch stays pending together
        with everything after it.

        Returns:
            Number of entries acknowledged by the sink
        """
        if self._sink is None:
            return 0

        acknowledged = 0
        with self._flush_lock:
            while True:
                with self._lock:
                    start = self._acknowledged
                    batch = self._entries[start:start + self._buffer_size]
                if not batch:
                    break

                try:
                    self._sink.write(batch)
                except (AuditSinkError, OSError) as e:
                    logger.warning(f"Audit sink rejected {len(batch)} entries, keeping them pending: {e}")
                    break

                with self._lock:
                    self._acknowledged += len(batch)
                    through = self._acknowledged
                acknowledged += len(batch)

        if acknowledged:
            logger.info(f"Audit flush: {acknowledged} entries acknowledged (through #{through})")
        return acknowledged

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, sequence: int) -> AuditEntry:
        with self._lock:
            if 1 <= sequence <= len(self._entries):
                return self._entries[sequence - 1]
        raise AuditEntryNotFoundError(f"Audit entry not found: {sequence}", identifier=str(sequence))

    def query(
        self,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        user_id: Optional[str] = None,
        permission: Optional[Permission] = None,
        outcome: Optional[DecisionOutcome] = None,
        limit: Optional[int] = None,
    ) -> List[AuditEntry]:
        """Filter entries, newest first."""
        with self._lock:
            entries = list(self._entries)

        results = []
        for entry in reversed(entries):
            if start_time and entry.timestamp < start_time:
                continue
            if end_time and entry.timestamp > end_time:
                continue
            if user_id and entry.user_id != user_id:
                continue
            if permission and entry.permission != permission:
                continue
            if outcome and entry.outcome != outcome:
                continue
            results.append(entry)
            if limit and len(results) >= limit:
                break
        return results

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._entries) - self._acknowledged

    @property
    def flush_due(self) -> bool:
        """True once a full batch is waiting for the sink."""
        return self._sink is not None and self.pending_count >= self._buffer_size

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Integrity & Export
    # ------------------------------------------------------------------

    def verify_integrity(self) -> bool:
        """Recompute every entry hash and check the chain links."""
        with self._lock:
            entries = list(self._entries)

        previous = GENESIS_HASH
        for entry in entries:
            if entry.integrity_hash != entry.compute_hash():
                logger.warning(f"Audit entry #{entry.sequence} hash mismatch")
                return False
            if self._hash_chain and entry.previous_hash != previous:
                logger.warning(f"Audit chain broken at #{entry.sequence}")
                return False
            previous = entry.integrity_hash
        return True

    def export(
        self,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        format: str = "json",
        include_hash: bool = True,
        exported_at: Optional[datetime] = None,
    ) -> str:
        """Export entries for compliance."""
        entries = self.query(start_time=start_time, end_time=end_time)

        if format == "json":
            export_data: Dict[str, Any] = {
                "export_timestamp": exported_at.isoformat() if exported_at else None,
                "period_start": start_time.isoformat() if start_time else None,
                "period_end": end_time.isoformat() if end_time else None,
                "event_count": len(entries),
                "events": [e.to_dict() for e in entries],
            }
            if include_hash:
                content = json.dumps(export_data, sort_keys=True, default=str)
                export_data["integrity_hash"] = hashlib.sha256(content.encode()).hexdigest()

            return json.dumps(export_data, indent=2, default=str)

        raise ValueError(f"Unsupported format: {format}")


def entries_to_records(entries: Iterable[AuditEntry]) -> List[Dict[str, Any]]:
    """Flatten entries into one row per decision."""
    return [
        {
            "sequence": e.sequence,
            "timestamp": e.timestamp,
            "user_id": e.user_id,
            "role": e.context.role.value,
            "permission": e.permission.value,
            "resource": e.context.resource,
            "outcome": e.outcome.value,
            "allowed": e.decision.allowed,
            "risk_score": e.risk_score,
            "policies": ",".join(e.policy_ids),
            "compliance_flags": ",".join(e.decision.compliance_flags),
            "integrity_hash": e.integrity_hash,
        }
        for e in entries
    ]


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "AuditLog",
    "entries_to_records",
]
