"""
Tests for Audit Log
===================

Tests sequencing, hash chaining, sink buffering and export.
"""

import json
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import FrozenInstanceError, replace
from datetime import datetime, timedelta, timezone

import pytest

from warden.engine.audit_log import AuditLog, entries_to_records
from warden.engine.collaborators import InMemoryAuditSink
from warden.engine.decision_engine import DecisionEngine
from warden.engine.exceptions import AuditEntryNotFoundError, AuditSinkError
from warden.engine.models import AccessDecision, DecisionOutcome, Permission

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FlakySink:
    """Sink that rejects batches until told otherwise."""

    def __init__(self):
        self.failing = True
        self.entries = []

    def write(self, entries):
        if self.failing:
            raise AuditSinkError("sink offline")
        self.entries.extend(entries)


class RecordingSink:
    """Sink that keeps the sequence numbers of every batch it receives."""

    def __init__(self):
        self.batches = []
        self.calls = 0

    def write(self, entries):
        self.calls += 1
        self.batches.append([e.sequence for e in entries])


def decision(outcome=DecisionOutcome.GRANTED, permission=Permission.READ):
    return AccessDecision(outcome=outcome, permission=permission, reason="test", decided_at=T0)


@pytest.fixture
def log():
    return AuditLog()


@pytest.fixture
def populated(log, make_context):
    """Three entries one minute apart from two users."""
    log.record(make_context(user_id="alice"), decision(), T0)
    log.record(
        make_context(user_id="bob", permission=Permission.EDIT),
        decision(DecisionOutcome.DENIED, Permission.EDIT),
        T0 + timedelta(minutes=1),
    )
    log.record(make_context(user_id="alice"), decision(), T0 + timedelta(minutes=2))
    return log


class TestAppend:
    """Tests for sequencing and immutability."""

    def test_sequences_strictly_increase(self, populated):
        assert [populated.get(i).sequence for i in (1, 2, 3)] == [1, 2, 3]
        assert len(populated) == 3

    def test_caller_sequence_ignored(self, log, make_context):
        first = log.record(make_context(), decision(), T0)
        forged = replace(first, sequence=99, integrity_hash="forged")
        assert log.append(forged) == 2
        assert log.get(2).integrity_hash != "forged"

    def test_entries_are_frozen(self, populated):
        with pytest.raises(FrozenInstanceError):
            populated.get(1).sequence = 7

    def test_context_snapshot_detached(self, log, make_context):
        """Mutating the caller's attributes afterwards does not alter the entry."""
        attributes = {"tier": "gold"}
        log.record(make_context(attributes=attributes), decision(), T0)
        attributes["tier"] = "lead"
        assert log.get(1).context.attributes["tier"] == "gold"

    def test_unknown_sequence(self, populated):
        with pytest.raises(AuditEntryNotFoundError):
            populated.get(42)
        with pytest.raises(AuditEntryNotFoundError):
            populated.get(0)


class TestQuery:
    """Tests for query filters."""

    def test_newest_first(self, populated):
        assert [e.sequence for e in populated.query()] == [3, 2, 1]

    def test_user_filter(self, populated):
        assert [e.sequence for e in populated.query(user_id="alice")] == [3, 1]

    def test_unknown_user_returns_empty(self, populated):
        assert populated.query(user_id="nobody") == []

    def test_time_window(self, populated):
        results = populated.query(start_time=T0 + timedelta(seconds=30), end_time=T0 + timedelta(minutes=1))
        assert [e.sequence for e in results] == [2]

    def test_permission_and_outcome(self, populated):
        assert len(populated.query(permission=Permission.EDIT)) == 1
        assert len(populated.query(outcome=DecisionOutcome.GRANTED)) == 2

    def test_limit(self, populated):
        assert [e.sequence for e in populated.query(limit=2)] == [3, 2]


class TestSink:
    """Tests for buffered flushing to the durable sink."""

    def test_append_never_writes_to_sink(self, make_context):
        sink = InMemoryAuditSink()
        log = AuditLog(sink=sink, buffer_size=1)

        log.record(make_context(), decision(), T0)
        log.record(make_context(), decision(), T0)

        assert sink.entries == []
        assert log.pending_count == 2
        assert log.flush_due

    def test_flush_writes_in_batches(self, make_context):
        sink = RecordingSink()
        log = AuditLog(sink=sink, buffer_size=2)
        for _ in range(5):
            log.record(make_context(), decision(), T0)

        assert log.flush() == 5
        assert sink.batches == [[1, 2], [3, 4], [5]]
        assert log.pending_count == 0
        assert not log.flush_due

    def test_flush_due_needs_sink(self, populated):
        assert not populated.flush_due

    def test_failed_flush_keeps_entries_pending(self, make_context):
        sink = FlakySink()
        log = AuditLog(sink=sink, buffer_size=10)
        log.record(make_context(), decision(), T0)
        log.record(make_context(), decision(), T0)

        assert log.flush() == 0
        assert log.pending_count == 2

        sink.failing = False
        assert log.flush() == 2
        assert log.pending_count == 0
        assert [e.sequence for e in sink.entries] == [1, 2]

    def test_flush_without_sink(self, populated):
        assert populated.flush() == 0
        assert populated.pending_count == 3


class TestIntegrity:
    """Tests for hash chain verification and export."""

    def test_chain_verifies(self, populated):
        assert populated.verify_integrity()

    def test_entries_linked(self, populated):
        assert populated.get(2).previous_hash == populated.get(1).integrity_hash

    def test_tampering_detected(self, populated):
        populated._entries[1] = replace(populated._entries[1], policy_ids=("injected",))
        assert not populated.verify_integrity()

    def test_json_export(self, populated):
        exported = json.loads(populated.export(exported_at=T0))
        assert exported["event_count"] == 3
        assert exported["export_timestamp"] == T0.isoformat()
        assert len(exported["integrity_hash"]) == 64

    def test_unsupported_export_format(self, populated):
        with pytest.raises(ValueError):
            populated.export(format="xml")

    def test_records_flattened(self, populated):
        records = entries_to_records(populated.query())
        assert records[0]["user_id"] == "alice"
        assert records[1]["outcome"] == "denied"
        assert records[1]["allowed"] is False


class TestConcurrency:
    """Tests for ordering under concurrent writers."""

    THREADS = 8
    PER_THREAD = 50

    def test_concurrent_appends_gap_free(self, log, make_context):
        def worker(n):
            for _ in range(self.PER_THREAD):
                log.record(make_context(user_id=f"user-{n}"), decision(), T0)

        with ThreadPoolExecutor(max_workers=self.THREADS) as pool:
            list(pool.map(worker, range(self.THREADS)))

        total = self.THREADS * self.PER_THREAD
        assert [e.sequence for e in reversed(log.query())] == list(range(1, total + 1))
        assert log.verify_integrity()

    def test_concurrent_evaluations_gap_free(self, engine, make_context):
        contexts = [make_context(user_id=f"user-{i}") for i in range(200)]

        with ThreadPoolExecutor(max_workers=self.THREADS) as pool:
            list(pool.map(engine.evaluate, contexts))

        entries = list(reversed(engine.audit_log.query()))
        assert [e.sequence for e in entries] == list(range(1, 201))
        assert {e.user_id for e in entries} == {c.user_id for c in contexts}
        assert engine.audit_log.verify_integrity()

    def test_flush_while_appending(self, make_context):
        """Every entry reaches the sink exactly once and in order."""
        sink = RecordingSink()
        log = AuditLog(sink=sink, buffer_size=7)
        done = threading.Event()

        def flusher():
            while not done.is_set():
                log.flush()

        def writer(n):
            for _ in range(self.PER_THREAD):
                log.record(make_context(user_id=f"user-{n}"), decision(), T0)

        flush_thread = threading.Thread(target=flusher)
        flush_thread.start()
        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(writer, range(4)))
        done.set()
        flush_thread.join()
        log.flush()

        written = [seq for batch in sink.batches for seq in batch]
        assert written == list(range(1, 4 * self.PER_THREAD + 1))
        assert all(len(batch) <= 7 for batch in sink.batches)
        assert log.pending_count == 0

    def test_evaluate_does_not_write_to_sink(self, registry, store, clock, make_context):
        sink = RecordingSink()
        engine = DecisionEngine(
            roles=registry,
            policies=store,
            audit_log=AuditLog(sink=sink, buffer_size=1),
            clock=clock,
        )

        engine.evaluate(make_context())
        engine.evaluate(make_context())

        assert sink.calls == 0
        assert engine.audit_log.pending_count == 2
        assert engine.audit_log.flush() == 2
