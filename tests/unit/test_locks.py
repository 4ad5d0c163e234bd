"""
Tests for Lock Primitives
=========================

Tests reader concurrency, writer preference and re-entrancy of the
reader-writer lock shared by the role registry and policy store.
"""

import threading
import time

import pytest

from warden.engine.locks import KeyedReadWriteLocks, ReadWriteLock
from warden.engine.models import Permission, Policy, PolicyAction
from warden.engine.policy_store import PolicyStore

TIMEOUT = 2.0


def wait_until(predicate, timeout=TIMEOUT):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


def start(target):
    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    return thread


@pytest.fixture
def lock():
    return ReadWriteLock()


class TestReaders:
    """Tests for concurrent readers."""

    def test_readers_share_the_lock(self, lock):
        barrier = threading.Barrier(3, timeout=TIMEOUT)

        def reader():
            with lock.read_lock():
                barrier.wait()

        threads = [start(reader) for _ in range(3)]
        for t in threads:
            t.join(TIMEOUT)

        assert not barrier.broken
        assert all(not t.is_alive() for t in threads)

    def test_nested_read_while_writer_waits(self, lock):
        """A reader already inside keeps going while an upsert waits."""
        acquired = threading.Event()
        release = threading.Event()
        nested = threading.Event()

        def reader():
            with lock.read_lock():
                acquired.set()
                release.wait(TIMEOUT)
                with lock.read_lock():
                    nested.set()

        def writer():
            with lock.write_lock():
                pass

        reader_thread = start(reader)
        assert acquired.wait(TIMEOUT)
        writer_thread = start(writer)
        assert wait_until(lambda: lock._writers_waiting == 1)

        release.set()
        assert nested.wait(TIMEOUT)
        reader_thread.join(TIMEOUT)
        writer_thread.join(TIMEOUT)
        assert not writer_thread.is_alive()


class TestWriters:
    """Tests for exclusive writers."""

    def test_writer_waits_for_readers(self, lock):
        release = threading.Event()
        acquired = threading.Event()
        written = threading.Event()

        def reader():
            with lock.read_lock():
                acquired.set()
                release.wait(TIMEOUT)

        def writer():
            with lock.write_lock():
                written.set()

        start(reader)
        assert acquired.wait(TIMEOUT)
        start(writer)

        assert not written.wait(0.1)
        release.set()
        assert written.wait(TIMEOUT)

    def test_waiting_writer_blocks_new_readers(self, lock):
        order = []
        release = threading.Event()
        acquired = threading.Event()

        def first_reader():
            with lock.read_lock():
                acquired.set()
                release.wait(TIMEOUT)

        def writer():
            with lock.write_lock():
                order.append("writer")

        def late_reader():
            with lock.read_lock():
                order.append("reader")

        start(first_reader)
        assert acquired.wait(TIMEOUT)
        writer_thread = start(writer)
        assert wait_until(lambda: lock._writers_waiting == 1)
        reader_thread = start(late_reader)

        assert not wait_until(lambda: order, timeout=0.1)
        release.set()
        writer_thread.join(TIMEOUT)
        reader_thread.join(TIMEOUT)

        assert order == ["writer", "reader"]

    def test_write_lock_reentrant(self, lock):
        with lock.write_lock():
            with lock.write_lock():
                with lock.read_lock():
                    pass
        with lock.read_lock():
            pass


class TestKeyedLocks:
    """Tests for per-key locks."""

    def test_same_key_same_lock(self):
        locks = KeyedReadWriteLocks()
        assert locks.get("alice") is locks.get("alice")
        assert locks.get("alice") is not locks.get("bob")
        assert len(locks) == 2

    def test_keys_are_independent(self):
        locks = KeyedReadWriteLocks()
        read = threading.Event()

        def reader():
            with locks.read_lock("bob"):
                read.set()

        with locks.write_lock("alice"):
            start(reader)
            assert read.wait(TIMEOUT)


class TestSharedStoreLock:
    """Tests for readers and an upsert sharing a store lock."""

    def test_upsert_waits_for_reader_snapshot(self):
        lock = ReadWriteLock()
        store = PolicyStore(lock)
        upserted = threading.Event()

        def upsert():
            store.upsert(
                Policy(policy_id="late", name="Late", actions=(PolicyAction.grant(Permission.READ),))
            )
            upserted.set()

        with lock.read_lock():
            start(upsert)
            assert not upserted.wait(0.1)
            assert store.list_policies() == []

        assert upserted.wait(TIMEOUT)
        assert [p.policy_id for p in store.list_policies()] == ["late"]
