"""
Tests for Anomaly Detector
==========================

Tests baseline building, drift detection and contextual risk.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from datetime import datetime, timezone

from warden.engine.anomaly_detector import AnomalyConfig, AnomalyDetector
from warden.engine.models import (
    AccessDecision,
    DecisionOutcome,
    DeviationSeverity,
    DeviationType,
    Permission,
)


def at_hour(hour):
    return datetime(2024, 1, 1, hour, 0, tzinfo=timezone.utc)


GRANTED = AccessDecision(outcome=DecisionOutcome.GRANTED, permission=Permission.READ, reason="ok")


@pytest.fixture
def detector(clock):
    return AnomalyDetector(clock=clock)


@pytest.fixture
def feed(make_context):
    """Feed N identical observations into a detector."""
    def _feed(detector, count, hour=10, device_id="laptop", **kwargs):
        for _ in range(count):
            detector.observe(
                make_context(timestamp=at_hour(hour), device_id=device_id, **kwargs), GRANTED
            )
    return _feed


@pytest.fixture
def shifted(detector, feed):
    """Steady daytime laptop use followed by a burst of night-time phone use."""
    feed(detector, 40, hour=10, device_id="laptop")
    feed(detector, 10, hour=3, device_id="phone")
    return detector


class TestObservation:
    """Tests for baseline building."""

    def test_pattern_tracks_observations(self, detector, feed):
        feed(detector, 5)
        pattern = detector.get_pattern("alice")
        assert pattern.observations == 5
        assert pattern.first_seen == at_hour(10)
        assert "laptop" in pattern.long_counts["device"]

    def test_snapshot_is_detached(self, detector, feed):
        feed(detector, 5)
        snapshot = detector.get_pattern("alice")
        snapshot.observations = 0
        assert detector.get_pattern("alice").observations == 5

    def test_unknown_user(self, detector):
        assert detector.get_pattern("nobody") is None
        assert detector.detect("nobody") == []

    def test_tracked_users(self, detector, feed):
        feed(detector, 1)
        feed(detector, 1, user_id="carol")
        assert sorted(detector.tracked_users()) == ["alice", "carol"]


class TestDetection:
    """Tests for drift detection."""

    def test_steady_behaviour_has_no_deviations(self, detector, feed):
        feed(detector, 40)
        assert detector.detect("alice") == []

    def test_insufficient_baseline(self, detector, feed):
        feed(detector, 5, hour=10)
        feed(detector, 5, hour=3, device_id="phone")
        assert detector.detect("alice") == []

    def test_time_and_device_shift_detected(self, shifted):
        deviations = shifted.detect("alice")
        types = {d.deviation_type for d in deviations}

        assert DeviationType.TIME in types
        assert DeviationType.DEVICE in types
        time_deviation = next(d for d in deviations if d.deviation_type == DeviationType.TIME)
        assert time_deviation.observed == "03:00"
        assert time_deviation.severity == DeviationSeverity.CRITICAL

    def test_sorted_by_confidence(self, shifted):
        confidences = [d.confidence for d in shifted.detect("alice")]
        assert confidences == sorted(confidences, reverse=True)

    def test_threshold_is_strict(self, clock, feed):
        """A confidence equal to the threshold is not reported."""
        detector = AnomalyDetector(AnomalyConfig(confidence_threshold=100.0), clock=clock)
        feed(detector, 40, hour=10)
        feed(detector, 10, hour=3, device_id="phone")
        assert detector.detect("alice") == []

    def test_deviations_recorded_and_capped(self, clock, feed):
        detector = AnomalyDetector(AnomalyConfig(max_deviations_per_user=1), clock=clock)
        feed(detector, 40, hour=10)
        feed(detector, 10, hour=3, device_id="phone")

        detector.detect("alice")
        assert len(detector.get_pattern("alice").deviations) == 1

    def test_detect_all_omits_quiet_users(self, shifted, feed):
        feed(shifted, 30, user_id="carol")
        results = shifted.detect_all()
        assert list(results) == ["alice"]
        assert shifted.recent_deviations("alice") == results["alice"]

    def test_statistics(self, shifted):
        shifted.detect("alice")
        stats = shifted.get_statistics()
        assert stats["tracked_users"] == 1
        assert stats["observations"] == 50
        assert stats["detections_run"] == 1
        assert stats["deviations_reported"] >= 2


class TestContextualRisk:
    """Tests for per-request contextual risk."""

    def test_no_baseline_no_risk(self, detector, make_context):
        assert detector.contextual_risk(make_context(timestamp=at_hour(3))) == 0

    def test_familiar_context(self, detector, feed, make_context):
        feed(detector, 40)
        ctx = make_context(timestamp=at_hour(10), device_id="laptop")
        assert detector.contextual_risk(ctx) == 0

    def test_unfamiliar_hour_device_and_location(self, detector, feed, make_context):
        feed(detector, 40)
        ctx = make_context(
            timestamp=at_hour(3),
            device_id="phone",
            attributes={"location": "Reykjavik"},
        )
        assert detector.contextual_risk(ctx) == 30


class TestConcurrency:
    """Tests for detection running alongside observation."""

    def test_detect_during_observe(self, detector, feed):
        feed(detector, 40, hour=10)
        stop = threading.Event()
        errors = []
        snapshots = []

        def sweeper():
            while not stop.is_set():
                try:
                    detector.detect("alice")
                    snapshots.append(detector.get_pattern("alice").observations)
                except Exception as e:
                    errors.append(e)

        sweep_thread = threading.Thread(target=sweeper)
        sweep_thread.start()
        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(lambda _: feed(detector, 50, hour=10), range(4)))
        stop.set()
        sweep_thread.join()

        assert errors == []
        assert snapshots == sorted(snapshots)
        assert all(40 <= n <= 240 for n in snapshots)
        assert detector.get_pattern("alice").observations == 240
        assert detector.get_statistics()["observations"] == 240
        assert detector.detect("alice") == []

    def test_snapshot_unaffected_by_later_observations(self, detector, feed):
        feed(detector, 10, hour=10)
        snapshot = detector.get_pattern("alice")
        hours = snapshot.long_hours.copy()

        feed(detector, 10, hour=3)

        assert snapshot.observations == 10
        assert (snapshot.long_hours == hours).all()
