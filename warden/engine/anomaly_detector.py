"""
WARDEN v1.0 - Anomaly Detector
==============================

Maintains per-user behavioral baselines and flags deviations from them.

Every observed evaluation updates two exponentially-weighted histograms per
dimension (hour-of-day, permission, resource, device, location) and a
denial-rate average:
    long window  -> slow-moving baseline of normal behaviour
    short window -> recent behaviour

Detection compares the two with a z-score-like drift statistic

    z = (p_short - p_long) / sqrt(max(p_long * (1 - p_long), floor) / n_eff)

where n_eff is the effective sample size of the short window, and maps
|z| to a 0-100 confidence. Detection works on a snapshot and never blocks
observation; it is driven by the host's scheduler.

Author: WARDEN Development Team
Version: 1.0.0
"""

import copy
import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .collaborators import Clock, SystemClock
from .constants import (
    ANOMALY_CONFIDENCE_THRESHOLD,
    CONFIDENCE_PER_SIGMA,
    LONG_WINDOW_ALPHA,
    MAX_DEVIATIONS_PER_USER,
    MIN_BASELINE_OBSERVATIONS,
    NEW_DEVICE_RISK,
    NEW_LOCATION_RISK,
    OFF_HOURS_RISK,
    RARE_BASELINE_MASS,
    SHORT_WINDOW_ALPHA,
)
from .locks import KeyedReadWriteLocks
from .models import (
    AccessContext,
    AccessDecision,
    DeviationSeverity,
    DeviationType,
    PatternDeviation,
)

logger = logging.getLogger("WARDEN_AnomalyDetector")

HOURS_PER_DAY = 24

# Lower bound on the baseline variance so unseen categories still produce finite z
VARIANCE_FLOOR = 0.01

# Histogram entries below this mass are dropped
PRUNE_BELOW = 1e-6

DIMENSIONS: Dict[str, DeviationType] = {
    "permission": DeviationType.PERMISSION,
    "resource": DeviationType.RESOURCE,
    "device": DeviationType.DEVICE,
    "location": DeviationType.LOCATION,
}


@dataclass
class AnomalyConfig:
    """Configuration for the anomaly detector."""

    confidence_threshold: float = ANOMALY_CONFIDENCE_THRESHOLD
    long_window_alpha: float = LONG_WINDOW_ALPHA
    short_window_alpha: float = SHORT_WINDOW_ALPHA
    min_observations: int = MIN_BASELINE_OBSERVATIONS
    max_deviations_per_user: int = MAX_DEVIATIONS_PER_USER


@dataclass
class AccessPattern:
    """Rolling baseline for one user. Owned and mutated only by the detector."""

    user_id: str
    observations: int = 0
    long_hours: np.ndarray = field(default_factory=lambda: np.zeros(HOURS_PER_DAY))
    short_hours: np.ndarray = field(default_factory=lambda: np.zeros(HOURS_PER_DAY))
    long_counts: Dict[str, Dict[str, float]] = field(
        default_factory=lambda: {d: {} for d in DIMENSIONS}
    )
    short_counts: Dict[str, Dict[str, float]] = field(
        default_factory=lambda: {d: {} for d in DIMENSIONS}
    )
    long_denial_rate: float = 0.0
    short_denial_rate: float = 0.0
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    deviations: List[PatternDeviation] = field(default_factory=list)

    def baseline_mass(self, dimension: str, key: str) -> float:
        """Share of the long-window baseline held by one category."""
        counts = self.long_counts[dimension]
        total = sum(counts.values())
        return counts.get(key, 0.0) / total if total > 0 else 0.0

    def hour_mass(self, hour: int) -> float:
        total = float(self.long_hours.sum())
        return float(self.long_hours[hour]) / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "observations": self.observations,
            "hour_histogram": np.round(self.long_hours, 4).tolist(),
            "permissions": dict(self.long_counts["permission"]),
            "devices": dict(self.long_counts["device"]),
            "locations": dict(self.long_counts["location"]),
            "denial_rate": round(self.long_denial_rate, 4),
            "first_seen": self.first_seen.isoformat() if self.first_seen else None,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
            "deviations": [d.to_dict() for d in self.deviations],
        }


class AnomalyDetector:
    """
    Per-user behavioural baselines and drift detection.

    Example:
        detector = AnomalyDetector()
        detector.observe(context, decision)      # on every evaluation
        deviations = detector.detect("user-1")   # from the host scheduler
    """

    def __init__(self, config: Optional[AnomalyConfig] = None, clock: Optional[Clock] = None):
        self.cfg = config or AnomalyConfig()
        self._clock = clock if clock is not None else SystemClock()
        self._patterns: Dict[str, AccessPattern] = {}
        self._registry_lock = threading.Lock()
        self._user_locks = KeyedReadWriteLocks()
        self._stats = {
            "observations": 0,
            "detections_run": 0,
            "deviations_reported": 0,
        }

        logger.info(
            f"AnomalyDetector initialized: threshold={self.cfg.confidence_threshold}, "
            f"alpha_long={self.cfg.long_window_alpha}, alpha_short={self.cfg.short_window_alpha}"
        )

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def observe(self, context: AccessContext, decision: AccessDecision) -> None:
        """Fold one evaluation into the user's baseline."""
        moment = context.timestamp or self._clock.now()
        keys = {
            "permission": context.permission.value,
            "resource": context.resource,
            "device": context.device_id or "unknown",
            "location": context.location,
        }
        denied = 0.0 if decision.allowed else 1.0
        a_long = self.cfg.long_window_alpha
        a_short = self.cfg.short_window_alpha

        pattern = self._pattern_for(context.user_id)
        with self._user_locks.write_lock(context.user_id):
            _decay_array(pattern.long_hours, a_long, moment.hour)
            _decay_array(pattern.short_hours, a_short, moment.hour)
            for dimension, key in keys.items():
                _decay_counts(pattern.long_counts[dimension], a_long, key)
                _decay_counts(pattern.short_counts[dimension], a_short, key)
            pattern.long_denial_rate += a_long * (denied - pattern.long_denial_rate)
            pattern.short_denial_rate += a_short * (denied - pattern.short_denial_rate)
            pattern.observations += 1
            pattern.first_seen = pattern.first_seen or moment
            pattern.last_seen = moment

        with self._registry_lock:
            self._stats["observations"] += 1

    def _pattern_for(self, user_id: str) -> AccessPattern:
        with self._registry_lock:
            pattern = self._patterns.get(user_id)
            if pattern is None:
                pattern = AccessPattern(user_id=user_id)
                self._patterns[user_id] = pattern
            return pattern

    def get_pattern(self, user_id: str) -> Optional[AccessPattern]:
        """Deep-copied snapshot of a user's baseline."""
        with self._registry_lock:
            pattern = self._patterns.get(user_id)
        if pattern is None:
            return None
        with self._user_locks.read_lock(user_id):
            return copy.deepcopy(pattern)

    def tracked_users(self) -> List[str]:
        with self._registry_lock:
            return list(self._patterns)

    # ------------------------------------------------------------------
    # Contextual Risk
    # ------------------------------------------------------------------

    def contextual_risk(self, context: AccessContext) -> int:
        """Risk for a request whose hour, device or location is rare in the baseline."""
        with self._registry_lock:
            pattern = self._patterns.get(context.user_id)
        if pattern is None:
            return 0

        with self._user_locks.read_lock(context.user_id):
            if pattern.observations < self.cfg.min_observations:
                return 0
            moment = context.timestamp or self._clock.now()
            risk = 0
            if pattern.hour_mass(moment.hour) < RARE_BASELINE_MASS:
                risk += OFF_HOURS_RISK
            if context.device_id and pattern.baseline_mass("device", context.device_id) < RARE_BASELINE_MASS:
                risk += NEW_DEVICE_RISK
            if pattern.baseline_mass("location", context.location) < RARE_BASELINE_MASS:
                risk += NEW_LOCATION_RISK
            return risk

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(self, user_id: str) -> List[PatternDeviation]:
        """
        Compare the short window against the baseline for one user.

        Returns:
            Deviations above the confidence threshold, highest confidence first
        """
        snapshot = self.get_pattern(user_id)
        with self._registry_lock:
            self._stats["detections_run"] += 1
        if snapshot is None or snapshot.observations < self.cfg.min_observations:
            return []

        now = self._clock.now()
        n_eff = min(
            float(snapshot.observations),
            (2.0 - self.cfg.short_window_alpha) / self.cfg.short_window_alpha,
        )

        candidates: List[Tuple[DeviationType, float, str, str]] = []

        hour, z = _max_drift_array(snapshot.short_hours, snapshot.long_hours, n_eff)
        if hour is not None:
            candidates.append(
                (DeviationType.TIME, z, f"{hour:02d}:00", f"unusual activity around {hour:02d}:00")
            )

        for dimension, deviation_type in DIMENSIONS.items():
            key, z = _max_drift_counts(
                snapshot.short_counts[dimension], snapshot.long_counts[dimension], n_eff
            )
            if key is not None:
                candidates.append(
                    (deviation_type, z, key, f"{dimension} '{key}' is unusual for this user")
                )

        z = _drift(snapshot.short_denial_rate, snapshot.long_denial_rate, n_eff)
        candidates.append(
            (
                DeviationType.FREQUENCY,
                z,
                f"{snapshot.short_denial_rate:.2f}",
                f"denial rate {snapshot.short_denial_rate:.0%} vs baseline {snapshot.long_denial_rate:.0%}",
            )
        )

        deviations = []
        for deviation_type, z, observed, description in candidates:
            confidence = min(100.0, max(0.0, z) * CONFIDENCE_PER_SIGMA)
            if confidence > self.cfg.confidence_threshold:
                deviations.append(
                    PatternDeviation(
                        user_id=user_id,
                        deviation_type=deviation_type,
                        severity=_severity(confidence),
                        confidence=confidence,
                        description=description,
                        observed=observed,
                        detected_at=now,
                    )
                )

        deviations.sort(key=lambda d: d.confidence, reverse=True)

        if deviations:
            self._record(user_id, deviations)
            logger.warning(
                f"Anomalies for {user_id}: "
                + ", ".join(f"{d.deviation_type.value}({d.confidence:.0f})" for d in deviations)
            )
        return deviations

    def detect_all(self) -> Dict[str, List[PatternDeviation]]:
        """Run detection for every tracked user; users without deviations are omitted."""
        results = {}
        for user_id in self.tracked_users():
            deviations = self.detect(user_id)
            if deviations:
                results[user_id] = deviations
        return results

    def _record(self, user_id: str, deviations: List[PatternDeviation]) -> None:
        with self._registry_lock:
            pattern = self._patterns[user_id]
        with self._user_locks.write_lock(user_id):
            pattern.deviations.extend(deviations)
            overflow = len(pattern.deviations) - self.cfg.max_deviations_per_user
            if overflow > 0:
                del pattern.deviations[:overflow]
        with self._registry_lock:
            self._stats["deviations_reported"] += len(deviations)

    def recent_deviations(self, user_id: Optional[str] = None) -> List[PatternDeviation]:
        """Previously detected deviations, highest confidence first."""
        users = [user_id] if user_id else self.tracked_users()
        found = []
        for uid in users:
            pattern = self.get_pattern(uid)
            if pattern:
                found.extend(pattern.deviations)
        return sorted(found, key=lambda d: d.confidence, reverse=True)

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "tracked_users": len(self.tracked_users()),
            "observations": self._stats["observations"],
            "detections_run": self._stats["detections_run"],
            "deviations_reported": self._stats["deviations_reported"],
            "confidence_threshold": self.cfg.confidence_threshold,
        }


# =============================================================================
# STATISTICS HELPERS
# =============================================================================


def _decay_array(histogram: np.ndarray, alpha: float, index: int) -> None:
    histogram *= 1.0 - alpha
    histogram[index] += alpha


def _decay_counts(histogram: Dict[str, float], alpha: float, key: str) -> None:
    for k in list(histogram):
        histogram[k] *= 1.0 - alpha
        if histogram[k] < PRUNE_BELOW:
            del histogram[k]
    histogram[key] = histogram.get(key, 0.0) + alpha


def _drift(p_short: float, p_long: float, n_eff: float) -> float:
    variance = max(p_long * (1.0 - p_long), VARIANCE_FLOOR)
    return (p_short - p_long) / math.sqrt(variance / n_eff)


def _max_drift_array(short: np.ndarray, long: np.ndarray, n_eff: float) -> Tuple[Optional[int], float]:
    if short.sum() <= 0 or long.sum() <= 0:
        return None, 0.0
    p_short = short / short.sum()
    p_long = long / long.sum()
    variance = np.maximum(p_long * (1.0 - p_long), VARIANCE_FLOOR)
    z = (p_short - p_long) / np.sqrt(variance / n_eff)
    index = int(np.argmax(z))
    return index, float(z[index])


def _max_drift_counts(
    short: Dict[str, float], long: Dict[str, float], n_eff: float
) -> Tuple[Optional[str], float]:
    short_total = sum(short.values())
    long_total = sum(long.values())
    if short_total <= 0 or long_total <= 0:
        return None, 0.0

    best_key, best_z = None, -math.inf
    for key, mass in short.items():
        z = _drift(mass / short_total, long.get(key, 0.0) / long_total, n_eff)
        if z > best_z:
            best_key, best_z = key, z
    return best_key, best_z


def _severity(confidence: float) -> DeviationSeverity:
    if confidence >= 95:
        return DeviationSeverity.CRITICAL
    if confidence >= 85:
        return DeviationSeverity.HIGH
    if confidence >= 75:
        return DeviationSeverity.MEDIUM
    return DeviationSeverity.LOW


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "AnomalyConfig",
    "AccessPattern",
    "AnomalyDetector",
]
