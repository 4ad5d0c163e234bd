"""
WARDEN v1.0 - System Constants
==============================

Centralized constants for the WARDEN access-control engine.
All magic numbers and system-wide values should be defined here.

The thresholds below are defaults only; EngineConfig and AnomalyConfig
carry the values an engine instance actually uses.

Author: WARDEN Development Team
Version: 1.0.0
"""

from typing import Dict, FrozenSet

# =============================================================================
# SYSTEM IDENTIFICATION
# =============================================================================

VERSION = "1.0.0"
SYSTEM_NAME = "WARDEN"

# =============================================================================
# DECISION THRESHOLDS
# =============================================================================

# Policies with priority strictly above this value short-circuit evaluation
CRITICAL_PRIORITY_THRESHOLD = 7

# Final risk scores strictly above this value force a denial
RISK_CEILING = 90

# Risk attached to the default "no applicable policy" denial
NO_POLICY_RISK_SCORE = 50

# Added per condition that could not be evaluated
EVALUATION_ERROR_RISK = 25

# Added when the requested permission is sensitive
SENSITIVE_PERMISSION_RISK = 10

MIN_RISK_SCORE = 0
MAX_RISK_SCORE = 100

# Lifetime of a conditional grant before revalidation (minutes)
CONDITIONAL_GRANT_TTL_MINUTES = 15

# =============================================================================
# RISK COMPONENTS
# =============================================================================

ROLE_BASE_RISK: Dict[str, int] = {
    "guest": 30,
    "user": 15,
    "premium": 10,
    "moderator": 10,
    "admin": 5,
    "superadmin": 5,
}

RELATIONSHIP_RISK: Dict[str, int] = {
    "self": 0,
    "friend": 5,
    "connection": 10,
    "stranger": 20,
}

# Higher is closer
RELATIONSHIP_STRENGTH: Dict[str, int] = {
    "self": 3,
    "friend": 2,
    "connection": 1,
    "stranger": 0,
}

SENSITIVE_PERMISSIONS: FrozenSet[str] = frozenset({"delete", "admin", "export", "audit"})

# =============================================================================
# ANOMALY DETECTION
# =============================================================================

ANOMALY_CONFIDENCE_THRESHOLD = 70.0

# EWMA smoothing factors (long baseline vs short recent window)
LONG_WINDOW_ALPHA = 0.02
SHORT_WINDOW_ALPHA = 0.2

# Baseline size required before deviations or contextual risk are reported
MIN_BASELINE_OBSERVATIONS = 20

MAX_DEVIATIONS_PER_USER = 100

# Confidence points awarded per standard deviation of drift
CONFIDENCE_PER_SIGMA = 25.0

# Contextual risk contributions for behaviour outside the baseline
OFF_HOURS_RISK = 15
NEW_DEVICE_RISK = 10
NEW_LOCATION_RISK = 5

# Baseline mass under which an hour/device/location counts as unusual
RARE_BASELINE_MASS = 0.02

ANOMALY_SWEEP_INTERVAL_SEC = 300

# =============================================================================
# RESOURCES & AUDIT
# =============================================================================

# Resources of the form "field:<name>" target a single profile field
FIELD_RESOURCE_PREFIX = "field:"

REDACTED_VALUE = "[REDACTED]"

AUDIT_BUFFER_SIZE = 100

AUDIT_FLUSH_INTERVAL_SEC = 5

GENESIS_HASH = "0" * 64


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def clamp_risk(score: float) -> int:
    """Clamp a raw risk score into the 0-100 range."""
    return int(max(MIN_RISK_SCORE, min(MAX_RISK_SCORE, round(score))))


def is_field_resource(resource: str) -> bool:
    """Check whether a resource addresses a single profile field."""
    return resource.startswith(FIELD_RESOURCE_PREFIX)


def field_name(resource: str) -> str:
    """Extract the field name from a field resource."""
    return resource[len(FIELD_RESOURCE_PREFIX):]


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "VERSION",
    "SYSTEM_NAME",
    "CRITICAL_PRIORITY_THRESHOLD",
    "RISK_CEILING",
    "NO_POLICY_RISK_SCORE",
    "EVALUATION_ERROR_RISK",
    "SENSITIVE_PERMISSION_RISK",
    "MIN_RISK_SCORE",
    "MAX_RISK_SCORE",
    "CONDITIONAL_GRANT_TTL_MINUTES",
    "ROLE_BASE_RISK",
    "RELATIONSHIP_RISK",
    "RELATIONSHIP_STRENGTH",
    "SENSITIVE_PERMISSIONS",
    "ANOMALY_CONFIDENCE_THRESHOLD",
    "LONG_WINDOW_ALPHA",
    "SHORT_WINDOW_ALPHA",
    "MIN_BASELINE_OBSERVATIONS",
    "MAX_DEVIATIONS_PER_USER",
    "CONFIDENCE_PER_SIGMA",
    "OFF_HOURS_RISK",
    "NEW_DEVICE_RISK",
    "NEW_LOCATION_RISK",
    "RARE_BASELINE_MASS",
    "ANOMALY_SWEEP_INTERVAL_SEC",
    "FIELD_RESOURCE_PREFIX",
    "REDACTED_VALUE",
    "AUDIT_BUFFER_SIZE",
    "AUDIT_FLUSH_INTERVAL_SEC",
    "GENESIS_HASH",
    "clamp_risk",
    "is_field_resource",
    "field_name",
]
