"""
WARDEN v1.0 - Access Reports
============================

Analytics and compliance reporting over audit entries.

Features:
- Access analytics: totals, outcomes, top users/permissions, risk buckets
- Data export (JSON with integrity hash, CSV)
- Compliance report with per-standard policy coverage and blocked decisions

Author: WARDEN Development Team
Version: 1.0.0
"""

import hashlib
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

import pandas as pd

from warden.engine.audit_log import entries_to_records
from warden.engine.models import AuditEntry, ComplianceStandard, PatternDeviation, Policy

logger = logging.getLogger("WARDEN_Reports")

RECORD_COLUMNS = [
    "sequence",
    "timestamp",
    "user_id",
    "role",
    "permission",
    "resource",
    "outcome",
    "allowed",
    "risk_score",
    "policies",
    "compliance_flags",
    "integrity_hash",
]

RISK_BINS = [-1, 25, 50, 75, 100]
RISK_LABELS = ["low", "medium", "high", "critical"]

# Named analytics windows ending at the report time
ANALYTICS_PERIODS = {
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
}


def period_window(period: str, now: datetime) -> Tuple[datetime, datetime]:
    """Resolve a named period to its (start, end) window."""
    if period not in ANALYTICS_PERIODS:
        raise ValueError(f"Unsupported period: {period}")
    return now - ANALYTICS_PERIODS[period], now


def build_frame(entries: Iterable[AuditEntry]) -> pd.DataFrame:
    """One row per audit entry, ordered by sequence."""
    frame = pd.DataFrame(entries_to_records(entries), columns=RECORD_COLUMNS)
    if not frame.empty:
        frame = frame.sort_values("sequence").reset_index(drop=True)
    return frame


# =============================================================================
# ANALYTICS
# =============================================================================


@dataclass
class AccessAnalytics:
    """Aggregated access statistics for a period."""

    period_start: Optional[datetime]
    period_end: Optional[datetime]
    total_decisions: int = 0
    allowed: int = 0
    denied: int = 0
    conditional: int = 0
    allow_rate: float = 0.0
    unique_users: int = 0
    average_risk: float = 0.0
    outcome_counts: Dict[str, int] = field(default_factory=dict)
    top_users: List[Dict[str, Any]] = field(default_factory=list)
    top_permissions: Dict[str, int] = field(default_factory=dict)
    risk_distribution: Dict[str, int] = field(default_factory=lambda: {k: 0 for k in RISK_LABELS})
    anomalies: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["period_start"] = self.period_start.isoformat() if self.period_start else None
        data["period_end"] = self.period_end.isoformat() if self.period_end else None
        return data


def compute_access_analytics(
    entries: Sequence[AuditEntry],
    deviations: Sequence[PatternDeviation] = (),
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
    top_n: int = 5,
) -> AccessAnalytics:
    """Summarize decisions (and detected anomalies) over a period."""
    analytics = AccessAnalytics(
        period_start=period_start,
        period_end=period_end,
        anomalies=len(deviations),
    )

    frame = build_frame(entries)
    if frame.empty:
        return analytics

    total = len(frame)
    allowed = int(frame["allowed"].astype(bool).sum())
    outcome_counts = frame["outcome"].value_counts()

    analytics.total_decisions = total
    analytics.allowed = allowed
    analytics.denied = int(outcome_counts.get("denied", 0))
    analytics.conditional = int(outcome_counts.get("conditional", 0))
    analytics.allow_rate = round(allowed / total, 4)
    analytics.unique_users = int(frame["user_id"].nunique())
    analytics.average_risk = round(float(frame["risk_score"].mean()), 2)
    analytics.outcome_counts = {k: int(v) for k, v in outcome_counts.items()}

    frame["denied"] = frame["outcome"] == "denied"
    per_user = (
        frame.groupby("user_id")
        .agg(
            decisions=("sequence", "count"),
            denied=("denied", "sum"),
            average_risk=("risk_score", "mean"),
        )
        .sort_values(["decisions", "denied"], ascending=False)
        .head(top_n)
    )
    analytics.top_users = [
        {
            "user_id": user_id,
            "decisions": int(row["decisions"]),
            "denied": int(row["denied"]),
            "average_risk": round(float(row["average_risk"]), 2),
        }
        for user_id, row in per_user.iterrows()
    ]

    analytics.top_permissions = {
        k: int(v) for k, v in frame["permission"].value_counts().head(top_n).items()
    }

    buckets = pd.cut(frame["risk_score"], bins=RISK_BINS, labels=RISK_LABELS)
    counts = buckets.value_counts().reindex(RISK_LABELS, fill_value=0)
    analytics.risk_distribution = {label: int(counts[label]) for label in RISK_LABELS}

    logger.debug(f"Analytics: {total} decisions, allow_rate={analytics.allow_rate}")
    return analytics


# =============================================================================
# EXPORT
# =============================================================================


def export_access_data(
    entries: Sequence[AuditEntry],
    fmt: str = "json",
    exported_at: Optional[datetime] = None,
) -> str:
    """
    Export decisions as JSON (with integrity hash) or CSV.

    Raises:
        ValueError: unsupported format
    """
    frame = build_frame(entries)

    if fmt == "csv":
        return frame.to_csv(index=False)

    if fmt == "json":
        records = json.loads(frame.to_json(orient="records", date_format="iso"))
        export_data: Dict[str, Any] = {
            "exported_at": exported_at.isoformat() if exported_at else None,
            "record_count": len(records),
            "records": records,
        }
        content = json.dumps(export_data, sort_keys=True, default=str)
        export_data["integrity_hash"] = hashlib.sha256(content.encode()).hexdigest()
        return json.dumps(export_data, indent=2, default=str)

    raise ValueError(f"Unsupported format: {fmt}")


# =============================================================================
# COMPLIANCE
# =============================================================================


@dataclass
class ComplianceReport:
    """Structured compliance report."""

    report_id: str
    report_type: str
    generated_at: datetime
    period_start: Optional[datetime]
    period_end: Optional[datetime]
    summary: Dict[str, Any]
    details: List[Dict[str, Any]]
    integrity_hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report_id": self.report_id,
            "report_type": self.report_type,
            "generated_at": self.generated_at.isoformat(),
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "summary": self.summary,
            "details": self.details,
            "integrity_hash": self.integrity_hash,
        }


def generate_compliance_report(
    entries: Sequence[AuditEntry],
    policies: Sequence[Policy],
    generated_at: datetime,
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
    integrity_ok: bool = True,
) -> ComplianceReport:
    """Generate the access compliance report for a period."""
    by_standard: Dict[str, int] = {}
    mandatory = 0
    for policy in policies:
        standards = {req.standard for req in policy.metadata.compliance}
        for standard in standards:
            key = ComplianceStandard(standard).value
            by_standard[key] = by_standard.get(key, 0) + 1
        mandatory += sum(1 for req in policy.metadata.compliance if req.mandatory)

    frame = build_frame(entries)
    total = len(frame)

    if frame.empty:
        flagged = frame
        blocked = 0
        gdpr_fields = 0
        audited = 0
    else:
        flags = frame["compliance_flags"].fillna("")
        flagged = frame[flags != ""]
        blocked = int(flags.str.contains("blocked:", regex=False).sum())
        gdpr_fields = int(flags.str.contains("GDPR:field:", regex=False).sum())
        audited = sum(1 for e in entries if e.decision.audit_required)

    score = 100.0 if total == 0 else round(100.0 * (total - blocked) / total, 1)
    if not integrity_ok:
        score = 0.0

    recommendations = []
    if not integrity_ok:
        recommendations.append("Audit hash chain failed verification; investigate tampering")
    if blocked:
        recommendations.append(f"Review {blocked} decisions blocked by mandatory compliance requirements")
    if ComplianceStandard.GDPR.value not in by_standard:
        recommendations.append("No policy declares GDPR requirements")
    if total and blocked / total > 0.1:
        recommendations.append("More than 10% of decisions were blocked; check required attributes upstream")

    summary = {
        "total_decisions": total,
        "audited_decisions": audited,
        "compliance_flagged": len(flagged),
        "blocked_decisions": blocked,
        "gdpr_field_accesses": gdpr_fields,
        "policies_by_standard": by_standard,
        "mandatory_requirements": mandatory,
        "audit_integrity": integrity_ok,
        "compliance_score": score,
        "recommendations": recommendations,
    }
    details = json.loads(flagged.to_json(orient="records", date_format="iso")) if len(flagged) else []

    report_data = {"summary": summary, "details": details}
    integrity_hash = hashlib.sha256(
        json.dumps(report_data, sort_keys=True, default=str).encode()
    ).hexdigest()

    logger.info(f"Compliance report: {total} decisions, {blocked} blocked, score={score}")

    return ComplianceReport(
        report_id=f"rpt_{uuid4().hex[:16]}",
        report_type="access_compliance",
        generated_at=generated_at,
        period_start=period_start,
        period_end=period_end,
        summary=summary,
        details=details,
        integrity_hash=integrity_hash,
    )


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "RECORD_COLUMNS",
    "ANALYTICS_PERIODS",
    "period_window",
    "build_frame",
    "AccessAnalytics",
    "compute_access_analytics",
    "export_access_data",
    "ComplianceReport",
    "generate_compliance_report",
]
