# WARDEN Access Layer
"""
Host-facing access-control layer.

Modules:
    service: AccessControlService facade
    default_roles: Built-in role catalog and baseline policies
    reports: Analytics, export and compliance reports
    guards: Permission-checking decorators
    sweep_worker: Scheduled anomaly sweep and audit flush
"""

from warden.access.service import AccessControlService
from warden.access.default_roles import default_roles, default_policies
from warden.access.reports import (
    AccessAnalytics,
    ComplianceReport,
    compute_access_analytics,
    export_access_data,
    generate_compliance_report,
)
from warden.access.guards import require_permission
from warden.access.sweep_worker import AnomalySweepWorker, AuditFlushWorker, WorkerStats

__all__ = [
    "AccessControlService",
    "default_roles",
    "default_policies",
    "AccessAnalytics",
    "ComplianceReport",
    "compute_access_analytics",
    "export_access_data",
    "generate_compliance_report",
    "require_permission",
    "AnomalySweepWorker",
    "AuditFlushWorker",
    "WorkerStats",
]
