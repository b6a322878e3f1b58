"""
Models module - domain types shared by the services.

These models are used for:
- PRN ranges and their authority/scope rules
- Eligibility verdicts
- Academic-year reset previews and results
- Audit log entries
"""

from portal.models.domain import (
    Actor,
    AuditAction,
    AuditLogEntry,
    Authority,
    CleanupSummary,
    EligibilityVerdict,
    PRNRange,
    PRNRangeSpec,
    RangeScope,
    ResetCounts,
    ResetPreview,
    ResetResult,
)

__all__ = [
    "Actor",
    "AuditAction",
    "AuditLogEntry",
    "Authority",
    "CleanupSummary",
    "EligibilityVerdict",
    "PRNRange",
    "PRNRangeSpec",
    "RangeScope",
    "ResetCounts",
    "ResetPreview",
    "ResetResult",
]
