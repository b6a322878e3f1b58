"""
Domain models - internal data structures shared by the services.

Difference from schemas:
- Models: what the services pass around (ranges, verdicts, previews, results)
- Schemas: API contract (what clients send/receive)
"""

import re
from datetime import datetime
from enum import Enum
from typing import Optional, List, Any, Dict, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

from portal.core.errors import ValidationError


# ============================================================
# AUTHORITY & SCOPE
# ============================================================

class Authority(str, Enum):
    """Administrative role classes that may own PRN ranges."""
    super_admin = "super_admin"
    placement_officer = "placement_officer"

    @property
    def rank(self) -> int:
        return _AUTHORITY_RANK[self]

    def outranks(self, other: "Authority") -> bool:
        return self.rank > other.rank

    def at_least(self, other: "Authority") -> bool:
        return self.rank >= other.rank


_AUTHORITY_RANK = {
    Authority.placement_officer: 1,
    Authority.super_admin: 2,
}


class RangeScope(str, Enum):
    global_ = "global"
    institution = "institution"


class Actor(BaseModel):
    """The administrator performing an operation, as resolved by auth."""
    model_config = ConfigDict(frozen=True)

    user_id: int
    authority: Authority
    # College the actor is bound to; None for super admins
    institution_id: Optional[int] = None

    @property
    def is_scoped(self) -> bool:
        return self.institution_id is not None


# ============================================================
# PRN IDENTIFIERS
# ============================================================

def normalize_prn(value: Union[str, int, None]) -> str:
    """Trim an identifier; PRNs are opaque so no case folding happens."""
    if value is None:
        raise ValidationError("PRN is required")
    prn = str(value).strip()
    if not prn:
        raise ValidationError("PRN is required")
    return prn


def optional_prn(value: Union[str, int, None]) -> Optional[str]:
    if value is None:
        return None
    prn = str(value).strip()
    return prn or None


def compare_prn(left: str, right: str) -> int:
    """
    Order two PRNs: numerically when both are all digits,
    lexicographically otherwise. Returns -1, 0 or 1.
    """
    if left.isdecimal() and right.isdecimal():
        a, b = int(left), int(right)
    else:
        a, b = left, right
    return (a > b) - (a < b)


def prn_in_interval(prn: str, start: str, end: str) -> bool:
    """Inclusive bounds check under the PRN ordering."""
    if prn.isdecimal() and start.isdecimal() and end.isdecimal():
        return int(start) <= int(prn) <= int(end)
    return start <= prn <= end


# ============================================================
# PRN RANGE
# ============================================================

class PRNRangeSpec(BaseModel):
    """Requested shape of a new range, before validation."""
    range_start: Optional[str] = None
    range_end: Optional[str] = None
    single_prn: Optional[str] = None
    description: Optional[str] = None
    institution_id: Optional[int] = None

    def validated(self) -> "PRNRangeSpec":
        """
        Return a normalized copy. Exactly one of {interval, single PRN}
        must be given, and start <= end for an interval.
        """
        start = optional_prn(self.range_start)
        end = optional_prn(self.range_end)
        single = optional_prn(self.single_prn)
        validate_range_shape(start, end, single)
        return self.model_copy(update={"range_start": start, "range_end": end, "single_prn": single})


def validate_range_shape(start: Optional[str], end: Optional[str], single: Optional[str]) -> None:
    has_interval = start is not None or end is not None
    if has_interval and single is not None:
        raise ValidationError("Cannot provide both range and single PRN")
    if not has_interval and single is None:
        raise ValidationError("Please provide either a range (start and end) or a single PRN")
    if has_interval:
        if start is None or end is None:
            raise ValidationError("A range needs both start and end")
        if compare_prn(start, end) > 0:
            raise ValidationError(f"Range start {start} is after range end {end}")


class PRNRange(BaseModel):
    id: int
    range_start: Optional[str] = None
    range_end: Optional[str] = None
    single_prn: Optional[str] = None
    description: Optional[str] = None
    institution_id: Optional[int] = None
    created_by_authority: Authority
    added_by: Optional[int] = None
    is_enabled: bool = True
    disabled_reason: Optional[str] = None
    disabled_date: Optional[datetime] = None
    disabled_by: Optional[int] = None
    academic_year_tag: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def scope(self) -> RangeScope:
        return RangeScope.global_ if self.institution_id is None else RangeScope.institution

    @property
    def is_single(self) -> bool:
        return self.single_prn is not None

    def contains(self, prn: str) -> bool:
        if self.is_single:
            return prn == self.single_prn
        return prn_in_interval(prn, self.range_start, self.range_end)

    def applies_to(self, institution_id: Optional[int]) -> bool:
        return self.institution_id is None or self.institution_id == institution_id

    def label(self) -> str:
        if self.is_single:
            return f"single PRN {self.single_prn}"
        return f"PRN range {self.range_start}-{self.range_end}"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PRNRange":
        data = dict(row)
        data["institution_id"] = data.pop("college_id", None)
        return cls(**data)


class EligibilityVerdict(BaseModel):
    """Result of resolving one identifier. Never persisted."""
    model_config = ConfigDict(frozen=True)

    prn: str
    matched: bool
    matching_range_id: Optional[int] = None
    scope: Optional[RangeScope] = None
    institution_id: Optional[int] = None
    is_enabled: Optional[bool] = None


# ============================================================
# ACADEMIC-YEAR RESET
# ============================================================

ACADEMIC_YEAR_PATTERN = re.compile(r"^\d{4}-\d{2}$")

# Delete categories, in the order the executor removes them (children first)
DELETE_CATEGORIES = (
    "job_applications",
    "job_drives",
    "jobs",
    "job_requests",
    "notifications",
    "admin_notifications",
    "whitelist_requests",
    "cgpa_unlock_windows",
    "backlog_unlock_windows",
    "deleted_jobs_history",
    "activity_logs",
)


class ResetPreview(BaseModel):
    """Point-in-time counts of what a reset would touch. Advisory only."""
    model_config = ConfigDict(frozen=True)

    # delete categories
    jobs: int = 0
    job_applications: int = 0
    job_drives: int = 0
    job_requests: int = 0
    notifications: int = 0
    admin_notifications: int = 0
    activity_logs: int = 0
    whitelist_requests: int = 0
    cgpa_unlock_windows: int = 0
    backlog_unlock_windows: int = 0
    deleted_jobs_history: int = 0
    # disable / clear categories
    active_prn_ranges: int = 0
    active_students: int = 0
    student_photos: int = 0
    generated_at: Optional[datetime] = None

    @property
    def delete_counts(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in DELETE_CATEGORIES}

    @computed_field
    @property
    def is_nothing_to_reset(self) -> bool:
        return (
            all(count == 0 for count in self.delete_counts.values())
            and self.active_prn_ranges == 0
            and self.student_photos == 0
        )


class ResetCounts(BaseModel):
    """Rows actually affected inside the reset transaction."""
    model_config = ConfigDict(frozen=True)

    jobs_deleted: int = 0
    job_applications_deleted: int = 0
    job_drives_deleted: int = 0
    job_requests_deleted: int = 0
    notifications_deleted: int = 0
    admin_notifications_deleted: int = 0
    activity_logs_deleted: int = 0
    whitelist_requests_deleted: int = 0
    cgpa_unlock_windows_deleted: int = 0
    backlog_unlock_windows_deleted: int = 0
    deleted_jobs_history_deleted: int = 0
    prn_ranges_disabled: int = 0
    students_deactivated: int = 0
    student_photos_cleared: int = 0


class CleanupFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    reference: str
    reason: str


class CleanupSummary(BaseModel):
    """Outcome of the post-commit external asset cleanup."""
    model_config = ConfigDict(frozen=True)

    deleted: int = 0
    failed: int = 0
    folders_deleted: int = 0
    failures: List[CleanupFailure] = Field(default_factory=list)


class ResetResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    academic_year: str
    executed_by: int
    completed_at: datetime
    db_reset: ResetCounts
    external_cleanup: CleanupSummary


# ============================================================
# AUDIT LOG
# ============================================================

class AuditAction(str, Enum):
    add_prn_range = "ADD_PRN_RANGE"
    update_prn_range = "UPDATE_PRN_RANGE"
    delete_prn_range = "DELETE_PRN_RANGE"
    reset_completed = "ACADEMIC_YEAR_RESET"
    reset_failed = "ACADEMIC_YEAR_RESET_FAILED"
    reset_auth_failed = "ACADEMIC_YEAR_RESET_AUTH_FAILED"
    reset_cleanup = "ACADEMIC_YEAR_RESET_CLEANUP"


class AuditLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    actor: Optional[int] = None
    action_kind: str
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    description: str
    metadata: Optional[Dict[str, Any]] = None
    timestamp: Optional[datetime] = None
