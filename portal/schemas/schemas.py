"""
Pydantic Schemas - Request/Response Validation

All API request and response schemas in one file for simplicity.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List, Any, Dict
from datetime import datetime

from portal.models.domain import PRNRange, PRNRangeSpec, ResetResult


# ============================================================
# AUTH SCHEMAS
# ============================================================

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: int
    role: str

class UserResponse(BaseModel):
    user_id: int
    email: str
    role: str
    is_active: bool
    created_at: datetime

class StudentRegisterRequest(BaseModel):
    prn: str = Field(..., min_length=1, max_length=50)
    college_id: int
    student_name: str = Field(..., min_length=2, max_length=150)
    email: EmailStr
    password: str = Field(..., min_length=8)
    branch: Optional[str] = None

    @field_validator("prn")
    @classmethod
    def strip_prn(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("PRN is required")
        return v


# ============================================================
# PRN RANGE SCHEMAS
# ============================================================

class PRNRangeCreate(BaseModel):
    range_start: Optional[str] = None
    range_end: Optional[str] = None
    single_prn: Optional[str] = None
    description: Optional[str] = None
    # Super admins may leave this empty for a global range
    college_id: Optional[int] = None

    def to_spec(self) -> PRNRangeSpec:
        return PRNRangeSpec(
            range_start=self.range_start,
            range_end=self.range_end,
            single_prn=self.single_prn,
            description=self.description,
            institution_id=self.college_id,
        )

class PRNRangeUpdate(BaseModel):
    range_start: Optional[str] = None
    range_end: Optional[str] = None
    single_prn: Optional[str] = None
    description: Optional[str] = None
    is_enabled: Optional[bool] = None
    disabled_reason: Optional[str] = None

    def to_patch(self) -> Dict[str, Any]:
        """Only the fields the client actually sent."""
        return self.model_dump(exclude_unset=True)

class PRNRangeResponse(BaseModel):
    id: int
    range_start: Optional[str] = None
    range_end: Optional[str] = None
    single_prn: Optional[str] = None
    description: Optional[str] = None
    college_id: Optional[int] = None
    scope: str
    created_by_authority: str
    added_by: Optional[int] = None
    is_enabled: bool
    disabled_reason: Optional[str] = None
    disabled_date: Optional[datetime] = None
    disabled_by: Optional[int] = None
    academic_year_tag: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_range(cls, prn_range: PRNRange) -> "PRNRangeResponse":
        data = prn_range.model_dump(mode="json", exclude={"institution_id"})
        return cls(**data, college_id=prn_range.institution_id, scope=prn_range.scope.value)

class PRNRangeListResponse(BaseModel):
    ranges: List[PRNRangeResponse]
    total: int

class RangeStudentResponse(BaseModel):
    id: int
    prn: str
    user_id: int
    college_id: int
    student_name: str
    email: str
    is_active: bool


# ============================================================
# ELIGIBILITY SCHEMAS
# ============================================================

class EligibilityCheckRequest(BaseModel):
    prn: str
    college_id: Optional[int] = None

class EligibilityCheckResponse(BaseModel):
    prn: str
    eligible: bool
    matching_range_id: Optional[int] = None
    scope: Optional[str] = None
    college_id: Optional[int] = None


# ============================================================
# ACADEMIC YEAR RESET SCHEMAS
# ============================================================

class ResetExecuteRequest(BaseModel):
    academic_year: str = Field(..., examples=["2025-26"])
    # Must be exactly "RESET {academic_year}"
    confirmation_text: str
    password: str

class ResetExecuteResponse(BaseModel):
    success: bool = True
    message: str
    data: ResetResult


# ============================================================
# ACTIVITY LOG SCHEMAS
# ============================================================

class ActivityLogResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    action_type: str
    action_description: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

class ActivityLogListResponse(BaseModel):
    logs: List[ActivityLogResponse]
    total: int
    page: int
    page_size: int


# ============================================================
# GENERIC SCHEMAS
# ============================================================

class MessageResponse(BaseModel):
    message: str
    success: bool = True

class ErrorResponse(BaseModel):
    success: bool = False
    message: str
