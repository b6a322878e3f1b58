"""
PRN Range Routes

Super admin:
GET /super-admin/prn-ranges - All ranges
POST /super-admin/prn-ranges - Add a global or college range
PUT /super-admin/prn-ranges/{range_id} - Update / enable / disable any range
DELETE /super-admin/prn-ranges/{range_id} - Delete any range
GET /super-admin/prn-ranges/{range_id}/students - Students covered by a range

Placement officer:
GET /placement-officer/prn-ranges - Own college ranges plus global ranges
POST /placement-officer/prn-ranges - Add a range for own college
PUT /placement-officer/prn-ranges/{range_id} - Update own college range
DELETE /placement-officer/prn-ranges/{range_id} - Delete own college range
"""

from typing import List

from fastapi import APIRouter, Depends

from portal.core.auth import get_current_super_admin, get_current_placement_officer
from portal.api.dependencies import get_range_registry
from portal.models.domain import Actor
from portal.services.range_registry import RangeRegistry
from portal.schemas.schemas import (
    PRNRangeCreate, PRNRangeUpdate, PRNRangeResponse, PRNRangeListResponse,
    RangeStudentResponse, MessageResponse
)

super_admin_router = APIRouter(prefix="/super-admin/prn-ranges", tags=["PRN Ranges (Super Admin)"])
placement_officer_router = APIRouter(prefix="/placement-officer/prn-ranges", tags=["PRN Ranges (Placement Officer)"])


# ============================================================
# SUPER ADMIN
# ============================================================

@super_admin_router.get("", response_model=PRNRangeListResponse)
async def list_all_ranges(
    actor: Actor = Depends(get_current_super_admin),
    registry: RangeRegistry = Depends(get_range_registry),
):
    ranges = registry.list_ranges()
    return PRNRangeListResponse(ranges=[PRNRangeResponse.from_range(r) for r in ranges], total=len(ranges))


@super_admin_router.post("", response_model=PRNRangeResponse, status_code=201)
async def add_range(
    data: PRNRangeCreate,
    actor: Actor = Depends(get_current_super_admin),
    registry: RangeRegistry = Depends(get_range_registry),
):
    """Leave college_id empty for a range that applies to every college."""
    return PRNRangeResponse.from_range(registry.add_range(data.to_spec(), actor))


@super_admin_router.put("/{range_id}", response_model=PRNRangeResponse)
async def update_range(
    range_id: int,
    data: PRNRangeUpdate,
    actor: Actor = Depends(get_current_super_admin),
    registry: RangeRegistry = Depends(get_range_registry),
):
    """
    Partial update. Send is_enabled=false with a disabled_reason to disable;
    students covered only by this range are deactivated.
    """
    return PRNRangeResponse.from_range(registry.update_range(range_id, data.to_patch(), actor))


@super_admin_router.delete("/{range_id}", response_model=MessageResponse)
async def delete_range(
    range_id: int,
    actor: Actor = Depends(get_current_super_admin),
    registry: RangeRegistry = Depends(get_range_registry),
):
    deleted = registry.delete_range(range_id, actor)
    return MessageResponse(message=f"Deleted {deleted.label()}")


@super_admin_router.get("/{range_id}/students", response_model=List[RangeStudentResponse])
async def list_range_students(
    range_id: int,
    actor: Actor = Depends(get_current_super_admin),
    registry: RangeRegistry = Depends(get_range_registry),
):
    return registry.students_in_range(range_id)


# ============================================================
# PLACEMENT OFFICER
# ============================================================

@placement_officer_router.get("", response_model=PRNRangeListResponse)
async def list_college_ranges(
    actor: Actor = Depends(get_current_placement_officer),
    registry: RangeRegistry = Depends(get_range_registry),
):
    """Own college's ranges and global (super admin) ranges, the latter read-only."""
    ranges = registry.list_ranges(institution_id=actor.institution_id)
    return PRNRangeListResponse(ranges=[PRNRangeResponse.from_range(r) for r in ranges], total=len(ranges))


@placement_officer_router.post("", response_model=PRNRangeResponse, status_code=201)
async def add_college_range(
    data: PRNRangeCreate,
    actor: Actor = Depends(get_current_placement_officer),
    registry: RangeRegistry = Depends(get_range_registry),
):
    spec = data.to_spec()
    if spec.institution_id is None:
        spec = spec.model_copy(update={"institution_id": actor.institution_id})
    return PRNRangeResponse.from_range(registry.add_range(spec, actor))


@placement_officer_router.put("/{range_id}", response_model=PRNRangeResponse)
async def update_college_range(
    range_id: int,
    data: PRNRangeUpdate,
    actor: Actor = Depends(get_current_placement_officer),
    registry: RangeRegistry = Depends(get_range_registry),
):
    return PRNRangeResponse.from_range(registry.update_range(range_id, data.to_patch(), actor))


@placement_officer_router.delete("/{range_id}", response_model=MessageResponse)
async def delete_college_range(
    range_id: int,
    actor: Actor = Depends(get_current_placement_officer),
    registry: RangeRegistry = Depends(get_range_registry),
):
    deleted = registry.delete_range(range_id, actor)
    return MessageResponse(message=f"Deleted {deleted.label()}")
