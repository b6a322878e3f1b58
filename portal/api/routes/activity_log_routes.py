"""
Activity Log Routes

GET /super-admin/activity-logs - Audit trail, newest first
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from portal.core.auth import get_current_super_admin
from portal.api.dependencies import get_audit_logger
from portal.models.domain import Actor
from portal.services.audit_logger import AuditLogger
from portal.schemas.schemas import ActivityLogResponse, ActivityLogListResponse

router = APIRouter(prefix="/super-admin/activity-logs", tags=["Activity Logs"])


@router.get("", response_model=ActivityLogListResponse)
async def list_activity_logs(
    action_type: Optional[str] = Query(None, description="e.g. ADD_PRN_RANGE, ACADEMIC_YEAR_RESET"),
    user_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(get_current_super_admin),
    audit: AuditLogger = Depends(get_audit_logger),
):
    entries = audit.list_entries(
        action_kind=action_type,
        actor=user_id,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    logs = [
        ActivityLogResponse(
            id=e.id,
            user_id=e.actor,
            action_type=e.action_kind,
            action_description=e.description,
            entity_type=e.target_type,
            entity_id=e.target_id,
            metadata=e.metadata,
            created_at=e.timestamp,
        )
        for e in entries
    ]
    return ActivityLogListResponse(
        logs=logs,
        total=audit.count(action_kind=action_type, actor=user_id),
        page=page,
        page_size=page_size,
    )
