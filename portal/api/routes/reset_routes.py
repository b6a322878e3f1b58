"""
Academic Year Reset Routes (super admin only)

GET /super-admin/academic-year-reset/preview - Counts of what a reset would touch
POST /super-admin/academic-year-reset/execute - Run the reset through all three gates
"""

import logging

from fastapi import APIRouter, Depends

from portal.core.auth import PasswordVerifier, get_current_super_admin
from portal.api.dependencies import get_preview_calculator, get_password_verifier, get_reset_executor
from portal.models.domain import Actor, ResetPreview
from portal.services.reset_executor import AcademicYearReset, ResetExecutor
from portal.services.reset_preview import ResetPreviewCalculator
from portal.schemas.schemas import ResetExecuteRequest, ResetExecuteResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/super-admin/academic-year-reset", tags=["Academic Year Reset"])


@router.get("/preview", response_model=ResetPreview)
async def preview_reset(
    actor: Actor = Depends(get_current_super_admin),
    calculator: ResetPreviewCalculator = Depends(get_preview_calculator),
):
    """Advisory counts; execution acts on whatever exists when it runs."""
    return calculator.calculate()


@router.post("/execute", response_model=ResetExecuteResponse)
def execute_reset(
    request: ResetExecuteRequest,
    actor: Actor = Depends(get_current_super_admin),
    calculator: ResetPreviewCalculator = Depends(get_preview_calculator),
    verifier: PasswordVerifier = Depends(get_password_verifier),
    executor: ResetExecutor = Depends(get_reset_executor),
):
    """
    Irreversible. Requires:
    - academic_year in YYYY-YY format, with something left to reset
    - confirmation_text exactly "RESET {academic_year}"
    - the caller's current password

    Runs in the threadpool: the transaction and asset cleanup block.
    """
    logger.warning("Academic year reset %s requested by user %s", request.academic_year, actor.user_id)
    wizard = AcademicYearReset(actor, calculator, verifier, executor)
    result = wizard.run(request.academic_year, request.confirmation_text, request.password)

    message = f"Academic year reset completed for {result.academic_year}"
    if result.external_cleanup.failed:
        message += f"; {result.external_cleanup.failed} photos need manual cleanup"
    return ResetExecuteResponse(message=message, data=result)
