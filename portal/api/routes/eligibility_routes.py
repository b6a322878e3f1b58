"""
Eligibility Routes

POST /eligibility/check - Is a PRN whitelisted (for a college)?
"""

from fastapi import APIRouter, Depends

from portal.api.dependencies import get_eligibility_resolver
from portal.services.eligibility import EligibilityResolver
from portal.schemas.schemas import EligibilityCheckRequest, EligibilityCheckResponse

router = APIRouter(prefix="/eligibility", tags=["Eligibility"])


@router.post("/check", response_model=EligibilityCheckResponse)
async def check_eligibility(
    request: EligibilityCheckRequest,
    resolver: EligibilityResolver = Depends(get_eligibility_resolver),
):
    """Checked before registration; always reflects the current ranges."""
    verdict = resolver.resolve(request.prn, request.college_id)
    return EligibilityCheckResponse(
        prn=verdict.prn,
        eligible=verdict.matched,
        matching_range_id=verdict.matching_range_id,
        scope=verdict.scope.value if verdict.scope else None,
        college_id=verdict.institution_id,
    )
