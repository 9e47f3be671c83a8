"""GET /v1/financing-requests/{id}/plan - Fetch repayment plan details"""

from fastapi import APIRouter, Depends, HTTPException

from midi_financing.api.dependencies import get_financing_service
from midi_financing.api.v1.schemas import PlanResponse
from midi_financing.domain.exceptions import RequestNotFound
from midi_financing.domain.lifecycle import FinancingService

router = APIRouter()


@router.get("/financing-requests/{financing_request_id}/plan", response_model=PlanResponse)
def get_plan(financing_request_id: str, service: FinancingService = Depends(get_financing_service)):
    """
    Retrieve the repayment plan of an approved request.

    Returns:
        Principal, margin and the installment schedule
    """
    try:
        financing_request = service.get_request(financing_request_id)
    except RequestNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    if financing_request.repayment_plan is None:
        raise HTTPException(status_code=404, detail="Plan not found")

    return PlanResponse.from_domain(financing_request.id, financing_request.repayment_plan)
