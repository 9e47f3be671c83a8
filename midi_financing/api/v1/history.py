"""GET /v1/financing-requests/{id}/audit - Fetch the decision audit trail"""

from fastapi import APIRouter, Depends, HTTPException

from midi_financing.api.dependencies import get_financing_service
from midi_financing.api.v1.schemas import AuditTrailResponse
from midi_financing.domain.exceptions import RequestNotFound
from midi_financing.domain.lifecycle import FinancingService

router = APIRouter()


@router.get("/financing-requests/{financing_request_id}/audit", response_model=AuditTrailResponse)
def get_audit_trail(financing_request_id: str, service: FinancingService = Depends(get_financing_service)):
    """
    Retrieve every status change and ledger recovery action, oldest first.

    Returns:
        Audit entries with actor and justification
    """
    try:
        entries = service.get_audit_trail(financing_request_id)
    except RequestNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return AuditTrailResponse.from_domain(financing_request_id, entries)
