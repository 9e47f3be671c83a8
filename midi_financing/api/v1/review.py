"""POST /v1/financing-requests/{id}/review - Manual decision endpoint"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from midi_financing.api.dependencies import get_financing_service, get_request_id
from midi_financing.api.v1.errors import domain_http_error, unexpected_http_error
from midi_financing.api.v1.schemas import FinancingRequestResponse, ReviewRequest
from midi_financing.domain.exceptions import DomainException
from midi_financing.domain.lifecycle import FinancingService
from midi_financing.domain.models import RequestStatus
from midi_financing.infrastructure.database.session import get_db
from midi_financing.infrastructure.observability.logging import log_ledger_effect
from midi_financing.infrastructure.observability.metrics import manual_review_counter

router = APIRouter()


@router.post("/financing-requests/{financing_request_id}/review", response_model=FinancingRequestResponse)
async def review_financing_request(
    financing_request_id: str,
    request_body: ReviewRequest,
    request: Request,
    db: Session = Depends(get_db),
    service: FinancingService = Depends(get_financing_service),
):
    """
    Approve or reject a request held in review.

    Repeating the decision already recorded returns the request unchanged.
    An approval posts the ledger credit once.
    """
    request_id = get_request_id(request)
    decision = RequestStatus(request_body.decision)

    try:
        financing_request = await service.review_decision(
            financing_request_id, decision, request_body.reviewer_id, request_body.note
        )
    except DomainException as e:
        raise domain_http_error(e, db, request_id)
    except Exception as e:
        raise unexpected_http_error(e, db, request_id)

    manual_review_counter.labels(outcome=decision.value).inc()
    if decision == RequestStatus.APPROVED:
        log_ledger_effect(
            request_id, financing_request.id, financing_request.applicant_id, financing_request.ledger_effect_applied
        )
    return FinancingRequestResponse.from_domain(financing_request)
