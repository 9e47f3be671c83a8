"""POST /v1/financing-requests/{id}/repayments - Repayment endpoint"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from midi_financing.api.dependencies import get_financing_service, get_request_id
from midi_financing.api.v1.errors import domain_http_error, unexpected_http_error
from midi_financing.api.v1.schemas import FinancingRequestResponse, RepaymentRequest
from midi_financing.domain.exceptions import DomainException, ExcessiveRepayment, InsufficientFunds
from midi_financing.domain.lifecycle import FinancingService
from midi_financing.infrastructure.database.session import get_db
from midi_financing.infrastructure.observability.logging import log_repayment
from midi_financing.infrastructure.observability.metrics import repayment_counter

router = APIRouter()


@router.post("/financing-requests/{financing_request_id}/repayments", response_model=FinancingRequestResponse)
async def apply_repayment(
    financing_request_id: str,
    request_body: RepaymentRequest,
    request: Request,
    db: Session = Depends(get_db),
    service: FinancingService = Depends(get_financing_service),
):
    """Debit the applicant and add the amount to the request's repaid total"""
    request_id = get_request_id(request)

    try:
        financing_request = await service.apply_repayment(
            financing_request_id, request_body.amount, request_body.idempotency_key
        )
    except InsufficientFunds as e:
        repayment_counter.labels(outcome="insufficient_funds").inc()
        raise domain_http_error(e, db, request_id)
    except ExcessiveRepayment as e:
        repayment_counter.labels(outcome="excessive").inc()
        raise domain_http_error(e, db, request_id)
    except DomainException as e:
        raise domain_http_error(e, db, request_id)
    except Exception as e:
        raise unexpected_http_error(e, db, request_id)

    repayment_counter.labels(outcome="applied").inc()
    log_repayment(request_id, financing_request.id, request_body.amount, financing_request.repaid_amount)
    return FinancingRequestResponse.from_domain(financing_request)
