"""Financing request submission, scoring retry and lookup endpoints"""

import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from midi_financing.api.dependencies import get_financing_service, get_request_id
from midi_financing.api.v1.errors import domain_http_error, unexpected_http_error
from midi_financing.api.v1.schemas import FinancingRequestList, FinancingRequestResponse, SubmitRequest
from midi_financing.domain.exceptions import DomainException, RequestNotFound
from midi_financing.domain.lifecycle import FinancingService
from midi_financing.domain.models import FinancingRequest, RequestStatus
from midi_financing.infrastructure.database.session import get_db
from midi_financing.infrastructure.observability.logging import log_decision, log_ledger_effect
from midi_financing.infrastructure.observability.metrics import record_decision

router = APIRouter()


def _record_outcome(request_id: str, financing_request: FinancingRequest, start_time: float) -> None:
    duration_ms = (time.time() - start_time) * 1000
    record_decision(
        financing_request.product_type.value,
        financing_request.status.value,
        financing_request.requested_amount,
    )
    log_decision(
        request_id,
        financing_request.id,
        financing_request.applicant_id,
        financing_request.status.value,
        financing_request.scores.risk.value if financing_request.scores else None,
        duration_ms,
    )
    if financing_request.status == RequestStatus.APPROVED:
        log_ledger_effect(
            request_id, financing_request.id, financing_request.applicant_id, financing_request.ledger_effect_applied
        )


@router.post("/financing-requests", response_model=FinancingRequestResponse, status_code=201)
async def submit_financing_request(
    request_body: SubmitRequest,
    request: Request,
    db: Session = Depends(get_db),
    service: FinancingService = Depends(get_financing_service),
):
    """
    Submit a purchase credit or Islamic financing request.

    Flow:
    1. Validate parameters and capture the applicant snapshot
    2. Persist the request as submitted
    3. Score, decide and record the outcome
    4. Post the approval credit when auto-approved
    5. Return the request in its new status
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        financing_request = await service.submit_request(request_body.applicant_id, request_body.to_params())
    except DomainException as e:
        raise domain_http_error(e, db, request_id)
    except Exception as e:
        raise unexpected_http_error(e, db, request_id)

    _record_outcome(request_id, financing_request, start_time)
    return FinancingRequestResponse.from_domain(financing_request)


@router.post("/financing-requests/{financing_request_id}/scoring", response_model=FinancingRequestResponse)
async def retry_scoring(
    financing_request_id: str,
    request: Request,
    db: Session = Depends(get_db),
    service: FinancingService = Depends(get_financing_service),
):
    """Score a request that was left in submitted by an unavailable scoring source"""
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        financing_request = await service.retry_scoring(financing_request_id)
    except DomainException as e:
        raise domain_http_error(e, db, request_id)
    except Exception as e:
        raise unexpected_http_error(e, db, request_id)

    _record_outcome(request_id, financing_request, start_time)
    return FinancingRequestResponse.from_domain(financing_request)


@router.get("/financing-requests", response_model=FinancingRequestList)
def list_financing_requests(
    applicant_id: Optional[str] = Query(None, description="Applicant identifier"),
    status: Optional[RequestStatus] = Query(None, description="Lifecycle status"),
    limit: int = Query(50, ge=1, le=200),
    service: FinancingService = Depends(get_financing_service),
):
    """Retrieve recent financing requests, newest first"""
    requests = service.list_requests(applicant_id=applicant_id, status=status, limit=limit)
    return FinancingRequestList(requests=[FinancingRequestResponse.from_domain(r) for r in requests])


@router.get("/financing-requests/{financing_request_id}", response_model=FinancingRequestResponse)
def get_financing_request(financing_request_id: str, service: FinancingService = Depends(get_financing_service)):
    """Retrieve a request with its scores, reason and repayment progress"""
    try:
        financing_request = service.get_request(financing_request_id)
    except RequestNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return FinancingRequestResponse.from_domain(financing_request)
