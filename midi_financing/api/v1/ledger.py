"""Operator recovery of approval credits that exhausted their retries"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from midi_financing.api.dependencies import get_financing_service, get_request_id
from midi_financing.api.v1.errors import domain_http_error, unexpected_http_error
from midi_financing.api.v1.schemas import AbandonLedgerEffectRequest, FinancingRequestResponse
from midi_financing.domain.exceptions import DomainException
from midi_financing.domain.lifecycle import FinancingService
from midi_financing.infrastructure.database.session import get_db
from midi_financing.infrastructure.observability.logging import log_ledger_effect

router = APIRouter()


@router.post(
    "/financing-requests/{financing_request_id}/ledger-effect/retry",
    response_model=FinancingRequestResponse,
)
async def retry_ledger_effect(
    financing_request_id: str,
    request: Request,
    db: Session = Depends(get_db),
    service: FinancingService = Depends(get_financing_service),
):
    """Re-drive the approval credit with its original idempotency key"""
    request_id = get_request_id(request)

    try:
        financing_request = await service.retry_ledger_effect(financing_request_id)
    except DomainException as e:
        raise domain_http_error(e, db, request_id)
    except Exception as e:
        raise unexpected_http_error(e, db, request_id)

    log_ledger_effect(
        request_id, financing_request.id, financing_request.applicant_id, financing_request.ledger_effect_applied
    )
    return FinancingRequestResponse.from_domain(financing_request)


@router.post(
    "/financing-requests/{financing_request_id}/ledger-effect/abandon",
    response_model=FinancingRequestResponse,
)
async def abandon_ledger_effect(
    financing_request_id: str,
    request_body: AbandonLedgerEffectRequest,
    request: Request,
    db: Session = Depends(get_db),
    service: FinancingService = Depends(get_financing_service),
):
    """Give up a pending approval credit; recorded in the audit trail"""
    request_id = get_request_id(request)

    try:
        financing_request = await service.abandon_ledger_effect(
            financing_request_id, request_body.operator_id, request_body.reason
        )
    except DomainException as e:
        raise domain_http_error(e, db, request_id)
    except Exception as e:
        raise unexpected_http_error(e, db, request_id)

    return FinancingRequestResponse.from_domain(financing_request)
