"""Translation of domain exceptions to HTTP errors"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from midi_financing.domain.exceptions import (
    ApplicantNotFound,
    ConcurrentUpdate,
    DomainException,
    ExcessiveRepayment,
    InsufficientFunds,
    InvalidTransition,
    LedgerWriteError,
    RequestNotFound,
    ScoringUnavailable,
    ValidationError,
)
from midi_financing.infrastructure.observability.metrics import scoring_failure_counter

STATUS_CODES = (
    (ValidationError, 422),
    (ApplicantNotFound, 404),
    (RequestNotFound, 404),
    (InvalidTransition, 409),
    (ConcurrentUpdate, 409),
    (InsufficientFunds, 402),
    (ExcessiveRepayment, 422),
    (ScoringUnavailable, 503),
    (LedgerWriteError, 502),
)


def domain_http_error(exc: DomainException, db: Session, request_id: str) -> HTTPException:
    """Roll back the unit of work and build the HTTP error for a domain failure"""
    db.rollback()
    status_code = next((code for exc_type, code in STATUS_CODES if isinstance(exc, exc_type)), 500)

    if isinstance(exc, ScoringUnavailable):
        scoring_failure_counter.inc()
        logging.error(f"Scoring unavailable: {exc}", extra={"request_id": request_id})
        return HTTPException(
            status_code=status_code,
            detail={"message": "Scoring service unavailable", "financing_request_id": exc.request_id},
        )

    if isinstance(exc, LedgerWriteError):
        logging.error(f"Ledger write failed: {exc}", extra={"request_id": request_id})
        return HTTPException(
            status_code=status_code,
            detail={"message": "Ledger credit pending", "financing_request_id": exc.request_id},
        )

    if isinstance(exc, ConcurrentUpdate):
        logging.warning(f"Concurrent update: {exc}", extra={"request_id": request_id})
        return HTTPException(
            status_code=status_code,
            detail={"message": "Concurrent update, retry the request", "retryable": True},
            headers={"Retry-After": "1"},
        )

    logging.warning(f"{type(exc).__name__}: {exc}", extra={"request_id": request_id})
    return HTTPException(status_code=status_code, detail=str(exc))


def unexpected_http_error(exc: Exception, db: Session, request_id: str) -> HTTPException:
    db.rollback()
    logging.exception(f"Unexpected error: {exc}", extra={"request_id": request_id})
    return HTTPException(status_code=500, detail="Internal server error")
