"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Request parameters are invalid (amounts, installments, dates)"""

    pass


class ApplicantNotFound(DomainException):
    """Applicant identifier does not resolve to an account"""

    pass


class RequestNotFound(DomainException):
    """Financing request does not exist"""

    pass


class ScoringUnavailable(DomainException):
    """Scoring source timed out or failed; the request stays submitted"""

    def __init__(self, message: str, request_id: str | None = None):
        super().__init__(message)
        self.request_id = request_id


class InvalidTransition(DomainException):
    """State machine misuse, e.g. leaving a terminal status"""

    pass


class InsufficientFunds(DomainException):
    """Account balance is lower than the amount to debit"""

    pass


class ExcessiveRepayment(DomainException):
    """Repayment would push repaid amount above the requested amount"""

    pass


class LedgerUnavailable(DomainException):
    """Transient ledger failure, safe to retry with the same idempotency key"""

    pass


class LedgerWriteError(DomainException):
    """Approval credit could not be posted after all retries"""

    def __init__(self, message: str, request_id: str | None = None):
        super().__init__(message)
        self.request_id = request_id


class ConcurrentUpdate(DomainException):
    """Request kept changing under a write; safe to retry the call"""

    pass
