"""Collaborator interfaces consumed by the financing engine"""

from typing import List, Optional, Protocol

from midi_financing.domain.models import (
    AccountTransaction,
    AccountView,
    ApplicantSnapshot,
    DecisionAuditEntry,
    FinancingParams,
    FinancingRequest,
    ProductPolicy,
    RepaymentPlan,
    RequestStatus,
    ScoreSet,
)


class AccountDirectory(Protocol):
    def get_account(self, account_id: str, limit: Optional[int] = None) -> Optional[AccountView]:
        """Account with its history most-recent-first, at most `limit` entries when given"""
        ...


class AccountLedger(Protocol):
    def get_balance(self, account_id: str) -> int: ...

    def credit(self, account_id: str, amount: int, idempotency_key: str) -> bool:
        """Returns False when the idempotency key was already posted"""
        ...

    def debit(self, account_id: str, amount: int, idempotency_key: str) -> bool:
        """Raises InsufficientFunds when the balance is lower than amount; False on duplicate key"""
        ...


class TransactionLog(Protocol):
    def append(self, account_id: str, record: AccountTransaction) -> None: ...


class ScoringSource(Protocol):
    async def score(
        self,
        snapshot: ApplicantSnapshot,
        params: FinancingParams,
        policy: ProductPolicy,
    ) -> ScoreSet: ...


class RequestStore(Protocol):
    """Persistence for financing requests; conditional updates return False when the guard fails"""

    def save(self, request: FinancingRequest) -> None: ...

    def load(self, request_id: str) -> Optional[FinancingRequest]: ...

    def record_decision(
        self,
        request_id: str,
        scores: ScoreSet,
        status: RequestStatus,
        reason: str,
        plan: Optional[RepaymentPlan],
    ) -> bool: ...

    def update_status(
        self,
        request_id: str,
        expected_status: RequestStatus,
        new_status: RequestStatus,
        reason: str,
        plan: Optional[RepaymentPlan] = None,
        reviewer_id: Optional[str] = None,
    ) -> bool: ...

    def mark_ledger_effect_applied(self, request_id: str) -> bool: ...

    def mark_ledger_effect_abandoned(self, request_id: str) -> bool: ...

    def add_repayment(self, request_id: str, expected_repaid: int, new_repaid: int) -> bool: ...

    def list(
        self,
        applicant_id: Optional[str] = None,
        status: Optional[RequestStatus] = None,
        limit: int = 50,
    ) -> List[FinancingRequest]: ...

    def append_audit(self, entry: DecisionAuditEntry) -> None: ...

    def audit_trail(self, request_id: str) -> List[DecisionAuditEntry]: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class LedgerGateway(Protocol):
    """Ledger as used by the lifecycle manager; approval credits are retried"""

    def get_balance(self, account_id: str) -> int: ...

    async def credit(self, account_id: str, amount: int, idempotency_key: str) -> bool: ...

    def debit(self, account_id: str, amount: int, idempotency_key: str) -> bool: ...
