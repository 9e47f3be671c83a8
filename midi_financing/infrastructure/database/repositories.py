"""Data access layer: request store, account directory, ledger and transaction log"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from midi_financing.domain.exceptions import ApplicantNotFound, InsufficientFunds, LedgerUnavailable
from midi_financing.domain.models import (
    AccountTransaction,
    AccountView,
    ApplicantSnapshot,
    DecisionAuditEntry,
    FinancingParams,
    FinancingRequest,
    Installment,
    IslamicFinancing,
    ProductType,
    PurchaseCredit,
    RepaymentFrequency,
    RepaymentPlan,
    RequestStatus,
    ScoreDetail,
    ScoreSet,
)
from midi_financing.domain.snapshot import is_personalized_alias
from midi_financing.infrastructure.database.models import (
    Account,
    AccountTransactionRecord,
    DecisionAudit,
    FinancingInstallment,
    FinancingPlan,
    FinancingRequestRecord,
    LedgerEntry,
)

# Reads go through populate_existing, so the identity map is never trusted after an UPDATE
SYNC = {"synchronize_session": False}


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def snapshot_to_json(snapshot: ApplicantSnapshot) -> dict:
    return {
        "current_balance": snapshot.current_balance,
        "alias_is_personalized": snapshot.alias_is_personalized,
        "recent_transactions": [
            {
                "amount": t.amount,
                "type": t.type,
                "date": t.date.isoformat(),
                "counterparty": t.counterparty,
            }
            for t in snapshot.recent_transactions
        ],
    }


def snapshot_from_json(data: dict) -> ApplicantSnapshot:
    return ApplicantSnapshot(
        current_balance=data["current_balance"],
        alias_is_personalized=data["alias_is_personalized"],
        recent_transactions=tuple(
            AccountTransaction(
                amount=t["amount"],
                type=t["type"],
                date=_parse_datetime(t["date"]),
                counterparty=t.get("counterparty", ""),
            )
            for t in data["recent_transactions"]
        ),
    )


def scores_to_json(scores: ScoreSet) -> dict:
    return {
        name: {"value": detail.value, "explanation": detail.explanation}
        for name, detail in (
            ("activity", scores.activity),
            ("behavioral", scores.behavioral),
            ("socio_professional", scores.socio_professional),
            ("risk", scores.risk),
        )
    }


def scores_from_json(data: dict) -> ScoreSet:
    return ScoreSet(
        activity=ScoreDetail(**data["activity"]),
        behavioral=ScoreDetail(**data["behavioral"]),
        socio_professional=ScoreDetail(**data["socio_professional"]),
        risk=ScoreDetail(**data["risk"]),
    )


class SqlRequestStore:
    """Repository for financing requests, their plans and audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def save(self, request: FinancingRequest) -> None:
        """Persist a newly submitted request"""
        params = request.params
        product = params.product
        record = FinancingRequestRecord(
            id=request.id,
            applicant_id=request.applicant_id,
            product_type=params.product_type.value,
            counterparty_id=product.counterparty_id if isinstance(product, PurchaseCredit) else None,
            purpose=product.purpose if isinstance(product, IslamicFinancing) else None,
            financing_type=product.financing_type if isinstance(product, IslamicFinancing) else None,
            requested_amount=params.requested_amount,
            down_payment=params.down_payment,
            installments_count=params.installments_count,
            repayment_frequency=params.repayment_frequency.value,
            first_installment_date=params.first_installment_date,
            margin_rate_per_period=params.margin_rate_per_period,
            snapshot=snapshot_to_json(request.snapshot),
            status=request.status.value,
            reason=request.reason,
            repaid_amount=request.repaid_amount,
            ledger_effect_applied=request.ledger_effect_applied,
            ledger_effect_abandoned=request.ledger_effect_abandoned,
            request_date=request.request_date,
        )
        self.db.add(record)
        self.db.flush()

    def load(self, request_id: str) -> Optional[FinancingRequest]:
        record = self.db.get(FinancingRequestRecord, request_id, populate_existing=True)
        if record is None:
            return None
        return self._to_domain(record)

    def record_decision(
        self,
        request_id: str,
        scores: ScoreSet,
        status: RequestStatus,
        reason: str,
        plan: Optional[RepaymentPlan],
    ) -> bool:
        """Write scores, status, reason and plan in one step, only from submitted"""
        result = self.db.execute(
            update(FinancingRequestRecord)
            .where(
                FinancingRequestRecord.id == request_id,
                FinancingRequestRecord.status == RequestStatus.SUBMITTED.value,
                FinancingRequestRecord.scores.is_(None),
            )
            .values(scores=scores_to_json(scores), status=status.value, reason=reason)
            .execution_options(**SYNC)
        )
        if result.rowcount != 1:
            return False
        if plan is not None:
            self._create_plan(request_id, plan)
        self.db.flush()
        return True

    def update_status(
        self,
        request_id: str,
        expected_status: RequestStatus,
        new_status: RequestStatus,
        reason: str,
        plan: Optional[RepaymentPlan] = None,
        reviewer_id: Optional[str] = None,
    ) -> bool:
        values = {"status": new_status.value, "reason": reason}
        if reviewer_id is not None:
            values.update(reviewer_id=reviewer_id, reviewed_at=datetime.now(timezone.utc))

        result = self.db.execute(
            update(FinancingRequestRecord)
            .where(
                FinancingRequestRecord.id == request_id,
                FinancingRequestRecord.status == expected_status.value,
            )
            .values(**values)
            .execution_options(**SYNC)
        )
        if result.rowcount != 1:
            return False
        if plan is not None and self._get_plan(request_id) is None:
            self._create_plan(request_id, plan)
        self.db.flush()
        return True

    def mark_ledger_effect_applied(self, request_id: str) -> bool:
        """Check-and-set of the one-time approval credit flag"""
        result = self.db.execute(
            update(FinancingRequestRecord)
            .where(
                FinancingRequestRecord.id == request_id,
                FinancingRequestRecord.status == RequestStatus.APPROVED.value,
                FinancingRequestRecord.ledger_effect_applied.is_(False),
                FinancingRequestRecord.ledger_effect_abandoned.is_(False),
            )
            .values(ledger_effect_applied=True)
            .execution_options(**SYNC)
        )
        return result.rowcount == 1

    def mark_ledger_effect_abandoned(self, request_id: str) -> bool:
        result = self.db.execute(
            update(FinancingRequestRecord)
            .where(
                FinancingRequestRecord.id == request_id,
                FinancingRequestRecord.ledger_effect_applied.is_(False),
                FinancingRequestRecord.ledger_effect_abandoned.is_(False),
            )
            .values(ledger_effect_abandoned=True)
            .execution_options(**SYNC)
        )
        return result.rowcount == 1

    def add_repayment(self, request_id: str, expected_repaid: int, new_repaid: int) -> bool:
        """Compare-and-swap on the running repaid total"""
        result = self.db.execute(
            update(FinancingRequestRecord)
            .where(
                FinancingRequestRecord.id == request_id,
                FinancingRequestRecord.repaid_amount == expected_repaid,
                FinancingRequestRecord.requested_amount >= new_repaid,
            )
            .values(repaid_amount=new_repaid)
            .execution_options(**SYNC)
        )
        return result.rowcount == 1

    def list(
        self,
        applicant_id: Optional[str] = None,
        status: Optional[RequestStatus] = None,
        limit: int = 50,
    ) -> List[FinancingRequest]:
        """Fetch requests, newest first"""
        query = self.db.query(FinancingRequestRecord).populate_existing()
        if applicant_id is not None:
            query = query.filter(FinancingRequestRecord.applicant_id == applicant_id)
        if status is not None:
            query = query.filter(FinancingRequestRecord.status == status.value)
        records = query.order_by(FinancingRequestRecord.request_date.desc()).limit(limit).all()
        return [self._to_domain(r) for r in records]

    def append_audit(self, entry: DecisionAuditEntry) -> None:
        self.db.add(
            DecisionAudit(
                request_id=entry.request_id,
                actor=entry.actor,
                from_status=entry.from_status.value if entry.from_status else None,
                to_status=entry.to_status.value,
                reason=entry.reason,
            )
        )
        self.db.flush()

    def audit_trail(self, request_id: str) -> List[DecisionAuditEntry]:
        records = (
            self.db.query(DecisionAudit)
            .filter(DecisionAudit.request_id == request_id)
            .order_by(DecisionAudit.id)
            .all()
        )
        return [
            DecisionAuditEntry(
                request_id=r.request_id,
                actor=r.actor,
                from_status=RequestStatus(r.from_status) if r.from_status else None,
                to_status=RequestStatus(r.to_status),
                reason=r.reason,
                created_at=r.created_at,
            )
            for r in records
        ]

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def _get_plan(self, request_id: str) -> Optional[FinancingPlan]:
        return self.db.query(FinancingPlan).filter(FinancingPlan.request_id == request_id).first()

    def _create_plan(self, request_id: str, plan: RepaymentPlan) -> FinancingPlan:
        """Create repayment plan with installments"""
        db_plan = FinancingPlan(
            request_id=request_id,
            principal=plan.principal,
            margin_rate_per_period=plan.margin_rate_per_period,
            frequency=plan.frequency.value,
        )
        for inst in plan.installments:
            db_plan.installments.append(
                FinancingInstallment(
                    sequence_number=inst.sequence_number,
                    due_date=inst.due_date,
                    principal_portion=inst.principal_portion,
                    margin_portion=inst.margin_portion,
                )
            )
        self.db.add(db_plan)
        return db_plan

    def _to_domain(self, record: FinancingRequestRecord) -> FinancingRequest:
        if record.product_type == ProductType.PURCHASE_CREDIT.value:
            product = PurchaseCredit(counterparty_id=record.counterparty_id)
        else:
            product = IslamicFinancing(purpose=record.purpose, financing_type=record.financing_type)

        params = FinancingParams(
            product=product,
            requested_amount=record.requested_amount,
            down_payment=record.down_payment,
            installments_count=record.installments_count,
            repayment_frequency=RepaymentFrequency(record.repayment_frequency),
            first_installment_date=record.first_installment_date,
            margin_rate_per_period=Decimal(record.margin_rate_per_period),
        )

        plan = None
        db_plan = self._get_plan(record.id)
        if db_plan is not None:
            plan = RepaymentPlan(
                principal=db_plan.principal,
                margin_rate_per_period=db_plan.margin_rate_per_period,
                frequency=RepaymentFrequency(db_plan.frequency),
                installments=tuple(
                    Installment(
                        sequence_number=i.sequence_number,
                        due_date=i.due_date,
                        principal_portion=i.principal_portion,
                        margin_portion=i.margin_portion,
                    )
                    for i in sorted(db_plan.installments, key=lambda i: i.sequence_number)
                ),
            )

        return FinancingRequest(
            id=record.id,
            applicant_id=record.applicant_id,
            params=params,
            snapshot=snapshot_from_json(record.snapshot),
            request_date=record.request_date,
            status=RequestStatus(record.status),
            scores=scores_from_json(record.scores) if record.scores else None,
            reason=record.reason,
            repayment_plan=plan,
            repaid_amount=record.repaid_amount,
            ledger_effect_applied=record.ledger_effect_applied,
            ledger_effect_abandoned=record.ledger_effect_abandoned,
            reviewer_id=record.reviewer_id,
            reviewed_at=record.reviewed_at,
        )


class SqlAccountDirectory:
    """Account lookups for the applicant snapshot"""

    def __init__(self, db: Session):
        self.db = db

    def get_account(self, account_id: str, limit: Optional[int] = None) -> Optional[AccountView]:
        account = self.db.get(Account, account_id, populate_existing=True)
        if account is None:
            return None

        query = (
            self.db.query(AccountTransactionRecord)
            .filter(AccountTransactionRecord.account_id == account_id)
            .order_by(AccountTransactionRecord.occurred_at.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        records = query.all()
        return AccountView(
            account_id=account.id,
            alias=account.alias,
            balance=account.balance,
            alias_is_personalized=is_personalized_alias(account.alias),
            transactions=[
                AccountTransaction(amount=r.amount, type=r.type, date=r.occurred_at, counterparty=r.counterparty)
                for r in records
            ],
        )


class SqlAccountLedger:
    """Balance movements keyed by idempotency key; duplicates are no-ops"""

    def __init__(self, db: Session):
        self.db = db

    def get_balance(self, account_id: str) -> int:
        account = self.db.get(Account, account_id, populate_existing=True)
        if account is None:
            raise ApplicantNotFound(f"No account {account_id}")
        return account.balance

    def credit(self, account_id: str, amount: int, idempotency_key: str) -> bool:
        try:
            if self._already_posted(idempotency_key):
                return False
            result = self.db.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(balance=Account.balance + amount)
                .execution_options(**SYNC)
            )
            if result.rowcount != 1:
                raise ApplicantNotFound(f"No account {account_id}")
            self.db.add(
                LedgerEntry(account_id=account_id, direction="credit", amount=amount, idempotency_key=idempotency_key)
            )
            self.db.flush()
            return True
        except IntegrityError:
            # Same key posted concurrently by another session
            self.db.rollback()
            return False
        except OperationalError as e:
            self.db.rollback()
            raise LedgerUnavailable(f"Ledger credit failed: {e}") from e

    def debit(self, account_id: str, amount: int, idempotency_key: str) -> bool:
        try:
            if self._already_posted(idempotency_key):
                return False
            result = self.db.execute(
                update(Account)
                .where(Account.id == account_id, Account.balance >= amount)
                .values(balance=Account.balance - amount)
                .execution_options(**SYNC)
            )
            if result.rowcount != 1:
                balance = self.get_balance(account_id)
                raise InsufficientFunds(f"Balance {balance} is lower than {amount}")
            self.db.add(
                LedgerEntry(account_id=account_id, direction="debit", amount=amount, idempotency_key=idempotency_key)
            )
            self.db.flush()
            return True
        except IntegrityError:
            self.db.rollback()
            return False
        except OperationalError as e:
            self.db.rollback()
            raise LedgerUnavailable(f"Ledger debit failed: {e}") from e

    def _already_posted(self, idempotency_key: str) -> bool:
        return (
            self.db.query(LedgerEntry.id).filter(LedgerEntry.idempotency_key == idempotency_key).first()
            is not None
        )


class SqlTransactionLog:
    """Append-only account transaction log"""

    def __init__(self, db: Session):
        self.db = db

    def append(self, account_id: str, record: AccountTransaction) -> None:
        self.db.add(
            AccountTransactionRecord(
                account_id=account_id,
                type=record.type,
                amount=record.amount,
                counterparty=record.counterparty,
                occurred_at=record.date,
            )
        )
        self.db.flush()
