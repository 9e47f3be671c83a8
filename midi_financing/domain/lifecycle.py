"""Financing request lifecycle - decision state machine and exactly-once ledger effect"""

import asyncio
import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from midi_financing.config import Settings, settings as default_settings
from midi_financing.domain.decision import decide
from midi_financing.domain.exceptions import (
    ConcurrentUpdate,
    ExcessiveRepayment,
    InsufficientFunds,
    InvalidTransition,
    LedgerWriteError,
    RequestNotFound,
    ScoringUnavailable,
    ValidationError,
)
from midi_financing.domain.installments import build_repayment_plan
from midi_financing.domain.locks import KeyedLock
from midi_financing.domain.models import (
    AccountTransaction,
    Decision,
    DecisionAuditEntry,
    FinancingParams,
    FinancingRequest,
    IslamicFinancing,
    PurchaseCredit,
    RepaymentFrequency,
    RepaymentPlan,
    RequestStatus,
    ScoreSet,
)
from midi_financing.domain.ports import (
    AccountDirectory,
    LedgerGateway,
    RequestStore,
    ScoringSource,
    TransactionLog,
)
from midi_financing.domain.snapshot import build_applicant_snapshot

logger = logging.getLogger(__name__)

ENGINE_ACTOR = "engine"

# Guards against lost compare-and-swap races on repaid_amount across processes
MAX_REPAYMENT_ATTEMPTS = 3


def validate_params(params: FinancingParams) -> None:
    """Reject malformed requests before anything is scored or persisted"""
    if not isinstance(params.requested_amount, int) or isinstance(params.requested_amount, bool):
        raise ValidationError("Requested amount must be an integer amount of currency units")
    if params.requested_amount <= 0:
        raise ValidationError(f"Requested amount must be positive, got {params.requested_amount}")
    if not isinstance(params.down_payment, int) or params.down_payment < 0:
        raise ValidationError(f"Down payment must be a non-negative integer, got {params.down_payment}")
    if params.down_payment >= params.requested_amount:
        raise ValidationError("Down payment must be lower than the requested amount")
    if not isinstance(params.installments_count, int) or params.installments_count < 1:
        raise ValidationError(f"Installments count must be at least 1, got {params.installments_count}")
    if not isinstance(params.repayment_frequency, RepaymentFrequency):
        raise ValidationError(f"Unknown repayment frequency {params.repayment_frequency!r}")
    if not isinstance(params.first_installment_date, date):
        raise ValidationError("First installment date is malformed")

    rate = params.margin_rate_per_period
    if not isinstance(rate, Decimal) or not rate.is_finite() or rate < 0:
        raise ValidationError(f"Margin rate must be a finite non-negative decimal, got {rate!r}")

    product = params.product
    if isinstance(product, PurchaseCredit):
        if not product.counterparty_id:
            raise ValidationError("Purchase credit requires a merchant counterparty")
    elif isinstance(product, IslamicFinancing):
        if not product.purpose or not product.purpose.strip():
            raise ValidationError("Islamic financing requires a stated purpose")
    else:
        raise ValidationError(f"Unknown financing product {product!r}")


def compose_reason(decision: Decision, scores: ScoreSet) -> str:
    """PV justification: conclusion first, then the key points of the analysis"""
    return (
        f"{decision.reason} "
        f"Activity {scores.activity.value}/100: {scores.activity.explanation}. "
        f"Behavioral {scores.behavioral.value}/100: {scores.behavioral.explanation}. "
        f"Socio-professional {scores.socio_professional.value}/100: {scores.socio_professional.explanation}."
    )


def _credit_label(request: FinancingRequest) -> str:
    product = request.params.product
    if isinstance(product, PurchaseCredit):
        return f"Purchase credit at {product.counterparty_id}"
    return f"Islamic financing ({product.financing_type}): {product.purpose}"


class FinancingService:
    """
    Request lifecycle manager.

    States: submitted -> {review, approved, rejected}; review -> {approved, rejected}.
    Approved and rejected are terminal. Entering approved posts exactly one
    ledger credit of the requested amount, keyed by the request id.
    """

    def __init__(
        self,
        store: RequestStore,
        directory: AccountDirectory,
        ledger: LedgerGateway,
        transaction_log: TransactionLog,
        scoring_source: ScoringSource,
        locks: KeyedLock,
        config: Optional[Settings] = None,
    ):
        self.store = store
        self.directory = directory
        self.ledger = ledger
        self.transaction_log = transaction_log
        self.scoring_source = scoring_source
        self.locks = locks
        self.config = config or default_settings

    # ---- mutating entry points -------------------------------------------------

    async def submit_request(self, applicant_id: str, params: FinancingParams) -> FinancingRequest:
        """
        Submit, score and decide a new request.

        Flow:
        1. Validate parameters (nothing persisted on failure)
        2. Capture the applicant snapshot
        3. Persist the request as submitted
        4. Score with a bounded call, decide, record atomically
        5. Post the ledger credit if auto-approved

        Raises:
            ValidationError, ApplicantNotFound: Nothing persisted
            ScoringUnavailable: Request persisted as submitted, retry with retry_scoring
        """
        validate_params(params)
        snapshot = build_applicant_snapshot(self.directory, applicant_id, self.config.snapshot_window)

        request = FinancingRequest(
            id=str(uuid.uuid4()),
            applicant_id=applicant_id,
            params=params,
            snapshot=snapshot,
            request_date=datetime.now(timezone.utc),
        )
        self.store.save(request)
        self.store.append_audit(
            DecisionAuditEntry(request.id, ENGINE_ACTOR, None, RequestStatus.SUBMITTED, "Request submitted")
        )
        self.store.commit()

        logger.info(
            "Financing request submitted",
            extra={
                "request_id": request.id,
                "applicant_id": applicant_id,
                "product_type": params.product_type.value,
                "requested_amount": params.requested_amount,
            },
        )

        return await self._score_and_decide(request)

    async def retry_scoring(self, request_id: str) -> FinancingRequest:
        """Score a request left in submitted by an unavailable scoring source"""
        request = self.get_request(request_id)
        if request.status != RequestStatus.SUBMITTED:
            raise InvalidTransition(f"Request {request_id} is {request.status.value}, already scored")
        return await self._score_and_decide(request)

    async def review_decision(
        self,
        request_id: str,
        decision: RequestStatus,
        reviewer_id: str,
        note: Optional[str] = None,
    ) -> FinancingRequest:
        """
        Manual decision on a request in review.

        Repeating the decision already taken is a no-op (an approved request
        whose credit is still pending gets its credit re-driven). Any other
        transition out of a terminal status raises InvalidTransition.
        """
        if decision not in (RequestStatus.APPROVED, RequestStatus.REJECTED):
            raise ValidationError(f"Manual decision must be approved or rejected, got {decision}")
        if not reviewer_id:
            raise ValidationError("Reviewer id is required")

        async with self.locks.hold(request_id):
            request = self.get_request(request_id)

            if request.status == decision:
                logger.info(
                    "Repeated manual decision ignored",
                    extra={"request_id": request_id, "reviewer_id": reviewer_id, "status": decision.value},
                )
            elif request.status != RequestStatus.REVIEW:
                raise InvalidTransition(
                    f"Cannot move request {request_id} from {request.status.value} to {decision.value}"
                )
            else:
                plan = self._plan_for(request.params) if decision == RequestStatus.APPROVED else None
                reason = f"Manual decision '{decision.value}' by {reviewer_id}."
                if note:
                    reason = f"{reason} {note}"

                if not self.store.update_status(
                    request_id, RequestStatus.REVIEW, decision, reason, plan=plan, reviewer_id=reviewer_id
                ):
                    self.store.rollback()
                    raise InvalidTransition(f"Request {request_id} left review concurrently")

                self.store.append_audit(
                    DecisionAuditEntry(request_id, reviewer_id, RequestStatus.REVIEW, decision, reason)
                )
                self.store.commit()
                logger.info(
                    "Manual decision recorded",
                    extra={"request_id": request_id, "reviewer_id": reviewer_id, "status": decision.value},
                )

        if decision == RequestStatus.APPROVED:
            return await self._apply_ledger_effect(request_id, actor=reviewer_id)
        return self.get_request(request_id)

    async def apply_repayment(
        self,
        request_id: str,
        amount: int,
        idempotency_key: Optional[str] = None,
    ) -> FinancingRequest:
        """
        Debit the applicant and add to the request's repaid amount.

        Raises:
            InvalidTransition: Request is not approved
            ExcessiveRepayment: Would exceed the requested amount
            InsufficientFunds: Applicant balance is lower than amount
            ConcurrentUpdate: repaid_amount kept moving under the update
        """
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise ValidationError(f"Repayment amount must be a positive integer, got {amount!r}")

        async with self.locks.hold(request_id):
            for _ in range(MAX_REPAYMENT_ATTEMPTS):
                request = self.get_request(request_id)
                if request.status != RequestStatus.APPROVED:
                    raise InvalidTransition(f"Request {request_id} is {request.status.value}, not approved")
                if not request.ledger_effect_applied:
                    state = "abandoned" if request.ledger_effect_abandoned else "pending"
                    raise InvalidTransition(f"Approval credit of {request_id} is {state}, nothing to repay")
                if request.repaid_amount + amount > request.requested_amount:
                    raise ExcessiveRepayment(
                        f"Repayment of {amount} exceeds outstanding {request.outstanding_amount}"
                    )

                key = f"financing-repayment:{request_id}:{idempotency_key or uuid.uuid4().hex}"
                try:
                    posted = self.ledger.debit(request.applicant_id, amount, key)
                except InsufficientFunds:
                    self.store.rollback()
                    raise

                if not posted:
                    self.store.rollback()
                    logger.info("Duplicate repayment ignored", extra={"request_id": request_id, "key": key})
                    return request

                new_repaid = request.repaid_amount + amount
                if self.store.add_repayment(request_id, request.repaid_amount, new_repaid):
                    self.transaction_log.append(
                        request.applicant_id,
                        AccountTransaction(
                            amount=amount,
                            type="sent",
                            date=datetime.now(timezone.utc),
                            counterparty=f"Repayment: {_credit_label(request)}",
                        ),
                    )
                    self.store.commit()
                    logger.info(
                        "Repayment applied",
                        extra={
                            "request_id": request_id,
                            "applicant_id": request.applicant_id,
                            "amount": amount,
                            "repaid_amount": new_repaid,
                        },
                    )
                    return self.get_request(request_id)

                # Another process moved repaid_amount; undo the debit and re-read
                self.store.rollback()

        raise ConcurrentUpdate(f"Repayment on {request_id} kept conflicting with concurrent updates, retry it")

    async def retry_ledger_effect(self, request_id: str) -> FinancingRequest:
        """Operator re-drive of an approval credit that exhausted its retries"""
        request = self.get_request(request_id)
        if request.status != RequestStatus.APPROVED:
            raise InvalidTransition(f"Request {request_id} is {request.status.value}, not approved")
        if request.ledger_effect_abandoned:
            raise InvalidTransition(f"Ledger effect of {request_id} was abandoned")
        return await self._apply_ledger_effect(request_id, actor=ENGINE_ACTOR)

    async def abandon_ledger_effect(self, request_id: str, operator_id: str, reason: str) -> FinancingRequest:
        """Explicitly give up a pending approval credit; recorded in the audit trail"""
        if not operator_id:
            raise ValidationError("Operator id is required")

        async with self.locks.hold(request_id):
            request = self.get_request(request_id)
            if request.status != RequestStatus.APPROVED or request.ledger_effect_applied:
                raise InvalidTransition(f"Request {request_id} has no pending ledger effect")
            if not self.store.mark_ledger_effect_abandoned(request_id):
                self.store.rollback()
                raise InvalidTransition(f"Ledger effect of {request_id} changed concurrently")

            self.store.append_audit(
                DecisionAuditEntry(
                    request_id,
                    operator_id,
                    RequestStatus.APPROVED,
                    RequestStatus.APPROVED,
                    f"Ledger credit abandoned: {reason}",
                )
            )
            self.store.commit()
            logger.warning(
                "Ledger effect abandoned",
                extra={"request_id": request_id, "operator_id": operator_id, "reason": reason},
            )
            return self.get_request(request_id)

    # ---- read-only projections -------------------------------------------------

    def get_request(self, request_id: str) -> FinancingRequest:
        request = self.store.load(request_id)
        if request is None:
            raise RequestNotFound(f"Financing request {request_id} not found")
        return request

    def list_requests(
        self,
        applicant_id: Optional[str] = None,
        status: Optional[RequestStatus] = None,
        limit: int = 50,
    ) -> List[FinancingRequest]:
        return self.store.list(applicant_id=applicant_id, status=status, limit=limit)

    def get_audit_trail(self, request_id: str) -> List[DecisionAuditEntry]:
        self.get_request(request_id)
        return self.store.audit_trail(request_id)

    # ---- internals ------------------------------------------------------------

    def _plan_for(self, params: FinancingParams) -> RepaymentPlan:
        return build_repayment_plan(
            params.principal,
            params.margin_rate_per_period,
            params.installments_count,
            params.repayment_frequency,
            params.first_installment_date,
        )

    async def _score_and_decide(self, request: FinancingRequest) -> FinancingRequest:
        policy = self.config.product_policy(request.product_type)
        scoring_key = f"scoring:{request.id}"

        if self.locks.locked(scoring_key):
            raise InvalidTransition(f"Scoring of {request.id} is already in progress")

        async with self.locks.hold(scoring_key):
            try:
                scores = await asyncio.wait_for(
                    self.scoring_source.score(request.snapshot, request.params, policy),
                    timeout=self.config.scoring_timeout_seconds,
                )
            except asyncio.TimeoutError as e:
                logger.warning("Scoring source timed out", extra={"request_id": request.id})
                raise ScoringUnavailable(
                    f"Scoring timed out after {self.config.scoring_timeout_seconds}s", request_id=request.id
                ) from e
            except ScoringUnavailable as e:
                logger.warning(f"Scoring source failed: {e}", extra={"request_id": request.id})
                e.request_id = request.id
                raise
            except Exception as e:
                # CancelledError is a BaseException and still propagates
                logger.warning(f"Scoring source raised {type(e).__name__}: {e}", extra={"request_id": request.id})
                raise ScoringUnavailable(f"Scoring source failed: {e}", request_id=request.id) from e

        decision = decide(scores.risk.value, request.requested_amount, policy, request.snapshot.has_history)
        reason = compose_reason(decision, scores)
        plan = self._plan_for(request.params) if decision.status == RequestStatus.APPROVED else None

        async with self.locks.hold(request.id):
            if not self.store.record_decision(request.id, scores, decision.status, reason, plan):
                self.store.rollback()
                raise InvalidTransition(f"Request {request.id} was already scored")
            self.store.append_audit(
                DecisionAuditEntry(request.id, ENGINE_ACTOR, RequestStatus.SUBMITTED, decision.status, reason)
            )
            self.store.commit()

        logger.info(
            "Financing decision recorded",
            extra={
                "request_id": request.id,
                "applicant_id": request.applicant_id,
                "status": decision.status.value,
                "is_final": decision.is_final,
                "risk_score": scores.risk.value,
            },
        )

        if decision.status == RequestStatus.APPROVED:
            return await self._apply_ledger_effect(request.id, actor=ENGINE_ACTOR)
        return self.get_request(request.id)

    async def _apply_ledger_effect(self, request_id: str, actor: str) -> FinancingRequest:
        """Post the approval credit once; later calls return the stored request"""
        async with self.locks.hold(request_id):
            request = self.get_request(request_id)
            if request.status != RequestStatus.APPROVED:
                raise InvalidTransition(f"Request {request_id} is {request.status.value}, not approved")
            if request.ledger_effect_applied or request.ledger_effect_abandoned:
                return request

            key = f"financing-credit:{request_id}"
            try:
                await self.ledger.credit(request.applicant_id, request.requested_amount, key)
            except LedgerWriteError as e:
                self.store.rollback()
                e.request_id = request_id
                logger.error(
                    f"Approval credit failed: {e}",
                    extra={"request_id": request_id, "applicant_id": request.applicant_id},
                )
                raise

            if not self.store.mark_ledger_effect_applied(request_id):
                # Applied by a concurrent finalizer; the keyed credit above was a no-op
                self.store.rollback()
                return self.get_request(request_id)

            self.transaction_log.append(
                request.applicant_id,
                AccountTransaction(
                    amount=request.requested_amount,
                    type="received",
                    date=datetime.now(timezone.utc),
                    counterparty=_credit_label(request),
                ),
            )
            self.store.append_audit(
                DecisionAuditEntry(
                    request_id,
                    actor,
                    RequestStatus.APPROVED,
                    RequestStatus.APPROVED,
                    f"Ledger credit of {request.requested_amount} posted to {request.applicant_id}",
                )
            )
            self.store.commit()

            logger.info(
                "Ledger effect applied",
                extra={
                    "request_id": request_id,
                    "applicant_id": request.applicant_id,
                    "amount": request.requested_amount,
                },
            )
            return self.get_request(request_id)
