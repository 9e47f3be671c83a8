"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from midi_financing.domain.models import (
    DecisionAuditEntry,
    FinancingParams,
    FinancingProduct,
    FinancingRequest,
    IslamicFinancing,
    ProductType,
    PurchaseCredit,
    RepaymentFrequency,
    RepaymentPlan,
    ScoreDetail,
)


class SubmitRequest(BaseModel):
    """Request body for POST /v1/financing-requests"""

    applicant_id: str = Field(..., min_length=1, description="Applicant account identifier")
    product_type: ProductType
    counterparty_id: Optional[str] = Field(None, description="Merchant account, purchase credit only")
    purpose: Optional[str] = Field(None, description="Stated purpose, Islamic financing only")
    financing_type: str = "mourabaha"
    requested_amount: int = Field(..., gt=0, description="Requested amount in currency units")
    down_payment: int = Field(0, ge=0)
    installments_count: int = Field(..., ge=1)
    repayment_frequency: RepaymentFrequency
    first_installment_date: date
    margin_rate_per_period: Decimal = Field(Decimal("0"), ge=0, allow_inf_nan=False)

    def to_params(self) -> FinancingParams:
        product: FinancingProduct
        if self.product_type == ProductType.PURCHASE_CREDIT:
            product = PurchaseCredit(counterparty_id=self.counterparty_id or "")
        else:
            product = IslamicFinancing(purpose=self.purpose or "", financing_type=self.financing_type)

        return FinancingParams(
            product=product,
            requested_amount=self.requested_amount,
            installments_count=self.installments_count,
            repayment_frequency=self.repayment_frequency,
            first_installment_date=self.first_installment_date,
            margin_rate_per_period=self.margin_rate_per_period,
            down_payment=self.down_payment,
        )


class ReviewRequest(BaseModel):
    """Request body for POST /v1/financing-requests/{id}/review"""

    decision: Literal["approved", "rejected"]
    reviewer_id: str = Field(..., min_length=1)
    note: Optional[str] = None


class RepaymentRequest(BaseModel):
    """Request body for POST /v1/financing-requests/{id}/repayments"""

    amount: int = Field(..., gt=0, description="Repayment in currency units")
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=200)


class AbandonLedgerEffectRequest(BaseModel):
    operator_id: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)


class ScoreSchema(BaseModel):
    value: int
    explanation: str

    @classmethod
    def from_domain(cls, detail: ScoreDetail) -> "ScoreSchema":
        return cls(value=detail.value, explanation=detail.explanation)


class ScoresSchema(BaseModel):
    activity: ScoreSchema
    behavioral: ScoreSchema
    socio_professional: ScoreSchema
    risk: ScoreSchema


class InstallmentSchema(BaseModel):
    """Single installment in a repayment plan"""

    sequence_number: int
    due_date: date
    principal_portion: int
    margin_portion: Decimal
    total_due: Decimal


class PlanResponse(BaseModel):
    """Response for GET /v1/financing-requests/{id}/plan"""

    financing_request_id: str
    principal: int
    margin_rate_per_period: Decimal
    frequency: RepaymentFrequency
    total_margin: Decimal
    total_due: Decimal
    summary: str
    installments: List[InstallmentSchema]

    @classmethod
    def from_domain(cls, request_id: str, plan: RepaymentPlan) -> "PlanResponse":
        return cls(
            financing_request_id=request_id,
            principal=plan.principal,
            margin_rate_per_period=plan.margin_rate_per_period,
            frequency=plan.frequency,
            total_margin=plan.total_margin,
            total_due=plan.total_due,
            summary=plan.summary,
            installments=[
                InstallmentSchema(
                    sequence_number=i.sequence_number,
                    due_date=i.due_date,
                    principal_portion=i.principal_portion,
                    margin_portion=i.margin_portion,
                    total_due=i.total_due,
                )
                for i in plan.installments
            ],
        )


class FinancingRequestResponse(BaseModel):
    """Financing request as returned by every lifecycle endpoint"""

    id: str
    applicant_id: str
    product_type: ProductType
    counterparty_id: Optional[str] = None
    purpose: Optional[str] = None
    financing_type: Optional[str] = None
    requested_amount: int
    down_payment: int
    installments_count: int
    repayment_frequency: RepaymentFrequency
    first_installment_date: date
    margin_rate_per_period: Decimal
    status: str
    reason: str
    scores: Optional[ScoresSchema] = None
    repayment_plan_summary: Optional[str] = None
    repaid_amount: int
    outstanding_amount: int
    repayment_progress: float
    is_fully_repaid: bool
    ledger_effect_applied: bool
    ledger_effect_abandoned: bool
    reviewer_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    request_date: datetime

    @classmethod
    def from_domain(cls, request: FinancingRequest) -> "FinancingRequestResponse":
        params = request.params
        product = params.product
        scores = None
        if request.scores is not None:
            scores = ScoresSchema(
                activity=ScoreSchema.from_domain(request.scores.activity),
                behavioral=ScoreSchema.from_domain(request.scores.behavioral),
                socio_professional=ScoreSchema.from_domain(request.scores.socio_professional),
                risk=ScoreSchema.from_domain(request.scores.risk),
            )

        return cls(
            id=request.id,
            applicant_id=request.applicant_id,
            product_type=params.product_type,
            counterparty_id=product.counterparty_id if isinstance(product, PurchaseCredit) else None,
            purpose=product.purpose if isinstance(product, IslamicFinancing) else None,
            financing_type=product.financing_type if isinstance(product, IslamicFinancing) else None,
            requested_amount=params.requested_amount,
            down_payment=params.down_payment,
            installments_count=params.installments_count,
            repayment_frequency=params.repayment_frequency,
            first_installment_date=params.first_installment_date,
            margin_rate_per_period=params.margin_rate_per_period,
            status=request.status.value,
            reason=request.reason,
            scores=scores,
            repayment_plan_summary=request.repayment_plan.summary if request.repayment_plan else None,
            repaid_amount=request.repaid_amount,
            outstanding_amount=request.outstanding_amount,
            repayment_progress=request.repayment_progress,
            is_fully_repaid=request.is_fully_repaid,
            ledger_effect_applied=request.ledger_effect_applied,
            ledger_effect_abandoned=request.ledger_effect_abandoned,
            reviewer_id=request.reviewer_id,
            reviewed_at=request.reviewed_at,
            request_date=request.request_date,
        )


class FinancingRequestList(BaseModel):
    """Response for GET /v1/financing-requests"""

    requests: List[FinancingRequestResponse]


class AuditItem(BaseModel):
    actor: str
    from_status: Optional[str] = None
    to_status: str
    reason: str
    created_at: Optional[datetime] = None


class AuditTrailResponse(BaseModel):
    """Response for GET /v1/financing-requests/{id}/audit"""

    financing_request_id: str
    entries: List[AuditItem]

    @classmethod
    def from_domain(cls, request_id: str, entries: List[DecisionAuditEntry]) -> "AuditTrailResponse":
        return cls(
            financing_request_id=request_id,
            entries=[
                AuditItem(
                    actor=e.actor,
                    from_status=e.from_status.value if e.from_status else None,
                    to_status=e.to_status.value,
                    reason=e.reason,
                    created_at=e.created_at,
                )
                for e in entries
            ],
        )
