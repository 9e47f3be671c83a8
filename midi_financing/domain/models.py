"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar, List, Optional, Tuple, Union


class ProductType(str, Enum):
    PURCHASE_CREDIT = "purchase_credit"
    ISLAMIC_FINANCING = "islamic_financing"


class RepaymentFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RequestStatus(str, Enum):
    SUBMITTED = "submitted"
    REVIEW = "review"
    APPROVED = "approved"
    REJECTED = "rejected"


TERMINAL_STATUSES = frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED})


@dataclass(frozen=True)
class AccountTransaction:
    """Entry of an applicant's transaction history"""

    amount: int
    type: str  # "received" or "sent"
    date: datetime
    counterparty: str = ""


@dataclass(frozen=True)
class AccountView:
    """What the account directory knows about an account"""

    account_id: str
    alias: str
    balance: int
    alias_is_personalized: bool
    transactions: List[AccountTransaction]


@dataclass(frozen=True)
class ApplicantSnapshot:
    """Facts the scorer needs, captured once at submission"""

    current_balance: int
    recent_transactions: Tuple[AccountTransaction, ...]
    alias_is_personalized: bool

    @property
    def has_history(self) -> bool:
        return len(self.recent_transactions) > 0


@dataclass(frozen=True)
class ScoreDetail:
    value: int  # 0-100
    explanation: str


@dataclass(frozen=True)
class ScoreSet:
    """Score-360: activity, behavioral, socio-professional and composite risk"""

    activity: ScoreDetail
    behavioral: ScoreDetail
    socio_professional: ScoreDetail
    risk: ScoreDetail


@dataclass(frozen=True)
class PurchaseCredit:
    """BNPL purchase paid to a merchant account"""

    product_type: ClassVar[ProductType] = ProductType.PURCHASE_CREDIT

    counterparty_id: str


@dataclass(frozen=True)
class IslamicFinancing:
    """Mourabaha-style cost-plus-margin financing"""

    product_type: ClassVar[ProductType] = ProductType.ISLAMIC_FINANCING

    purpose: str
    financing_type: str = "mourabaha"


FinancingProduct = Union[PurchaseCredit, IslamicFinancing]


@dataclass(frozen=True)
class FinancingParams:
    """Parameters submitted with a request; immutable once submitted"""

    product: FinancingProduct
    requested_amount: int
    installments_count: int
    repayment_frequency: RepaymentFrequency
    first_installment_date: date
    margin_rate_per_period: Decimal
    down_payment: int = 0

    @property
    def product_type(self) -> ProductType:
        return self.product.product_type

    @property
    def principal(self) -> int:
        return self.requested_amount - self.down_payment


@dataclass(frozen=True)
class ProductPolicy:
    """Per-product decision and scoring parameters"""

    product_type: ProductType
    amount_ceiling: int
    high_amount_threshold: int
    approve_below: int
    reject_above: int
    activity_weight: float
    behavioral_weight: float
    socio_professional_weight: float
    excluded_purpose_keywords: Tuple[str, ...] = ()
    vague_purpose_keywords: Tuple[str, ...] = ()
    tangible_purpose_keywords: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Decision:
    """Output of the decision policy"""

    status: RequestStatus
    is_final: bool
    reason: str


@dataclass(frozen=True)
class Installment:
    """Single payment in a repayment plan"""

    sequence_number: int
    due_date: date
    principal_portion: int
    margin_portion: Decimal

    @property
    def total_due(self) -> Decimal:
        return self.principal_portion + self.margin_portion


@dataclass(frozen=True)
class RepaymentPlan:
    """Schedule summary attached to approved requests"""

    principal: int
    margin_rate_per_period: Decimal
    frequency: RepaymentFrequency
    installments: Tuple[Installment, ...]

    @property
    def total_margin(self) -> Decimal:
        return sum((i.margin_portion for i in self.installments), Decimal(0))

    @property
    def total_due(self) -> Decimal:
        return sum((i.total_due for i in self.installments), Decimal(0))

    @property
    def summary(self) -> str:
        first = self.installments[0]
        return (
            f"{len(self.installments)} {self.frequency.value} installments of "
            f"{first.total_due} from {first.due_date.isoformat()}, total {self.total_due}"
        )


@dataclass
class FinancingRequest:
    """Financing request aggregate tracked through its lifecycle"""

    id: str
    applicant_id: str
    params: FinancingParams
    snapshot: ApplicantSnapshot
    request_date: datetime
    status: RequestStatus = RequestStatus.SUBMITTED
    scores: Optional[ScoreSet] = None
    reason: str = ""
    repayment_plan: Optional[RepaymentPlan] = None
    repaid_amount: int = 0
    ledger_effect_applied: bool = False
    ledger_effect_abandoned: bool = False
    reviewer_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    @property
    def product_type(self) -> ProductType:
        return self.params.product_type

    @property
    def requested_amount(self) -> int:
        return self.params.requested_amount

    @property
    def outstanding_amount(self) -> int:
        return self.params.requested_amount - self.repaid_amount

    @property
    def is_fully_repaid(self) -> bool:
        return self.status == RequestStatus.APPROVED and self.repaid_amount == self.params.requested_amount

    @property
    def repayment_progress(self) -> float:
        """Percent of the requested amount repaid, 0 unless approved"""
        if self.status != RequestStatus.APPROVED:
            return 0.0
        return round(self.repaid_amount * 100 / self.params.requested_amount, 2)


@dataclass(frozen=True)
class DecisionAuditEntry:
    """PV (proces-verbal) line: one status change or recovery action"""

    request_id: str
    actor: str
    from_status: Optional[RequestStatus]
    to_status: RequestStatus
    reason: str
    created_at: Optional[datetime] = None
