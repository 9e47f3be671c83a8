"""SQLAlchemy ORM models for financing requests, accounts and the ledger"""

import uuid
from decimal import Decimal

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class DecimalString(TypeDecorator):
    """Exact Decimal stored as text, so no backend coerces money through float"""

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(Decimal(value))

    def process_result_value(self, value, dialect):
        return None if value is None else Decimal(value)


class FinancingRequestRecord(Base):
    """Financing request (purchase credit or Islamic financing)"""

    __tablename__ = "financing_request"

    id = Column(String(36), primary_key=True, default=_new_id)
    applicant_id = Column(Text, nullable=False, index=True)
    product_type = Column(Text, nullable=False)
    counterparty_id = Column(Text, nullable=True)  # purchase credit only
    purpose = Column(Text, nullable=True)  # Islamic financing only
    financing_type = Column(Text, nullable=True)  # Islamic financing only
    requested_amount = Column(BigInteger, nullable=False)
    down_payment = Column(BigInteger, nullable=False, default=0)
    installments_count = Column(Integer, nullable=False)
    repayment_frequency = Column(Text, nullable=False)
    first_installment_date = Column(Date, nullable=False)
    margin_rate_per_period = Column(DecimalString, nullable=False)
    snapshot = Column(JSON, nullable=False)
    status = Column(Text, nullable=False, index=True, default="submitted")
    scores = Column(JSON(none_as_null=True), nullable=True)
    reason = Column(Text, nullable=False, default="")
    repaid_amount = Column(BigInteger, nullable=False, default=0)
    ledger_effect_applied = Column(Boolean, nullable=False, default=False)
    ledger_effect_abandoned = Column(Boolean, nullable=False, default=False)
    reviewer_id = Column(Text, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    request_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    plans = relationship("FinancingPlan", back_populates="request", cascade="all, delete-orphan")


class FinancingPlan(Base):
    """Repayment plan for an approved request"""

    __tablename__ = "financing_plan"

    id = Column(String(36), primary_key=True, default=_new_id)
    request_id = Column(String(36), ForeignKey("financing_request.id", ondelete="CASCADE"), nullable=False, unique=True)
    principal = Column(BigInteger, nullable=False)
    margin_rate_per_period = Column(DecimalString, nullable=False)
    frequency = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    request = relationship("FinancingRequestRecord", back_populates="plans")
    installments = relationship(
        "FinancingInstallment",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="FinancingInstallment.sequence_number",
    )


class FinancingInstallment(Base):
    """Individual installment within a repayment plan"""

    __tablename__ = "financing_installment"

    id = Column(String(36), primary_key=True, default=_new_id)
    plan_id = Column(String(36), ForeignKey("financing_plan.id", ondelete="CASCADE"), nullable=False)
    sequence_number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    principal_portion = Column(BigInteger, nullable=False)
    margin_portion = Column(DecimalString, nullable=False)
    status = Column(Text, nullable=False, default="scheduled")

    plan = relationship("FinancingPlan", back_populates="installments")


class Account(Base):
    """Customer or merchant account with its main balance"""

    __tablename__ = "account"

    id = Column(String(64), primary_key=True)
    alias = Column(Text, nullable=False)
    balance = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AccountTransactionRecord(Base):
    """Append-only transaction log entry"""

    __tablename__ = "account_transaction"

    id = Column(String(36), primary_key=True, default=_new_id)
    account_id = Column(String(64), ForeignKey("account.id"), nullable=False, index=True)
    type = Column(Text, nullable=False)  # "received" or "sent"
    amount = Column(BigInteger, nullable=False)
    counterparty = Column(Text, nullable=False, default="")
    occurred_at = Column(DateTime(timezone=True), nullable=False)


class LedgerEntry(Base):
    """Posted balance movement; the idempotency key makes every posting exactly-once"""

    __tablename__ = "ledger_entry"
    __table_args__ = (UniqueConstraint("idempotency_key", name="uq_ledger_entry_idempotency_key"),)

    id = Column(String(36), primary_key=True, default=_new_id)
    account_id = Column(String(64), ForeignKey("account.id"), nullable=False, index=True)
    direction = Column(Text, nullable=False)  # "credit" or "debit"
    amount = Column(BigInteger, nullable=False)
    idempotency_key = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class DecisionAudit(Base):
    """Audit trail (PV) of status changes and ledger recovery actions"""

    __tablename__ = "decision_audit"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(String(36), ForeignKey("financing_request.id"), nullable=False, index=True)
    actor = Column(Text, nullable=False)
    from_status = Column(Text, nullable=True)
    to_status = Column(Text, nullable=False)
    reason = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
