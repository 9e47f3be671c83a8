"""Pytest fixtures for testing"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Generator, Iterable, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from midi_financing.api.dependencies import get_scoring_source
from midi_financing.api.main import create_app
from midi_financing.config import Settings
from midi_financing.domain.exceptions import LedgerUnavailable
from midi_financing.domain.lifecycle import FinancingService
from midi_financing.domain.locks import KeyedLock
from midi_financing.domain.models import (
    FinancingParams,
    IslamicFinancing,
    PurchaseCredit,
    RepaymentFrequency,
    ScoreDetail,
    ScoreSet,
)
from midi_financing.infrastructure.clients.ledger import RetryingLedger
from midi_financing.infrastructure.database.models import Account, AccountTransactionRecord, Base
from midi_financing.infrastructure.database.repositories import (
    SqlAccountDirectory,
    SqlAccountLedger,
    SqlRequestStore,
    SqlTransactionLog,
)
from midi_financing.infrastructure.database.session import get_db

# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def make_scores(risk: int) -> ScoreSet:
    """Score set with a fixed composite risk"""
    quality = 100 - risk
    return ScoreSet(
        activity=ScoreDetail(quality, "Stub activity"),
        behavioral=ScoreDetail(quality, "Stub behavioral"),
        socio_professional=ScoreDetail(quality, "Stub socio-professional"),
        risk=ScoreDetail(risk, "Stub risk"),
    )


class StubScoringSource:
    """Scoring source returning a fixed risk, optionally slow or failing"""

    def __init__(self, risk: int = 25, delay: float = 0.0, error: Optional[Exception] = None):
        self.risk = risk
        self.delay = delay
        self.error = error
        self.calls = 0

    async def score(self, snapshot, params, policy) -> ScoreSet:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return make_scores(self.risk)


class FlakyLedger:
    """Account ledger whose credits fail a given number of times before going through"""

    def __init__(self, inner: SqlAccountLedger, failures: int = 0):
        self.inner = inner
        self.failures = failures
        self.credit_calls = 0

    def get_balance(self, account_id: str) -> int:
        return self.inner.get_balance(account_id)

    def credit(self, account_id: str, amount: int, idempotency_key: str) -> bool:
        self.credit_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise LedgerUnavailable("ledger connection reset")
        return self.inner.credit(account_id, amount, idempotency_key)

    def debit(self, account_id: str, amount: int, idempotency_key: str) -> bool:
        return self.inner.debit(account_id, amount, idempotency_key)


def seed_account(
    db: Session,
    account_id: str,
    balance: int,
    alias: str = "Boutique Awa",
    transactions: Iterable[tuple] = (),
) -> Account:
    """Create an account with (amount, type, days_ago) history entries"""
    account = Account(id=account_id, alias=alias, balance=balance)
    db.add(account)
    now = datetime.now(timezone.utc)
    for amount, type_, days_ago in transactions:
        db.add(
            AccountTransactionRecord(
                account_id=account_id,
                type=type_,
                amount=amount,
                counterparty="Client",
                occurred_at=now - timedelta(days=days_ago),
            )
        )
    db.commit()
    return account


def purchase_params(amount: int = 80_000, **overrides) -> FinancingParams:
    values = dict(
        product=PurchaseCredit(counterparty_id="merchant_1"),
        requested_amount=amount,
        installments_count=4,
        repayment_frequency=RepaymentFrequency.MONTHLY,
        first_installment_date=date.today() + timedelta(days=30),
        margin_rate_per_period=Decimal("0"),
    )
    values.update(overrides)
    return FinancingParams(**values)


def islamic_params(amount: int = 250_000, purpose: str = "Achat d'une moto pour livraison", **overrides) -> FinancingParams:
    values = dict(
        product=IslamicFinancing(purpose=purpose),
        requested_amount=amount,
        installments_count=3,
        repayment_frequency=RepaymentFrequency.MONTHLY,
        first_installment_date=date.today() + timedelta(days=30),
        margin_rate_per_period=Decimal("0.02"),
    )
    values.update(overrides)
    return FinancingParams(**values)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def merchant(db: Session) -> Account:
    return seed_account(db, "merchant_1", balance=0, alias="Quincaillerie Ndiaye")


@pytest.fixture
def applicant(db: Session, merchant: Account) -> Account:
    """Applicant with a regular incoming history and a healthy balance"""
    return seed_account(
        db,
        "applicant_1",
        balance=200_000,
        transactions=[(50_000, "received", days) for days in (1, 3, 5, 7, 9, 11)] + [(20_000, "sent", 2)],
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(scoring_timeout_seconds=0.2, ledger_max_retries=3, ledger_backoff_base=0.0)


@pytest.fixture
def scoring_source() -> StubScoringSource:
    return StubScoringSource(risk=25)


@pytest.fixture
def flaky_ledger(db: Session) -> FlakyLedger:
    return FlakyLedger(SqlAccountLedger(db))


@pytest.fixture
def service(
    db: Session,
    scoring_source: StubScoringSource,
    flaky_ledger: FlakyLedger,
    test_settings: Settings,
) -> FinancingService:
    """Lifecycle manager over the SQLite store with a stub scoring source"""
    return FinancingService(
        store=SqlRequestStore(db),
        directory=SqlAccountDirectory(db),
        ledger=RetryingLedger(
            flaky_ledger,
            max_retries=test_settings.ledger_max_retries,
            backoff_base=test_settings.ledger_backoff_base,
        ),
        transaction_log=SqlTransactionLog(db),
        scoring_source=scoring_source,
        locks=KeyedLock(),
        config=test_settings,
    )


@pytest.fixture
def client(db: Session, scoring_source: StubScoringSource) -> TestClient:
    """Create FastAPI test client with test database and stub scoring"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_scoring_source] = lambda: scoring_source
    return TestClient(app)


@pytest.fixture
def seed(db: Session):
    """Factory fixture: seed(account_id, balance, alias=..., transactions=...)"""
    return lambda *args, **kwargs: seed_account(db, *args, **kwargs)


@pytest.fixture
def purchase():
    """Factory fixture for purchase credit parameters"""
    return purchase_params


@pytest.fixture
def islamic():
    """Factory fixture for Islamic financing parameters"""
    return islamic_params
