"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from midi_financing.config import settings
from midi_financing.domain.lifecycle import FinancingService
from midi_financing.domain.locks import KeyedLock
from midi_financing.domain.ports import ScoringSource
from midi_financing.domain.scoring import RuleBasedScoringSource
from midi_financing.infrastructure.clients.ledger import RetryingLedger
from midi_financing.infrastructure.clients.scoring import RemoteScoringClient
from midi_financing.infrastructure.database.repositories import (
    SqlAccountDirectory,
    SqlAccountLedger,
    SqlRequestStore,
    SqlTransactionLog,
)
from midi_financing.infrastructure.database.session import get_db

# Shared across requests so concurrent calls on one financing request serialize
request_locks = KeyedLock()


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_scoring_source() -> ScoringSource:
    """Provide the configured scoring source"""
    if settings.scoring_source == "remote":
        return RemoteScoringClient()
    return RuleBasedScoringSource()


def get_financing_service(
    db: Session = Depends(get_db),
    scoring_source: ScoringSource = Depends(get_scoring_source),
) -> FinancingService:
    """Assemble the lifecycle manager over one database session"""
    return FinancingService(
        store=SqlRequestStore(db),
        directory=SqlAccountDirectory(db),
        ledger=RetryingLedger(SqlAccountLedger(db)),
        transaction_log=SqlTransactionLog(db),
        scoring_source=scoring_source,
        locks=request_locks,
    )
