"""Approval credit posting with exponential backoff retry logic"""

import asyncio
import logging
from typing import Optional

from midi_financing.config import settings
from midi_financing.domain.exceptions import LedgerUnavailable, LedgerWriteError
from midi_financing.domain.ports import AccountLedger
from midi_financing.infrastructure.observability.metrics import ledger_failure_counter, ledger_latency_histogram

logger = logging.getLogger(__name__)


class RetryingLedger:
    """Wraps an account ledger so approval credits survive transient failures"""

    def __init__(
        self,
        inner: AccountLedger,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
    ):
        self.inner = inner
        self.max_retries = max_retries if max_retries is not None else settings.ledger_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.ledger_backoff_base

    def get_balance(self, account_id: str) -> int:
        return self.inner.get_balance(account_id)

    def debit(self, account_id: str, amount: int, idempotency_key: str) -> bool:
        return self.inner.debit(account_id, amount, idempotency_key)

    async def credit(self, account_id: str, amount: int, idempotency_key: str) -> bool:
        """
        Post a keyed credit with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s (base * 2^(attempt-1))
        - Retries on LedgerUnavailable only; the idempotency key makes a retry safe
        - Tracks latency histogram and failure counter

        Raises:
            LedgerWriteError: All attempts failed
        """
        attempt = 0
        while True:
            try:
                with ledger_latency_histogram.time():
                    return self.inner.credit(account_id, amount, idempotency_key)

            except LedgerUnavailable as e:
                attempt += 1
                ledger_failure_counter.inc()
                logger.warning(
                    f"Ledger credit attempt {attempt} failed: {e}",
                    extra={"account_id": account_id, "idempotency_key": idempotency_key},
                )

                if attempt >= self.max_retries:
                    raise LedgerWriteError(
                        f"Ledger credit {idempotency_key} failed after {attempt} attempts"
                    ) from e

                backoff = self.backoff_base * (2 ** (attempt - 1))
                await asyncio.sleep(backoff)
