"""Unit tests for applicant snapshot assembly"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import pytest

from midi_financing.domain.exceptions import ApplicantNotFound
from midi_financing.domain.models import AccountTransaction, AccountView
from midi_financing.domain.snapshot import build_applicant_snapshot, is_personalized_alias


class DictDirectory:
    def __init__(self, accounts: Dict[str, AccountView]):
        self.accounts = accounts

    def get_account(self, account_id: str, limit: Optional[int] = None) -> Optional[AccountView]:
        return self.accounts.get(account_id)


def make_account(transactions_count: int, alias: str = "Boutique Awa") -> AccountView:
    base = datetime(2025, 5, 1, tzinfo=timezone.utc)
    # Deliberately out of order
    transactions = [
        AccountTransaction(1_000 * (i + 1), "received", base + timedelta(days=(i * 7) % transactions_count))
        for i in range(transactions_count)
    ]
    return AccountView(
        account_id="applicant_1",
        alias=alias,
        balance=42_000,
        alias_is_personalized=is_personalized_alias(alias),
        transactions=transactions,
    )


def test_snapshot_is_most_recent_first_and_bounded():
    directory = DictDirectory({"applicant_1": make_account(15)})

    snapshot = build_applicant_snapshot(directory, "applicant_1", window=10)

    dates = [t.date for t in snapshot.recent_transactions]
    assert len(dates) == 10
    assert dates == sorted(dates, reverse=True)
    assert dates[0] == datetime(2025, 5, 15, tzinfo=timezone.utc)
    assert snapshot.current_balance == 42_000
    assert snapshot.has_history is True


def test_snapshot_without_history():
    directory = DictDirectory({"applicant_1": make_account(0)})

    snapshot = build_applicant_snapshot(directory, "applicant_1")

    assert snapshot.recent_transactions == ()
    assert snapshot.has_history is False


def test_snapshot_unknown_applicant():
    with pytest.raises(ApplicantNotFound):
        build_applicant_snapshot(DictDirectory({}), "ghost")


@pytest.mark.parametrize(
    "alias, expected",
    [
        ("Boutique Awa", True),
        ("Moussa Diop", True),
        ("+221 77 123 45 67", False),
        ("771234567", False),
        ("77-123-45-67", False),
        ("", False),
    ],
)
def test_is_personalized_alias(alias, expected):
    assert is_personalized_alias(alias) is expected
