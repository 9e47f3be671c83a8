"""Applicant snapshot assembly from the account directory"""

from midi_financing.domain.exceptions import ApplicantNotFound
from midi_financing.domain.models import ApplicantSnapshot
from midi_financing.domain.ports import AccountDirectory


def build_applicant_snapshot(directory: AccountDirectory, applicant_id: str, window: int = 10) -> ApplicantSnapshot:
    """
    Collect balance, recent history and alias flag for an applicant.

    History is ordered most-recent-first and bounded to `window` entries.
    No business rules are applied here.

    Raises:
        ApplicantNotFound: If the directory has no such account
    """
    account = directory.get_account(applicant_id, limit=window)
    if account is None:
        raise ApplicantNotFound(f"No account for applicant {applicant_id}")

    recent = sorted(account.transactions, key=lambda t: t.date, reverse=True)[:window]

    return ApplicantSnapshot(
        current_balance=account.balance,
        recent_transactions=tuple(recent),
        alias_is_personalized=account.alias_is_personalized,
    )


def is_personalized_alias(alias: str) -> bool:
    """An alias is personalized unless it is a bare phone number"""
    compact = alias.strip().replace(" ", "").replace("-", "")
    if compact.startswith("+"):
        compact = compact[1:]
    return bool(compact) and not compact.isdigit()
