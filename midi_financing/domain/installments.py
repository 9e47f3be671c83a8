"""Repayment schedule generation for purchase credit and Mourabaha financing"""

from datetime import date
from decimal import Decimal
from typing import List

from midi_financing.domain.exceptions import ValidationError
from midi_financing.domain.models import Installment, RepaymentFrequency, RepaymentPlan
from midi_financing.utils.date_utils import add_periods


def build_schedule(
    principal: int,
    margin_rate_per_period: Decimal,
    installments_count: int,
    frequency: RepaymentFrequency,
    first_due_date: date,
) -> List[Installment]:
    """
    Generate a flat-margin installment schedule.

    Requirements:
    - Principal split in equal portions, rounded down to the currency unit
    - Last installment absorbs the principal remainder
    - Margin is flat: principal x rate on every installment, exact Decimal
    - Due dates are first_due_date + n periods (day / week / calendar month)

    Example:
        90000 principal, 3 installments, 0.02 rate
        -> 3 x (30000 principal + 1800 margin)
        90001 principal -> [30000, 30000, 30001] principal portions
    """
    if principal <= 0:
        raise ValidationError(f"Principal must be positive, got {principal}")
    if installments_count < 1:
        raise ValidationError(f"Installments count must be at least 1, got {installments_count}")
    if not isinstance(margin_rate_per_period, Decimal):
        margin_rate_per_period = Decimal(str(margin_rate_per_period))
    if not margin_rate_per_period.is_finite() or margin_rate_per_period < 0:
        raise ValidationError(f"Margin rate must be a finite non-negative number, got {margin_rate_per_period}")

    base_amount = principal // installments_count
    remainder = principal % installments_count
    margin_portion = principal * margin_rate_per_period

    installments = []
    for i in range(installments_count):
        amount = base_amount + (remainder if i == installments_count - 1 else 0)
        installments.append(
            Installment(
                sequence_number=i + 1,
                due_date=add_periods(first_due_date, frequency, i),
                principal_portion=amount,
                margin_portion=margin_portion,
            )
        )

    return installments


def build_repayment_plan(
    principal: int,
    margin_rate_per_period: Decimal,
    installments_count: int,
    frequency: RepaymentFrequency,
    first_due_date: date,
) -> RepaymentPlan:
    """Schedule plus its summary totals"""
    installments = build_schedule(
        principal, margin_rate_per_period, installments_count, frequency, first_due_date
    )
    return RepaymentPlan(
        principal=principal,
        margin_rate_per_period=Decimal(str(margin_rate_per_period)),
        frequency=frequency,
        installments=tuple(installments),
    )
