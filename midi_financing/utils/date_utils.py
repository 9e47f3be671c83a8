"""Date manipulation utilities"""

import calendar
from datetime import date, timedelta

from midi_financing.domain.models import RepaymentFrequency


def add_months(from_date: date, months: int) -> date:
    """Add calendar months, clamping to the last day of shorter months"""
    month_index = from_date.month - 1 + months
    year = from_date.year + month_index // 12
    month = month_index % 12 + 1
    day = min(from_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_periods(from_date: date, frequency: RepaymentFrequency, periods: int) -> date:
    """Date `periods` repayment periods after `from_date`"""
    if frequency == RepaymentFrequency.DAILY:
        return from_date + timedelta(days=periods)
    if frequency == RepaymentFrequency.WEEKLY:
        return from_date + timedelta(days=7 * periods)
    return add_months(from_date, periods)
