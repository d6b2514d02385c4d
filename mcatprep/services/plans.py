"""Subscription plans and calendar-month date arithmetic."""

import calendar
from datetime import datetime
from enum import Enum


# Only one-off payments are sold; renewals are new payments
ONE_TIME = "ONE_TIME"


class Plan(str, Enum):
    ONE_MONTH = "ONE_MONTH"
    THREE_MONTHS = "THREE_MONTHS"

    @property
    def months(self) -> int:
        return PLAN_MONTHS[self]


PLAN_MONTHS = {
    Plan.ONE_MONTH: 1,
    Plan.THREE_MONTHS: 3,
}


def add_months(value: datetime, months: int) -> datetime:
    """
    Add calendar months, keeping the time of day.

    The day is clamped to the last day of the target month, so Jan 31 + 1
    month is Feb 28 (or 29), never Mar 3.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)
