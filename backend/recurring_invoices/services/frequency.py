"""Next-generation date arithmetic for recurring templates."""

import calendar as cal
from datetime import datetime, timedelta

from recurring_invoices.core.exceptions import InvalidIntervalError
from recurring_invoices.models.recurring_template import TemplateFrequency

# Unrecognized frequencies advance by this many months
FALLBACK_MONTHS = 1


def add_months(dt: datetime, months: int) -> datetime:
    """Add months to a datetime, clamping to last day of month."""
    month = dt.month - 1 + months
    year = dt.year + month // 12
    month = month % 12 + 1
    max_day = cal.monthrange(year, month)[1]
    day = min(dt.day, max_day)
    return dt.replace(year=year, month=month, day=day)


def parse_frequency(value: str | TemplateFrequency | None) -> TemplateFrequency | None:
    """Map a stored frequency value to the enum, or None when unrecognized."""
    if isinstance(value, TemplateFrequency):
        return value
    try:
        return TemplateFrequency(value)
    except ValueError:
        return None


def unknown_frequency_warning(value: object) -> str:
    return f"Unrecognized frequency '{value}', advancing by {FALLBACK_MONTHS} month"


def validate_interval(interval: object) -> int:
    """Return the interval as a positive int or raise InvalidIntervalError."""
    if isinstance(interval, bool) or not isinstance(interval, int) or interval < 1:
        raise InvalidIntervalError(f"Interval must be a positive integer, got {interval!r}")
    return interval


def next_generation_date(
    frequency: str | TemplateFrequency | None,
    interval: int,
    reference_date: datetime,
) -> datetime:
    """Compute the date of the next generation after ``reference_date``.

    Daily and custom intervals count days, the others count repetitions of
    the frequency. Month arithmetic clamps to the last day of the target
    month (Jan 31 + 1 month = Feb 28/29). Unrecognized frequencies advance by
    one month regardless of ``interval``.
    """
    interval = validate_interval(interval)
    freq = parse_frequency(frequency)

    if freq in (TemplateFrequency.DAILY, TemplateFrequency.CUSTOM):
        return reference_date + timedelta(days=interval)
    elif freq == TemplateFrequency.WEEKLY:
        return reference_date + timedelta(days=7 * interval)
    elif freq == TemplateFrequency.BIWEEKLY:
        return reference_date + timedelta(days=14 * interval)
    elif freq == TemplateFrequency.MONTHLY:
        return add_months(reference_date, interval)
    elif freq == TemplateFrequency.QUARTERLY:
        return add_months(reference_date, 3 * interval)
    elif freq == TemplateFrequency.YEARLY:
        return add_months(reference_date, 12 * interval)
    return add_months(reference_date, FALLBACK_MONTHS)
