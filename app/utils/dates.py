"""날짜 계산 유틸리티.

Date arithmetic helpers for billing cycles.
"""

import calendar
from datetime import datetime


def add_months(value: datetime, months: int) -> datetime:
    """월 단위로 일시를 이동합니다. 말일을 넘으면 해당 월 말일로 맞춥니다.

    Shift a datetime by whole calendar months, clamping the day to the
    last day of the target month (2024-01-31 + 1 month -> 2024-02-29).

    Args:
        value: 기준 일시 (Base datetime, tz-aware or naive)
        months: 이동할 개월 수 (Months to add, may be negative)

    Returns:
        datetime: 이동된 일시, 시간/타임존 유지 (Shifted datetime, time and tzinfo kept)
    """
    month_index: int = value.month - 1 + months
    year: int = value.year + month_index // 12
    month: int = month_index % 12 + 1
    day: int = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def cycle_end(anchor: datetime, period_start: datetime, term_months: int) -> datetime:
    """구독 시작일 기준으로 청구 주기의 종료 일시를 계산합니다.

    End of the billing cycle that starts at ``period_start``, counted in
    whole terms from the subscription ``anchor``. Counting from the anchor
    keeps month-end starts on the month end (01-31 -> 02-29 -> 03-31)
    instead of drifting to the shortest month's day.
    """
    term: int = max(1, term_months)
    elapsed: int = (period_start.year - anchor.year) * 12 + period_start.month - anchor.month
    end: datetime = add_months(anchor, (elapsed // term + 1) * term)
    # 종료일은 항상 시작일 이후 — The end never precedes the start
    if end <= period_start:
        return add_months(period_start, term)
    return end
