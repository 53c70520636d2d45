from __future__ import annotations
import calendar as _cal
from datetime import date, timedelta
from typing import Dict, Iterable, List, Tuple

from therasuite.models import Session


def start_of_week(d: date) -> date:
    """일요일 시작 주"""
    return d - timedelta(days=(d.weekday() + 1) % 7)

def view_range(view: str, anchor: date) -> Tuple[date, date]:
    if view == "day":
        return anchor, anchor
    if view == "week":
        start = start_of_week(anchor)
        return start, start + timedelta(days=6)
    if view == "month":
        first = anchor.replace(day=1)
        last = anchor.replace(day=_cal.monthrange(anchor.year, anchor.month)[1])
        # 월 달력 그리드는 앞뒤 주를 채운다
        return start_of_week(first), start_of_week(last) + timedelta(days=6)
    raise ValueError(f"unknown calendar view: {view}")

def group_by_day(sessions: Iterable[Session], start: date, end: date) -> List[Tuple[date, List[Session]]]:
    buckets: Dict[date, List[Session]] = {}
    day = start
    while day <= end:
        buckets[day] = []
        day += timedelta(days=1)
    for s in sessions:
        if s.date in buckets:
            buckets[s.date].append(s)
    for items in buckets.values():
        items.sort(key=lambda s: (s.start_time, s.id))
    return list(buckets.items())
