# app/settlement_cycle.py

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from app.errors import InvalidCycleError

_CYCLE_RE = re.compile(r"^(\d{4})-(\d{2})-C([123])$")

# Primo giorno di ciascun ciclo: C1 = 1-10, C2 = 11-20, C3 = 21-fine mese
_CYCLE_START_DAY = {1: 1, 2: 11, 3: 21}


@dataclass(frozen=True)
class SettlementCycle:
    year: int
    month: int
    number: int

    @property
    def key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-C{self.number}"

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, _CYCLE_START_DAY[self.number])

    @property
    def last_day(self) -> date:
        if self.number == 3:
            return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])
        return date(self.year, self.month, _CYCLE_START_DAY[self.number + 1] - 1)

    def window(self, tz: Optional[ZoneInfo] = None) -> tuple[datetime, datetime]:
        """Intervallo semiaperto [start, end) del ciclo."""
        start = datetime.combine(self.first_day, datetime.min.time(), tzinfo=tz)
        end = datetime.combine(self.last_day + timedelta(days=1), datetime.min.time(), tzinfo=tz)
        return start, end

    def __str__(self) -> str:
        return self.key


def _cycle_number(day: int) -> int:
    if day <= 10:
        return 1
    if day <= 20:
        return 2
    return 3


def cycle_for(value: Union[date, datetime]) -> SettlementCycle:
    # il chiamante passa un timestamp già nel fuso orario di reporting
    return SettlementCycle(value.year, value.month, _cycle_number(value.day))


def cycle_of(value: Union[date, datetime]) -> str:
    return cycle_for(value).key


def parse_cycle(key: str) -> SettlementCycle:
    m = _CYCLE_RE.match((key or "").strip())
    if not m:
        raise InvalidCycleError(f"Invalid settlement cycle '{key}', expected YYYY-MM-Cn")
    year, month, number = int(m.group(1)), int(m.group(2)), int(m.group(3))
    if not 1 <= month <= 12 or year < 1:
        raise InvalidCycleError(f"Invalid settlement cycle '{key}': bad month")
    return SettlementCycle(year, month, number)


def to_reporting_time(value: datetime, tz: ZoneInfo) -> datetime:
    """
    Porta un timestamp nel fuso di reporting (naive).
    I timestamp naive sono considerati già normalizzati.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(tz).replace(tzinfo=None)


def current_cycle(tz: ZoneInfo, now: Optional[datetime] = None) -> SettlementCycle:
    now = now or datetime.now(tz)
    return cycle_for(to_reporting_time(now, tz))
