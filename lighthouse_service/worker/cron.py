# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Standard 5-field cron expressions evaluated in UTC.

Field parsing is delegated to celery's crontab so that the syntax
matches the one used for the celery beat schedule.
"""

import logging
from datetime import datetime, timedelta, timezone

from celery.schedules import ParseException, crontab

from lighthouse_service.utils import get_timezone_aware_datetime

logger = logging.getLogger(__name__)

DESCRIPTORS = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}

# look this far ahead for the next tick, e.g. `0 0 29 2 *` fires once in 4 years
MAX_LOOKAHEAD = timedelta(days=366 * 8)


class CronSchedule:
    def __init__(
        self,
        expression: str,
        minutes: set[int],
        hours: set[int],
        days_of_month: set[int],
        months: set[int],
        days_of_week: set[int],
        dom_restricted: bool,
        dow_restricted: bool,
    ):
        self.expression = expression
        self.minutes = minutes
        self.hours = hours
        self.days_of_month = days_of_month
        self.months = months
        self.days_of_week = days_of_week
        self.dom_restricted = dom_restricted
        self.dow_restricted = dow_restricted

    def __repr__(self):
        return f"CronSchedule({self.expression!r})"

    @classmethod
    def parse(cls, expression: str) -> "CronSchedule":
        """
        Raises:
            ValueError: the expression is not a valid cron expression
        """
        expression = (expression or "").strip()
        spec = DESCRIPTORS.get(expression.lower(), expression)
        fields = spec.split()
        if len(fields) != 5:
            raise ValueError(f"expected exactly 5 fields, found {len(fields)}: {expression!r}")

        minute, hour, day_of_month, month, day_of_week = fields
        # cron allows 7 for Sunday
        day_of_week = ",".join("0" if part == "7" else part for part in day_of_week.split(","))
        try:
            parsed = crontab(
                minute=minute,
                hour=hour,
                day_of_month=day_of_month,
                month_of_year=month,
                day_of_week=day_of_week,
            )
        except (ParseException, ValueError) as ex:
            raise ValueError(f"invalid cron expression {expression!r}: {ex}") from ex

        return cls(
            expression=expression,
            minutes=set(parsed.minute),
            hours=set(parsed.hour),
            days_of_month=set(parsed.day_of_month),
            months=set(parsed.month_of_year),
            days_of_week=set(parsed.day_of_week),
            dom_restricted=not day_of_month.startswith("*"),
            dow_restricted=not day_of_week.startswith("*"),
        )

    def _day_matches(self, moment: datetime) -> bool:
        dom = moment.day in self.days_of_month
        # cron counts the days of week from Sunday
        dow = (moment.weekday() + 1) % 7 in self.days_of_week
        if self.dom_restricted and self.dow_restricted:
            return dom or dow
        return dom and dow

    def next(self, after: datetime) -> datetime:
        """First tick strictly after the given time, in UTC."""
        after = get_timezone_aware_datetime(after).astimezone(timezone.utc)
        moment = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
        limit = moment + MAX_LOOKAHEAD

        while moment < limit:
            if moment.month not in self.months:
                moment = (moment.replace(day=1) + timedelta(days=32)).replace(
                    day=1,
                    hour=0,
                    minute=0,
                )
                continue
            if not self._day_matches(moment):
                moment = (moment + timedelta(days=1)).replace(hour=0, minute=0)
                continue
            if moment.hour not in self.hours:
                moment = (moment + timedelta(hours=1)).replace(minute=0)
                continue
            if moment.minute not in self.minutes:
                moment += timedelta(minutes=1)
                continue
            return moment

        raise ValueError(f"{self.expression!r} never fires")

    def interval_at(self, moment: datetime) -> timedelta:
        """Distance between the two ticks following the given time."""
        first = self.next(moment)
        return self.next(first) - first
