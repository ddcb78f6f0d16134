# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from datetime import datetime, timedelta, timezone

import pytest

from lighthouse_service.worker.cron import CronSchedule


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "expression, after, expected",
    [
        pytest.param("*/15 * * * *", utc(2023, 1, 2, 3, 4), utc(2023, 1, 2, 3, 15), id="step"),
        pytest.param("*/15 * * * *", utc(2023, 1, 2, 3, 15), utc(2023, 1, 2, 3, 30), id="strict"),
        pytest.param("@daily", utc(2023, 1, 2, 3, 4), utc(2023, 1, 3, 0, 0), id="descriptor"),
        pytest.param("0 12 * * *", utc(2023, 12, 31, 13), utc(2024, 1, 1, 12), id="new-year"),
        pytest.param("0 0 * * 7", utc(2023, 1, 2), utc(2023, 1, 8), id="sunday-as-7"),
        pytest.param("0 0 1 * 1", utc(2023, 1, 1, 0, 0), utc(2023, 1, 2), id="dom-or-dow"),
        pytest.param("30 2 29 2 *", utc(2023, 3, 1), utc(2024, 2, 29, 2, 30), id="leap-day"),
    ],
)
def test_next(expression, after, expected):
    assert CronSchedule.parse(expression).next(after) == expected


def test_next_naive_datetime_is_utc():
    assert CronSchedule.parse("0 * * * *").next(datetime(2023, 1, 2, 3, 4)) == utc(2023, 1, 2, 4)


@pytest.mark.parametrize(
    "expression",
    [
        pytest.param("", id="empty"),
        pytest.param("* * *", id="too-few-fields"),
        pytest.param("* * * * * *", id="too-many-fields"),
        pytest.param("foo * * * *", id="garbage"),
    ],
)
def test_parse_invalid(expression):
    with pytest.raises(ValueError):
        CronSchedule.parse(expression)


@pytest.mark.parametrize(
    "expression, interval",
    [
        ("*/5 * * * *", timedelta(minutes=5)),
        ("@hourly", timedelta(hours=1)),
        ("0 0 * * *", timedelta(days=1)),
    ],
)
def test_interval_at(expression, interval):
    assert CronSchedule.parse(expression).interval_at(utc(2023, 1, 2, 3, 4)) == interval
