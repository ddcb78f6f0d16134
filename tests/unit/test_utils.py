# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from datetime import datetime, timezone

import pytest

from lighthouse_service.utils import (
    fnv32a,
    get_timezone_aware_datetime,
    go_utc_string,
    nested_get,
    only_once,
    split_full_name,
)


@pytest.mark.parametrize(
    "data, expected",
    [
        # test vectors of the reference FNV implementation
        (b"", 0x811C9DC5),
        (b"a", 0xE40C292C),
        (b"foobar", 0xBF9CF968),
    ],
)
def test_fnv32a(data, expected):
    assert fnv32a(data) == expected


@pytest.mark.parametrize(
    "moment, expected",
    [
        (datetime(2023, 1, 2, 3, 4, tzinfo=timezone.utc), "2023-01-02 03:04:00 +0000 UTC"),
        (datetime(2023, 1, 2, 3, 4), "2023-01-02 03:04:00 +0000 UTC"),
        (
            datetime(2023, 1, 2, 3, 4, 5, 120000, tzinfo=timezone.utc),
            "2023-01-02 03:04:05.12 +0000 UTC",
        ),
    ],
)
def test_go_utc_string(moment, expected):
    assert go_utc_string(moment) == expected


def test_nested_get():
    assert nested_get({"a": {"b": [1, 2]}}, "a", "b", 1) == 2
    assert nested_get({"a": None}, "a", "b", default="x") == "x"
    assert nested_get(None, "a") is None


def test_only_once():
    calls = []

    @only_once
    def configure():
        calls.append(1)
        return "configured"

    assert configure() == "configured"
    assert configure() is None
    assert calls == [1]


def test_split_full_name():
    assert split_full_name("group/subgroup/repo") == ("group/subgroup", "repo")


def test_get_timezone_aware_datetime():
    assert get_timezone_aware_datetime(datetime(2023, 1, 1)).tzinfo == timezone.utc
