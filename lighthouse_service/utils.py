# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

from lighthouse_service import __version__ as ls_version

logger = logging.getLogger(__name__)

FNV32_OFFSET_BASIS = 0x811C9DC5
FNV32_PRIME = 0x01000193


class only_once:
    """
    Use as a function decorator to run function only once.
    """

    def __init__(self, func):
        self.func = func
        self.configured = False

    def __call__(self, *args, **kwargs):
        if self.configured:
            logger.debug(f"Function {self.func.__name__} already called. Skipping.")
            return None

        self.configured = True
        logger.debug(
            f"Function {self.func.__name__} called for the first time with "
            f"args: {args} and kwargs: {kwargs}",
        )
        return self.func(*args, **kwargs)


def nested_get(d: Optional[dict], *keys, default=None) -> Any:
    """
    Walk a nested dictionary, return `default` as soon as a key is missing.

    >>> nested_get({"a": {"b": 1}}, "a", "b")
    1
    """
    response = d
    for k in keys:
        try:
            response = response[k]
        except (KeyError, AttributeError, TypeError, IndexError):
            return default
    return response


def set_logging(logger_name: str = "lighthouse_service", level: int = logging.INFO):
    """Log to stderr with timestamps, e.g. when running the service or the CLI."""
    package_logger = logging.getLogger(logger_name)
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-6s %(name)s: %(message)s", "%H:%M:%S"),
        )
        package_logger.addHandler(handler)


def log_package_versions(package_versions: list[tuple[str, str]]):
    """
    It does the actual logging.

    Args:
        package_versions: List of tuples having pkg name and version.
    """
    log_string = "\nPackage Versions:"
    for name, version in package_versions:
        log_string += f"\n* {name} {version}"
    logger.info(log_string)


def get_user_agent() -> str:
    return os.getenv("LIGHTHOUSE_USER_AGENT") or f"lighthouse-service/{ls_version or 'dev'}"


def is_timezone_naive_datetime(datetime_to_check: datetime) -> bool:
    # https://docs.python.org/3/library/datetime.html#determining-if-an-object-is-aware-or-naive
    return (
        datetime_to_check.tzinfo is None
        or datetime_to_check.tzinfo.utcoffset(datetime_to_check) is None
    )


def get_timezone_aware_datetime(datetime_to_update: datetime) -> datetime:
    """
    Make the datetime object timezone aware (utc) if needed.

    Args:
        datetime_to_update: datetime to check and update

    Result:
        timezone-aware datetime
    """
    if is_timezone_naive_datetime(datetime_to_update):
        return datetime_to_update.replace(tzinfo=timezone.utc)
    return datetime_to_update


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def go_utc_string(moment: datetime) -> str:
    """
    Render the time the same way as Go's `Time.UTC().String()` does,
    e.g. `2023-01-02 03:04:00 +0000 UTC`.

    The rendering is part of the periodic job names, so it has to stay
    stable across releases and replicas.
    """
    moment = get_timezone_aware_datetime(moment).astimezone(timezone.utc)
    rendered = moment.strftime("%Y-%m-%d %H:%M:%S")
    if moment.microsecond:
        rendered += f".{moment.microsecond:06d}".rstrip("0")
    return f"{rendered} +0000 UTC"


def fnv32a(data: bytes) -> int:
    """32-bit FNV-1a hash."""
    value = FNV32_OFFSET_BASIS
    for byte in data:
        value ^= byte
        value = (value * FNV32_PRIME) & 0xFFFFFFFF
    return value


def split_full_name(full_name: str) -> tuple[str, str]:
    """
    `org/repo` -> (`org`, `repo`); the namespace may contain slashes
    (GitLab subgroups), the repository name never does.
    """
    namespace, _, name = full_name.rpartition("/")
    return namespace, name
