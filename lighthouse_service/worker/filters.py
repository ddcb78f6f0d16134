# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Selection of the presubmits a comment asks for.

A filter maps a presubmit to `(should_run, forced, default)`:
whether the presubmit is selected at all, whether it is forced to run
regardless of the changes and what it does when nothing else decides.
"""

import logging
import re
from typing import Callable

from lighthouse_service.jobs.change_matcher import ChangedFilesProvider
from lighthouse_service.jobs.presubmit import Presubmit

logger = logging.getLogger(__name__)

Filter = Callable[[Presubmit], tuple[bool, bool, bool]]
ContextGetter = Callable[[], tuple[set[str], set[str]]]

TEST_ALL_RE = re.compile(r"(?m)^/(?:lh-)?test all,?($|\s.*)")
RETEST_RE = re.compile(r"(?m)^/(?:lh-)?retest\s*$")
OK_TO_TEST_RE = re.compile(r"(?m)^/(?:lh-)?ok-to-test\s*$")
TEST_WITH_NAMES_RE = re.compile(r"(?m)^/(?:lh-)?test\s+(\S.*?)\s*$")


def test_all_filter() -> Filter:
    """Jobs which do not need a human to trigger them."""

    def _filter(presubmit: Presubmit) -> tuple[bool, bool, bool]:
        return not presubmit.needs_explicit_trigger(), False, False

    return _filter


def command_filter(body: str) -> Filter:
    """Jobs whose trigger matches the comment."""

    def _filter(presubmit: Presubmit) -> tuple[bool, bool, bool]:
        return presubmit.trigger_matches(body), True, True

    return _filter


def retest_filter(failed_contexts: set[str], all_contexts: set[str]) -> Filter:
    """Jobs which failed and jobs which always run but never reported."""

    def _filter(presubmit: Presubmit) -> tuple[bool, bool, bool]:
        failed = presubmit.context in failed_contexts
        missing = presubmit.always_run and presubmit.context not in all_contexts
        return failed or missing, False, True

    return _filter


def aggregate_filter(filters: list[Filter]) -> Filter:
    """
    Union of the filters. The flags are OR-ed over the filters
    which selected the presubmit, so that a filter which did not select
    the job cannot force it to run.
    """

    def _filter(presubmit: Presubmit) -> tuple[bool, bool, bool]:
        selected, forced, default = False, False, False
        for current in filters:
            should_run, should_force, should_default = current(presubmit)
            if not should_run:
                continue
            selected = True
            forced = forced or should_force
            default = default or should_default
        return selected, forced, default

    return _filter


def expand_test_commands(body: str) -> list[str]:
    """
    Split every `/test a,b c` line to one `/test <name>` line per name.
    `/test all` is left to the test-all filter.
    """
    commands = []
    for match in TEST_WITH_NAMES_RE.finditer(body):
        for name in re.split(r"[\s,]+", match.group(1)):
            if name and name != "all":
                commands.append(f"/test {name}")
    return commands


def presubmit_filter(honor_ok_to_test: bool, context_getter: ContextGetter, body: str) -> Filter:
    """
    Build the filter for the comment `body`. The statuses are only
    read from the forge when the comment asks for a retest, errors of
    the `context_getter` are propagated then.
    """
    filters: list[Filter] = []

    if TEST_ALL_RE.search(body) or (honor_ok_to_test and OK_TO_TEST_RE.search(body)):
        logger.debug("Using test-all filter.")
        filters.append(test_all_filter())

    if RETEST_RE.search(body):
        logger.debug("Using retest filter.")
        failed_contexts, all_contexts = context_getter()
        filters.append(retest_filter(failed_contexts, all_contexts))

    # the whole body is matched too, custom triggers don't have to look like /test
    filters.append(command_filter(body))
    for command in expand_test_commands(body):
        logger.debug(f"Using command filter for {command!r}.")
        filters.append(command_filter(command))

    return aggregate_filter(filters)


def filter_presubmits(
    filter_: Filter,
    changes: ChangedFilesProvider,
    base_ref: str,
    presubmits: list[Presubmit],
) -> tuple[list[Presubmit], list[Presubmit]]:
    """
    Split the presubmits selected by the filter into the ones to trigger
    and the ones to report as skipped.

    Presubmits not configured for `base_ref` are in neither of them.
    """
    to_trigger: list[Presubmit] = []
    to_skip_superset: list[Presubmit] = []

    for presubmit in presubmits:
        matches, forced, default = filter_(presubmit)
        if not matches or not presubmit.could_run(base_ref):
            continue
        if presubmit.should_run(base_ref, changes, forced, default):
            to_trigger.append(presubmit)
        else:
            to_skip_superset.append(presubmit)

    to_skip = determine_skipped_presubmits(to_trigger, to_skip_superset)
    logger.info(
        f"Filtered {len(presubmits)} jobs, found {len(to_trigger)} to trigger "
        f"and {len(to_skip)} to skip.",
    )
    return to_trigger, to_skip


def determine_skipped_presubmits(
    to_trigger: list[Presubmit],
    to_skip_superset: list[Presubmit],
) -> list[Presubmit]:
    """Drop the skipped jobs which report to a context a triggered job reports to."""
    triggered_contexts = {presubmit.context for presubmit in to_trigger}
    to_skip = []
    for presubmit in to_skip_superset:
        if presubmit.context in triggered_contexts:
            logger.debug(
                f"Not skipping job {presubmit.name}, its context {presubmit.context} "
                "is reported by a triggered job.",
            )
            continue
        to_skip.append(presubmit)
    return to_skip


def get_contexts(statuses) -> tuple[set[str], set[str]]:
    """Failed and all contexts of the combined status."""
    failed, all_contexts = set(), set()
    for status in statuses:
        all_contexts.add(status.context)
        if status.state in ("error", "failure"):
            failed.add(status.context)
    return failed, all_contexts
