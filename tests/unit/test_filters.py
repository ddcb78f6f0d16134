# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import pytest

from lighthouse_service.jobs.brancher import Brancher
from lighthouse_service.jobs.change_matcher import (
    ChangedFilesProvider,
    RegexpChangeMatcher,
    StaticChangedFiles,
)
from lighthouse_service.jobs.presubmit import Presubmit
from lighthouse_service.worker.filters import (
    aggregate_filter,
    determine_skipped_presubmits,
    filter_presubmits,
    get_contexts,
    presubmit_filter,
    retest_filter,
)
from lighthouse_service.worker.launch import validate_context_overlap

TRIGGER = r"(?m)^/test (?:.*? )?trigger(?: .*?)?$"
OTHER_TRIGGER = r"(?m)^/test (?:.*? )?other-trigger(?: .*?)?$"


class FailingChanges(ChangedFilesProvider):
    def get(self) -> list[str]:
        raise RuntimeError("error getting changes")


def statuses_getter():
    return (
        {"existing-error", "existing-failure"},
        {"existing-successful", "existing-pending", "existing-error", "existing-failure"},
    )


def failing_getter():
    raise RuntimeError("failed to find status for org/repo@ref")


def always_runs(**kwargs) -> Presubmit:
    return Presubmit(name="always-runs", context="always-runs", always_run=True, **kwargs)


def runs_if_changed(**kwargs) -> Presubmit:
    return Presubmit(
        name="runs-if-changed",
        context="runs-if-changed",
        change_matcher=RegexpChangeMatcher(run_if_changed="sometimes"),
        **kwargs,
    )


def runs_if_triggered() -> Presubmit:
    return Presubmit(
        name="runs-if-triggered",
        context="runs-if-triggered",
        trigger=TRIGGER,
        rerun_command="/test trigger",
    )


def job(name: str, context: str) -> Presubmit:
    return Presubmit(name=name, context=context)


@pytest.mark.parametrize(
    "body, honor_ok_to_test, presubmits, expected",
    [
        pytest.param(
            "/test all",
            False,
            [always_runs(), runs_if_changed(), runs_if_triggered()],
            [(True, False, False), (True, False, False), (False, False, False)],
            id="test-all-selects-jobs-without-explicit-trigger",
        ),
        pytest.param(
            "/ok-to-test",
            True,
            [always_runs(), runs_if_changed(), runs_if_triggered()],
            [(True, False, False), (True, False, False), (False, False, False)],
            id="honored-ok-to-test",
        ),
        pytest.param(
            "/ok-to-test",
            False,
            [always_runs(), runs_if_changed(), runs_if_triggered()],
            [(False, False, False), (False, False, False), (False, False, False)],
            id="ignored-ok-to-test",
        ),
        pytest.param(
            "/retest",
            False,
            [
                job("successful-job", "existing-successful"),
                job("pending-job", "existing-pending"),
                job("failure-job", "existing-failure"),
                job("error-job", "existing-error"),
                Presubmit(
                    name="missing-always-runs",
                    context="missing-always-runs",
                    always_run=True,
                ),
            ],
            [
                (False, False, False),
                (False, False, False),
                (True, False, True),
                (True, False, True),
                (True, False, True),
            ],
            id="retest-selects-failed-and-missing",
        ),
        pytest.param(
            "/test trigger",
            False,
            [
                always_runs(trigger=TRIGGER, rerun_command="/test trigger"),
                runs_if_changed(trigger=TRIGGER, rerun_command="/test trigger"),
                runs_if_triggered(),
                always_runs(trigger=OTHER_TRIGGER, rerun_command="/test other-trigger"),
            ],
            [(True, True, True), (True, True, True), (True, True, True), (False, False, False)],
            id="explicit-test-command",
        ),
    ],
)
def test_presubmit_filter(body, honor_ok_to_test, presubmits, expected):
    filter_ = presubmit_filter(honor_ok_to_test, statuses_getter, body)
    assert [filter_(presubmit) for presubmit in presubmits] == expected


def test_statuses_are_only_read_for_retest():
    filter_ = presubmit_filter(False, failing_getter, "not a command")
    assert filter_(always_runs()) == (False, False, False)

    with pytest.raises(RuntimeError, match="failed to find status"):
        presubmit_filter(False, failing_getter, "/retest")


def test_retest_filter():
    filter_ = retest_filter({"failed"}, {"failed", "passed"})

    assert filter_(job("a", "failed")) == (True, False, True)
    assert filter_(job("b", "passed")) == (False, False, True)
    assert filter_(Presubmit(name="c", context="never-reported", always_run=True)) == (
        True,
        False,
        True,
    )


def test_aggregate_filter_ors_only_selecting_filters():
    def selects_a(presubmit):
        return presubmit.name == "a", False, False

    def forces_everything_unselected(presubmit):
        return False, True, True

    def selects_and_defaults_a(presubmit):
        return presubmit.name == "a", False, True

    filter_ = aggregate_filter([selects_a, forces_everything_unselected, selects_and_defaults_a])

    assert filter_(job("a", "a")) == (True, False, True)
    assert filter_(job("b", "b")) == (False, False, False)
    assert aggregate_filter([])(job("a", "a")) == (False, False, False)


def test_get_contexts():
    class Status:
        def __init__(self, context, state):
            self.context = context
            self.state = state

    failed, all_contexts = get_contexts(
        [Status("ok", "success"), Status("bad", "failure"), Status("broken", "error")],
    )
    assert failed == {"bad", "broken"}
    assert all_contexts == {"ok", "bad", "broken"}


def names_and_contexts(presubmits):
    return [(presubmit.name, presubmit.context) for presubmit in presubmits]


@pytest.mark.parametrize(
    "filter_, presubmits, to_trigger, to_skip",
    [
        pytest.param(
            lambda p: (False, False, False),
            [job("ignored", "first"), job("ignored", "second")],
            [],
            [],
            id="nothing-matches",
        ),
        pytest.param(
            lambda p: (True, True, True),
            [job("should-trigger", "first"), job("should-trigger", "second")],
            [("should-trigger", "first"), ("should-trigger", "second")],
            [],
            id="everything-forced",
        ),
        pytest.param(
            lambda p: (p.name == "should-trigger", True, True),
            [job("should-trigger", "first"), job("ignored", "second")],
            [("should-trigger", "first")],
            [],
            id="some-forced",
        ),
        pytest.param(
            lambda p: (True, p.name == "should-trigger", p.name == "should-trigger"),
            [
                job("should-trigger", "first"),
                job("should-trigger", "second"),
                job("should-skip", "third"),
                job("should-skip2", "fourth"),
            ],
            [("should-trigger", "first"), ("should-trigger", "second")],
            [("should-skip", "third"), ("should-skip2", "fourth")],
            id="some-forced-others-skipped",
        ),
        pytest.param(
            lambda p: (True, p.name == "should-trigger", p.name == "should-trigger"),
            [
                job("should-trigger", "first"),
                job("should-trigger", "second"),
                job("should-skip", "third"),
                job("should-not-skip", "second"),
            ],
            [("should-trigger", "first"), ("should-trigger", "second")],
            [("should-skip", "third")],
            id="triggered-context-supersedes-skip",
        ),
        pytest.param(
            lambda p: (True, True, True),
            [
                Presubmit(name="release-only", context="release", brancher=Brancher(["^release"])),
                Presubmit(name="not-main", context="lint", brancher=Brancher([], ["^main$"])),
                job("everywhere", "unit"),
            ],
            [("everywhere", "unit")],
            [],
            id="jobs-not-for-base-ref-are-excluded",
        ),
    ],
)
def test_filter_presubmits(filter_, presubmits, to_trigger, to_skip):
    triggered, skipped = filter_presubmits(
        filter_,
        StaticChangedFiles(["README.md"]),
        "main",
        presubmits,
    )

    assert names_and_contexts(triggered) == to_trigger
    assert names_and_contexts(skipped) == to_skip
    assert not {p.context for p in triggered} & {p.context for p in skipped}
    validate_context_overlap(triggered, skipped)


def test_filter_presubmits_propagates_changes_error():
    presubmits = [
        Presubmit(
            name="errors",
            context="first",
            change_matcher=RegexpChangeMatcher(run_if_changed="oopsie"),
        ),
        job("ignored", "second"),
    ]
    with pytest.raises(RuntimeError, match="error getting changes"):
        filter_presubmits(lambda p: (True, False, False), FailingChanges(), "main", presubmits)


def test_filter_presubmits_by_changes():
    presubmits = [
        runs_if_changed(),
        Presubmit(
            name="docs",
            context="docs",
            change_matcher=RegexpChangeMatcher(run_if_changed=r"^docs/"),
        ),
    ]
    triggered, skipped = filter_presubmits(
        lambda p: (True, False, False),
        StaticChangedFiles(["pkg/sometimes.go"]),
        "main",
        presubmits,
    )

    assert names_and_contexts(triggered) == [("runs-if-changed", "runs-if-changed")]
    assert names_and_contexts(skipped) == [("docs", "docs")]


@pytest.mark.parametrize(
    "to_trigger, to_skip_superset, expected",
    [
        pytest.param([], [], [], id="no-inputs"),
        pytest.param([job("a", "foo")], [], [], id="nothing-to-choose-from"),
        pytest.param(
            [job("a", "foo"), job("b", "bar")],
            [job("c", "oof"), job("d", "rab")],
            ["oof", "rab"],
            id="disjoint",
        ),
        pytest.param(
            [job("a", "foo"), job("b", "bar")],
            [job("c", "foo"), job("d", "rab")],
            ["rab"],
            id="overlap-removed",
        ),
        pytest.param(
            [job("a", "foo"), job("b", "bar")],
            [job("c", "foo"), job("d", "bar")],
            [],
            id="full-overlap",
        ),
    ],
)
def test_determine_skipped_presubmits(to_trigger, to_skip_superset, expected):
    skipped = determine_skipped_presubmits(to_trigger, to_skip_superset)
    assert [presubmit.context for presubmit in skipped] == expected
