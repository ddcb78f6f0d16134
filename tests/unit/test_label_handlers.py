# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import pytest

from lighthouse_service.config import LgtmConfig
from lighthouse_service.constants import (
    LABEL_HOLD,
    LABEL_LGTM,
    LABEL_WIP,
    LGTM_REMOVED,
    LGTM_RESTRICTED,
    LGTM_SELF,
    OVERRIDE_NO_CONTEXT,
)
from lighthouse_service.scm.base import Status, StatusState
from lighthouse_service.worker.handlers.assign import AssignHandler
from lighthouse_service.worker.handlers.labels import HoldHandler, WipHandler
from lighthouse_service.worker.handlers.lgtm import LgtmHandler
from lighthouse_service.worker.handlers.override import OverrideHandler
from tests.spellbook import comment_event, pr_event, review_event


def run(handler_kls, event: dict, scm):
    handler = handler_kls(event)
    handler._scm = scm
    return handler.run()


@pytest.mark.parametrize(
    "body, labels, expected",
    [
        pytest.param("/hold", [], [LABEL_HOLD], id="hold"),
        pytest.param("/lh-hold", [], [LABEL_HOLD], id="prefixed"),
        pytest.param("/hold cancel", [LABEL_HOLD], [], id="cancel"),
        pytest.param("/hold\n/hold cancel", [LABEL_HOLD], [], id="cancel-wins"),
        pytest.param("/hold please", [], [], id="not-a-command"),
    ],
)
def test_hold(scm, body, labels, expected):
    scm.labels[1] = list(labels)
    result = run(HoldHandler, comment_event(body), scm)
    assert result["success"]
    assert scm.labels[1] == expected


@pytest.mark.parametrize(
    "title, draft, labels, expected",
    [
        pytest.param("WIP: add feature", False, [], [LABEL_WIP], id="wip-title"),
        pytest.param("[wip] add feature", False, [], [LABEL_WIP], id="bracketed"),
        pytest.param("Add feature", True, [], [LABEL_WIP], id="draft"),
        pytest.param("Add feature", False, [LABEL_WIP], [], id="ready"),
        pytest.param("Wipe the cache", False, [], [], id="wip-prefix-of-word"),
    ],
)
def test_wip(scm, pull_request, title, draft, labels, expected):
    pull_request.title = title
    pull_request.draft = draft
    scm.labels[1] = list(labels)
    run(WipHandler, pr_event(pull_request, action="edited"), scm)
    assert scm.labels[1] == expected


def test_assign_and_cc(scm):
    body = "/assign @alice bob\n/unassign carol\n/cc @dave\n/uncc"
    scm.assignees[1] = ["carol"]
    scm.requested_reviewers[1] = ["reviewer"]

    result = run(AssignHandler, comment_event(body, actor="reviewer"), scm)

    assert scm.assignees[1] == ["alice", "bob"]
    assert scm.requested_reviewers[1] == ["dave"]
    assert result["details"]["unrequested"] == ["reviewer"]


def test_assign_self(scm):
    run(AssignHandler, comment_event("/assign", actor="Reviewer"), scm)
    assert scm.assignees[1] == ["reviewer"]


def test_cc_ignored_on_issues(scm):
    run(AssignHandler, comment_event("/cc @dave", is_pull_request=False), scm)
    assert scm.requested_reviewers == {}


class TestLgtm:
    def test_collaborator_adds_lgtm(self, scm):
        scm.collaborators = {"reviewer"}
        run(LgtmHandler, comment_event("/lgtm"), scm)
        assert scm.labels[1] == [LABEL_LGTM]
        assert scm.assignees[1] == ["reviewer"]

    def test_author_cannot_lgtm(self, scm):
        run(LgtmHandler, comment_event("/lgtm", actor="author"), scm)
        assert scm.labels[1] == []
        (reply,) = scm.bodies(1)
        assert reply.startswith(f"@author: {LGTM_SELF}")
        assert "> /lgtm" in reply

    def test_author_can_cancel(self, scm):
        scm.labels[1] = [LABEL_LGTM]
        run(LgtmHandler, comment_event("/lgtm cancel", actor="author"), scm)
        assert scm.labels[1] == []

    def test_non_collaborator(self, scm):
        run(LgtmHandler, comment_event("/lgtm", actor="stranger"), scm)
        assert scm.labels[1] == []
        assert scm.bodies(1)[0].startswith(f"@stranger: {LGTM_RESTRICTED}")

    def test_review_acts_as_lgtm(self, scm, pull_request, global_service_config):
        global_service_config.lgtm = [LgtmConfig(repos=["org"], review_acts_as_lgtm=True)]
        scm.collaborators = {"reviewer"}
        run(LgtmHandler, review_event(pull_request, state="APPROVED"), scm)
        assert scm.labels[1] == [LABEL_LGTM]

    def test_review_without_command(self, scm, pull_request):
        scm.collaborators = {"reviewer"}
        result = run(LgtmHandler, review_event(pull_request, state="APPROVED"), scm)
        assert result["details"]["msg"] == "No LGTM command."
        assert scm.labels[1] == []

    def test_push_removes_lgtm(self, scm, pull_request):
        scm.labels[1] = [LABEL_LGTM]
        run(LgtmHandler, pr_event(pull_request, action="synchronize"), scm)
        assert scm.labels[1] == []
        assert scm.bodies(1) == [LGTM_REMOVED]


class TestOverride:
    @pytest.fixture()
    def failing_scm(self, scm):
        scm.create_status(
            "org",
            "repo",
            "head-sha",
            Status(state=StatusState.failure, context="unit", target_url="https://ci/1"),
        )
        scm.create_status("org", "repo", "head-sha", Status(StatusState.success, "lint"))
        return scm

    def test_no_context(self, failing_scm):
        run(OverrideHandler, comment_event("/override", actor="admin"), failing_scm)
        assert OVERRIDE_NO_CONTEXT in failing_scm.bodies(1)[0]

    def test_unauthorized(self, failing_scm):
        run(OverrideHandler, comment_event("/override unit", actor="reviewer"), failing_scm)
        assert "reviewer unauthorized" in failing_scm.bodies(1)[0]
        assert len(failing_scm.statuses["head-sha"]) == 2

    def test_unknown_context(self, failing_scm):
        failing_scm.admins = {"admin"}
        run(OverrideHandler, comment_event("/override e2e", actor="admin"), failing_scm)
        reply = failing_scm.bodies(1)[0]
        assert "unknown contexts were given:\n - e2e" in reply
        assert "expected:\n - unit" in reply

    def test_override(self, failing_scm, global_service_config):
        global_service_config.admins = {"admin"}
        run(OverrideHandler, comment_event("/override unit", actor="admin"), failing_scm)

        latest = failing_scm.get_combined_status("org", "repo", "head-sha").statuses
        assert Status(
            state=StatusState.success,
            context="unit",
            description="Overridden by admin",
            target_url="https://ci/1",
        ) in latest
        assert "Overrode contexts on behalf of admin: unit" in failing_scm.bodies(1)[0]
