# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from datetime import timedelta

import pytest
from flexmock import flexmock

from lighthouse_service.config import ApproveConfig
from lighthouse_service.constants import LABEL_APPROVED
from lighthouse_service.owners.parser import parse_owners
from lighthouse_service.owners.repo_owners import RepoAliases, RepoOwners
from lighthouse_service.scm.base import Change, IssueEvent, Review, ReviewState
from lighthouse_service.worker import mixin
from lighthouse_service.worker.approve.approvers import Approvers
from lighthouse_service.worker.approve.engine import (
    ApprovalEngine,
    HistoryItem,
    find_associated_issue,
)
from lighthouse_service.worker.approve.notification import NOTIFICATION_RE
from lighthouse_service.worker.approve.owners import Owners, find_most_covering_approver
from lighthouse_service.worker.handlers.approve import ApproveHandler
from tests.spellbook import T0, comment_event, pr_event


@pytest.fixture()
def repo_owners() -> RepoOwners:
    """
    /        approvers: root
    docs/    approvers: writers (alice)
    api/     approvers: bob, no_parent_owners
    """
    owners = RepoOwners(aliases=RepoAliases({"writers": {"alice"}}))
    owners.apply_owners_file("", parse_owners("approvers: [root]"))
    owners.apply_owners_file("docs", parse_owners("approvers: [writers]"))
    owners.apply_owners_file(
        "api",
        parse_owners("approvers: [bob]\noptions:\n  no_parent_owners: true"),
    )
    return owners


@pytest.fixture()
def docs_pr(scm, pull_request):
    scm.changes[1] = [Change(path="docs/guide.md")]
    return pull_request


def engine_for(scm, repo_owners, **options) -> ApprovalEngine:
    return ApprovalEngine(scm, repo_owners, ApproveConfig(**options))


def notifications(scm) -> list[str]:
    return [body for body in scm.bodies(1) if NOTIFICATION_RE.match(body)]


def test_find_associated_issue():
    assert find_associated_issue("Fixes #12", "org") == 12
    assert find_associated_issue("See https://github.com/org/repo/issues/7", "org") == 7
    assert find_associated_issue("no reference", "org") == 0


def test_find_most_covering_approver():
    reverse_map = {"alice": {"a"}, "bob": {"a", "b"}, "carol": {"c"}}
    assert find_most_covering_approver(["alice", "bob", "carol"], reverse_map, {"a", "b"}) == "bob"
    assert find_most_covering_approver(["alice"], reverse_map, {"c"}) == ""


def test_owners_set_removes_subdirectories(repo_owners):
    owners = Owners(["docs/guide.md", "README.md", "api/v1/spec.yaml"], repo_owners, 1)
    # api does not inherit the root OWNERS, so it needs its own approval
    assert owners.get_owners_set() == {"", "api"}
    assert owners.get_approvers() == {"": {"root"}, "api": {"bob"}}


def test_approvers_cover_files(repo_owners):
    approvers = Approvers(Owners(["docs/guide.md", "api/x.go"], repo_owners, 1))
    approvers.add_approver("Alice", "https://link", False)
    assert approvers.unapproved_files() == {"api"}
    assert approvers.get_ccs() == ["bob"]

    approvers.add_approver("bob", "https://link", False)
    assert approvers.is_approved()

    approvers.remove_approver("ALICE")
    assert approvers.unapproved_files() == {"docs"}


def test_no_issue_approval_is_kept(repo_owners):
    approvers = Approvers(Owners(["docs/guide.md"], repo_owners, 1))
    approvers.require_issue = True
    approvers.add_approver("alice", "", True)
    approvers.add_approver("alice", "", False)
    assert approvers.approvals["alice"].no_issue
    assert approvers.requirements_met()


class TestReconcile:
    def test_not_approved(self, scm, docs_pr, repo_owners):
        assert not engine_for(scm, repo_owners).reconcile(docs_pr)

        (notification,) = notifications(scm)
        assert notification.startswith("[APPROVALNOTIFIER] This PR is **NOT APPROVED**")
        assert "please assign **alice**" in notification
        assert "`/assign @alice`" in notification
        link = "https://github.com/org/repo/blob/main/docs/OWNERS"
        assert f"- **[docs/OWNERS]({link})**" in notification
        assert '<!-- META={"approvers":["alice"]} -->' in notification
        assert LABEL_APPROVED not in scm.labels[1]

    def test_approve_command(self, scm, docs_pr, repo_owners):
        scm.comment_as(1, "alice", "/approve")

        assert engine_for(scm, repo_owners).reconcile(docs_pr)

        assert scm.labels[1] == [LABEL_APPROVED]
        (notification,) = notifications(scm)
        assert notification.startswith("[APPROVALNOTIFIER] This PR is **APPROVED**")
        assert "- ~~[docs/OWNERS]" in notification
        assert "[alice]" in notification

    def test_notification_is_replaced(self, scm, docs_pr, repo_owners):
        engine = engine_for(scm, repo_owners)
        engine.reconcile(docs_pr)
        engine.reconcile(docs_pr)
        assert len(notifications(scm)) == 1
        (first,) = scm.comments[1]

        scm.comment_as(1, "alice", "/lh-approve")
        engine.reconcile(docs_pr)

        assert scm.deleted_comments == [first.id]
        assert scm.bodies(1)[0] == "/lh-approve"
        assert "**APPROVED**" in notifications(scm)[0]

    def test_approve_cancel(self, scm, docs_pr, repo_owners):
        engine = engine_for(scm, repo_owners)
        scm.comment_as(1, "alice", "/approve")
        assert engine.reconcile(docs_pr)

        scm.comment_as(1, "alice", "/approve cancel")
        assert not engine.reconcile(docs_pr)
        assert scm.labels[1] == []

    def test_manually_approved(self, scm, docs_pr, repo_owners):
        scm.labels[1] = [LABEL_APPROVED]
        scm.issue_events[1] = [IssueEvent(event="labeled", actor="maintainer", label="approved")]

        assert engine_for(scm, repo_owners).reconcile(docs_pr)

        notification = notifications(scm)[0]
        assert "Approval requirements bypassed by manually added approval." in notification
        assert scm.labels[1] == [LABEL_APPROVED]

    def test_label_added_by_bot_is_removed(self, scm, docs_pr, repo_owners):
        scm.labels[1] = [LABEL_APPROVED]
        scm.issue_events[1] = [
            IssueEvent(event="labeled", actor="lighthouse-bot", label="approved"),
        ]
        assert not engine_for(scm, repo_owners).reconcile(docs_pr)
        assert scm.labels[1] == []

    @pytest.mark.parametrize(
        "state, ignore_review_state, approved",
        [
            (ReviewState.approved, None, True),
            (ReviewState.approved, True, False),
            (ReviewState.commented, None, False),
        ],
    )
    def test_review_state(self, scm, docs_pr, repo_owners, state, ignore_review_state, approved):
        scm.reviews[1] = [
            Review(id=5, body="", author="alice", state=state, created=T0 + timedelta(hours=1)),
        ]
        engine = engine_for(scm, repo_owners, ignore_review_state=ignore_review_state)
        assert engine.reconcile(docs_pr) == approved

    def test_changes_requested_removes_approval(self, scm, docs_pr, repo_owners):
        scm.comment_as(1, "alice", "/approve")
        scm.reviews[1] = [
            Review(
                id=5,
                body="",
                author="alice",
                state=ReviewState.changes_requested,
                created=T0 + timedelta(hours=1),
            ),
        ]
        assert not engine_for(scm, repo_owners).reconcile(docs_pr)

    @pytest.mark.parametrize("lgtm_acts_as_approve", [True, False])
    def test_lgtm_acts_as_approve(self, scm, docs_pr, repo_owners, lgtm_acts_as_approve):
        scm.comment_as(1, "alice", "/lgtm")
        engine = engine_for(scm, repo_owners, lgtm_acts_as_approve=lgtm_acts_as_approve)
        assert engine.reconcile(docs_pr) == lgtm_acts_as_approve

    @pytest.mark.parametrize(
        "require_self_approval, approved",
        [(None, True), (False, True), (True, False)],
    )
    def test_self_approval(self, scm, docs_pr, repo_owners, require_self_approval, approved):
        docs_pr.author = "alice"
        engine = engine_for(scm, repo_owners, require_self_approval=require_self_approval)
        assert engine.reconcile(docs_pr) == approved

    def test_bot_commands_are_ignored(self, scm, docs_pr, repo_owners):
        scm.comment_as(1, "lighthouse-bot", "/approve")
        scm.comment_as(1, "openshift-merge-robot", "/approve")
        assert not engine_for(scm, repo_owners).reconcile(docs_pr)

    def test_issue_required(self, scm, docs_pr, repo_owners):
        scm.comment_as(1, "alice", "/approve")
        engine = engine_for(scm, repo_owners, issue_required=True)

        assert not engine.reconcile(docs_pr)
        assert "*No associated issue*" in notifications(scm)[0]

        docs_pr.body = "Fixes #12"
        assert engine.reconcile(docs_pr)
        assert "Associated issue: *#12*" in notifications(scm)[0]

    def test_issue_requirement_bypassed(self, scm, docs_pr, repo_owners):
        scm.comment_as(1, "alice", "/approve no-issue")
        assert engine_for(scm, repo_owners, issue_required=True).reconcile(docs_pr)
        assert "Associated issue requirement bypassed by: *[alice]" in notifications(scm)[0]


@pytest.fixture()
def owners_client(monkeypatch):
    client = flexmock()
    monkeypatch.setitem(mixin._owners_clients, "https://github.com", client)
    return client


def run(event: dict, scm):
    handler = ApproveHandler(event)
    handler._scm = scm
    return handler.run()


def test_handler_approves(scm, docs_pr, repo_owners, owners_client):
    owners_client.should_receive("load_repo_owners").with_args("org", "repo", "main").and_return(
        repo_owners,
    )
    scm.comment_as(1, "alice", "/approve")

    result = run(comment_event("/approve", actor="alice"), scm)

    assert result["details"]["approved"]
    assert scm.labels[1] == [LABEL_APPROVED]


def test_handler_ignores_unrelated_comment(scm, owners_client):
    owners_client.should_receive("load_repo_owners").never()
    result = run(comment_event("/hold"), scm)
    assert result["details"]["msg"] == "Event does not affect the approval state."


def test_handler_ignores_label_added_by_bot(scm, pull_request, owners_client):
    owners_client.should_receive("load_repo_owners").never()
    event = pr_event(pull_request, action="labeled", label=LABEL_APPROVED, actor="lighthouse-bot")
    assert not run(event, scm)["details"].get("approved")


@pytest.mark.parametrize(
    "action, label, handles",
    [
        ("opened", "", True),
        ("synchronize", "", True),
        ("labeled", LABEL_APPROVED, True),
        ("unlabeled", LABEL_APPROVED, True),
        ("labeled", "lgtm", False),
        ("edited", "", False),
    ],
)
def test_handler_handles(pull_request, action, label, handles):
    event = ApproveHandler(pr_event(pull_request, action=action, label=label)).event
    assert ApproveHandler.handles(event) == handles


def test_is_approval_command(scm, repo_owners):
    engine = engine_for(scm, repo_owners)
    assert engine.is_approval_command(HistoryItem(body="/approve", author="alice"))
    assert engine.is_approval_command(HistoryItem(body="LGTM\n/Approve cancel", author="alice"))
    assert not engine.is_approval_command(HistoryItem(body="/lgtm", author="alice"))
    assert not engine.is_approval_command(HistoryItem(body="please /approve", author="alice"))
