# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import pytest

from lighthouse_service.events.comment import Comment
from lighthouse_service.events.deployment import DeploymentStatus
from lighthouse_service.events.enums import CommentAction, PullRequestAction, ReviewAction
from lighthouse_service.events.pr import Action
from lighthouse_service.events.push import Push
from lighthouse_service.events.review import Review
from lighthouse_service.scm.base import ProviderType, ReviewState
from lighthouse_service.worker.parser import NULL_SHA, Parser

REPOSITORY = {
    "name": "repo",
    "html_url": "https://github.com/org/repo",
    "clone_url": "https://github.com/org/repo.git",
    "owner": {"login": "org"},
}

PULL_REQUEST = {
    "number": 42,
    "title": "Add a feature",
    "body": "Fixes #1",
    "html_url": "https://github.com/org/repo/pull/42",
    "state": "open",
    "draft": False,
    "user": {"login": "author", "html_url": "https://github.com/author"},
    "base": {"ref": "main", "sha": "base-sha"},
    "head": {"ref": "feature", "sha": "head-sha"},
    "labels": [{"name": "ok-to-test"}],
    "assignees": [{"login": "reviewer"}],
}


def github_pr_event(action: str, **extra) -> dict:
    return {
        "action": action,
        "pull_request": PULL_REQUEST,
        "repository": REPOSITORY,
        "sender": {"login": "reviewer"},
        **extra,
    }


def test_github_pr_opened():
    event = Parser.parse_event(github_pr_event("opened"))

    assert isinstance(event, Action)
    assert event.action == PullRequestAction.opened
    assert event.actor == "reviewer"
    assert event.full_name == "org/repo"
    assert event.provider == ProviderType.github
    assert event.clone_url == "https://github.com/org/repo.git"

    pull_request = event.pull_request
    assert pull_request.number == 42
    assert pull_request.author == "author"
    assert pull_request.base_ref == "main"
    assert pull_request.head_sha == "head-sha"
    assert pull_request.labels == ["ok-to-test"]
    assert pull_request.assignees == ["reviewer"]
    assert not pull_request.closed


def test_github_pr_labeled():
    event = Parser.parse_pr_event(github_pr_event("labeled", label={"name": "lgtm"}))
    assert event.action == PullRequestAction.labeled
    assert event.label == "lgtm"


def test_github_pr_base_changed():
    event = Parser.parse_pr_event(
        github_pr_event("edited", changes={"base": {"ref": {"from": "dev"}}}),
    )
    assert event.previous_base_ref == "dev"


def test_github_pr_unknown_action():
    assert Parser.parse_pr_event(github_pr_event("auto_merge_enabled")) is None


def test_github_review():
    event = Parser.parse_event(
        {
            "action": "submitted",
            "review": {
                "id": 7,
                "body": "/lgtm",
                "state": "approved",
                "html_url": "https://github.com/org/repo/pull/42#pullrequestreview-7",
                "user": {"login": "reviewer"},
            },
            "pull_request": PULL_REQUEST,
            "repository": REPOSITORY,
        },
    )

    assert isinstance(event, Review)
    assert event.action == ReviewAction.submitted
    assert event.state == ReviewState.approved
    assert event.body == "/lgtm"
    assert event.number == 42


@pytest.mark.parametrize(
    "issue, is_pull_request",
    [
        ({"number": 42, "pull_request": {"url": "..."}}, True),
        ({"number": 42}, False),
    ],
)
def test_github_issue_comment(issue, is_pull_request):
    event = Parser.parse_event(
        {
            "action": "created",
            "issue": {**issue, "user": {"login": "author"}, "state": "open"},
            "comment": {
                "id": 1234,
                "body": "/test all",
                "html_url": "https://github.com/org/repo/pull/42#issuecomment-1234",
                "user": {"login": "reviewer"},
            },
            "repository": REPOSITORY,
        },
    )

    assert isinstance(event, Comment)
    assert event.action == CommentAction.created
    assert event.is_pull_request == is_pull_request
    assert event.issue_author == "author"
    assert event.actor == "reviewer"
    assert event.body == "/test all"
    assert event.is_open


def test_github_review_comment():
    event = Parser.parse_github_comment_event(
        {
            "action": "created",
            "pull_request": PULL_REQUEST,
            "comment": {"id": 5, "body": "/hold", "user": {"login": "reviewer"}},
            "repository": REPOSITORY,
        },
    )
    assert event.is_pull_request
    assert event.number == 42
    assert event.issue_author == "author"


def test_github_push():
    event = Parser.parse_event(
        {
            "ref": "refs/heads/main",
            "before": "old-sha",
            "after": "new-sha",
            "compare": "https://github.com/org/repo/compare/old...new",
            "pusher": {"name": "author"},
            "commits": [
                {"added": ["a.py"], "removed": [], "modified": ["README.md"]},
                {"added": [], "removed": ["b.py"], "modified": ["a.py"]},
            ],
            "repository": REPOSITORY,
        },
    )

    assert isinstance(event, Push)
    assert event.branch == "main"
    assert event.after == "new-sha"
    assert event.changed_files == ["README.md", "a.py", "b.py"]
    assert event.actor == "author"
    assert event.pre_check()


@pytest.mark.parametrize(
    "ref, deleted, pre_check",
    [
        ("refs/heads/main", False, True),
        ("refs/heads/main", True, False),
        ("refs/tags/v1.0.0", False, False),
    ],
)
def test_push_pre_check(ref, deleted, pre_check):
    event = Push(ref=ref, before="", after="", deleted=deleted, org="org", repo="repo")
    assert event.pre_check() == pre_check


def test_github_deployment_status():
    event = Parser.parse_event(
        {
            "deployment_status": {"state": "success", "environment": "production"},
            "deployment": {"id": 99, "sha": "deployed-sha", "ref": "main"},
            "repository": REPOSITORY,
            "sender": {"login": "deployer"},
        },
    )

    assert isinstance(event, DeploymentStatus)
    assert event.state == "success"
    assert event.environment == "production"
    assert event.deployment_id == 99


GITLAB_PROJECT = {
    "path_with_namespace": "group/subgroup/project",
    "web_url": "https://gitlab.com/group/subgroup/project",
    "git_http_url": "https://gitlab.com/group/subgroup/project.git",
}


def gitlab_mr_event(action: str, **extra) -> dict:
    return {
        "object_kind": "merge_request",
        "user": {"username": "author"},
        "project": GITLAB_PROJECT,
        "object_attributes": {
            "iid": 3,
            "action": action,
            "state": "opened",
            "title": "Draft: feature",
            "description": "",
            "target_branch": "main",
            "source_branch": "feature",
            "draft": True,
            "url": "https://gitlab.com/group/subgroup/project/-/merge_requests/3",
            "last_commit": {"id": "head-sha"},
            **extra.pop("attributes", {}),
        },
        **extra,
    }


def test_gitlab_mr_opened():
    event = Parser.parse_event(gitlab_mr_event("open"))

    assert isinstance(event, Action)
    assert event.provider == ProviderType.gitlab
    assert event.org == "group/subgroup"
    assert event.repo == "project"
    assert event.action == PullRequestAction.opened
    assert event.pull_request.author == "author"
    assert event.pull_request.draft
    assert event.pull_request.head_sha == "head-sha"


@pytest.mark.parametrize(
    "extra, action, label",
    [
        pytest.param(
            {"attributes": {"oldrev": "old-sha"}},
            PullRequestAction.synchronize,
            "",
            id="new-commits",
        ),
        pytest.param(
            {
                "changes": {
                    "labels": {"previous": [], "current": [{"title": "lgtm"}]},
                },
            },
            PullRequestAction.labeled,
            "lgtm",
            id="labeled",
        ),
        pytest.param(
            {
                "changes": {
                    "labels": {"previous": [{"title": "approved"}], "current": []},
                },
            },
            PullRequestAction.unlabeled,
            "approved",
            id="unlabeled",
        ),
        pytest.param(
            {"changes": {"target_branch": {"previous": "dev", "current": "main"}}},
            PullRequestAction.edited,
            "",
            id="retargeted",
        ),
    ],
)
def test_gitlab_mr_update(extra, action, label):
    event = Parser.parse_mr_event(gitlab_mr_event("update", **extra))
    assert event.action == action
    assert event.label == label


def test_gitlab_mr_update_without_changes():
    assert Parser.parse_mr_event(gitlab_mr_event("update")) is None


def test_gitlab_note_on_merge_request():
    event = Parser.parse_event(
        {
            "object_kind": "note",
            "user": {"username": "reviewer"},
            "project": GITLAB_PROJECT,
            "object_attributes": {
                "id": 555,
                "note": "/lh-lgtm",
                "noteable_type": "MergeRequest",
                "url": "https://gitlab.com/group/subgroup/project/-/merge_requests/3#note_555",
            },
            "merge_request": {"iid": 3, "state": "opened"},
        },
    )

    assert isinstance(event, Comment)
    assert event.number == 3
    assert event.is_pull_request
    assert event.is_open
    assert event.action == CommentAction.created


def test_gitlab_note_on_commit_is_ignored():
    event = {
        "object_kind": "note",
        "user": {"username": "reviewer"},
        "project": GITLAB_PROJECT,
        "object_attributes": {"id": 1, "note": "/lgtm", "noteable_type": "Commit"},
    }
    assert Parser.parse_gitlab_comment_event(event) is None


@pytest.mark.parametrize(
    "before, after, created, deleted",
    [
        ("old-sha", "new-sha", False, False),
        (NULL_SHA, "new-sha", True, False),
        ("old-sha", NULL_SHA, False, True),
    ],
)
def test_gitlab_push(before, after, created, deleted):
    event = Parser.MAPPING["gitlab"]["Push Hook"](
        {
            "object_kind": "push",
            "ref": "refs/heads/main",
            "before": before,
            "after": after,
            "user_username": "author",
            "project": GITLAB_PROJECT,
            "commits": [{"added": [], "removed": [], "modified": ["x.go"]}],
        },
    )
    assert event.created == created
    assert event.deleted == deleted
    assert event.changed_files == ["x.go"]


def test_parse_event_unknown():
    assert Parser.parse_event({"zen": "Keep it logically awesome."}) is None
    assert Parser.parse_event({}) is None


def test_event_get_dict():
    event = Parser.parse_event(github_pr_event("synchronize"))
    data = event.get_dict()
    assert data["event_type"] == "pr.Action"
    assert data["pull_request"]["head_sha"] == "head-sha"
    assert data["provider"] == "github"
