# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Let's test that Steve's as awesome as we think he is.
"""

import pytest
from celery.canvas import group
from flexmock import flexmock

from lighthouse_service.constants import Plugin
from lighthouse_service.events.push import Push
from lighthouse_service.worker.handlers import (
    ApproveHandler,
    AssignHandler,
    HoldHandler,
    LgtmHandler,
    TriggerCommentHandler,
    TriggerPullRequestHandler,
    TriggerPushHandler,
    WipHandler,
)
from lighthouse_service.worker.jobs import SteveJobs, get_handlers_for_comment
from tests.spellbook import comment_event, pr_event

REPOSITORY = {
    "name": "repo",
    "html_url": "https://github.com/org/repo",
    "owner": {"login": "org"},
}


def issue_comment(body: str) -> dict:
    return {
        "action": "created",
        "issue": {
            "number": 1,
            "pull_request": {"url": "https://api.github.com/repos/org/repo/pulls/1"},
            "state": "open",
            "user": {"login": "author"},
        },
        "comment": {"id": 1, "body": body, "user": {"login": "reviewer"}},
        "repository": REPOSITORY,
    }


@pytest.fixture(autouse=True)
def no_metrics_push():
    flexmock(SteveJobs.pushgateway).should_receive("push")


def handler_names(results) -> list[str]:
    return [result["details"]["handler"] for result in results]


@pytest.mark.parametrize(
    "body, handlers",
    [
        ("/lgtm", {LgtmHandler, ApproveHandler}),
        ("/approve\n/hold", {ApproveHandler, HoldHandler}),
        ("/lh-test unit", {TriggerCommentHandler}),
        ("/CC @alice", {AssignHandler}),
        ("/unknown", set()),
        ("no command here", set()),
    ],
)
def test_get_handlers_for_comment(body, handlers):
    assert get_handlers_for_comment(body) == handlers


def test_process_comment():
    flexmock(group).should_receive("apply_async").once()

    results = SteveJobs.process_message(
        issue_comment("/lgtm\n/hold"),
        source="github",
        event_type="issue_comment",
        event_guid="delivery-id",
    )

    assert handler_names(results) == ["ApproveHandler", "HoldHandler", "LgtmHandler"]
    assert all(result["success"] for result in results)
    assert results[0]["details"]["event"]["event_guid"] == "delivery-id"


def test_process_pull_request():
    flexmock(group).should_receive("apply_async").once()

    results = SteveJobs.process_message(
        {
            "action": "opened",
            "number": 1,
            "pull_request": {
                "number": 1,
                "title": "Add a feature",
                "state": "open",
                "user": {"login": "author"},
                "base": {"ref": "main", "sha": "base-sha"},
                "head": {"ref": "feature", "sha": "head-sha"},
            },
            "repository": REPOSITORY,
            "sender": {"login": "author"},
        },
        source="github",
        event_type="pull_request",
    )

    assert handler_names(results) == ["ApproveHandler", "TriggerPullRequestHandler", "WipHandler"]


def test_disabled_plugins(global_service_config, pull_request):
    global_service_config.plugins = {"org/repo": [Plugin.trigger.value]}
    steve = SteveJobs(TriggerPullRequestHandler(pr_event(pull_request)).event)
    assert steve.get_handlers_for_event() == {TriggerPullRequestHandler}


def test_comment_on_closed_pr():
    event = TriggerCommentHandler(comment_event("/test unit")).event
    event.issue_state = "closed"
    assert SteveJobs(event).get_handlers_for_event() == set()


def test_synchronize_reaches_lgtm(pull_request):
    event = TriggerPullRequestHandler(pr_event(pull_request, action="synchronize")).event
    assert SteveJobs(event).get_handlers_for_event() == {
        ApproveHandler,
        LgtmHandler,
        TriggerPullRequestHandler,
        WipHandler,
    }


def test_tag_push_is_dropped():
    flexmock(group).should_receive("apply_async").never()
    event = {
        "ref": "refs/tags/v1.0.0",
        "pusher": {"name": "author"},
        "repository": REPOSITORY,
    }
    assert SteveJobs.process_message(event, source="github", event_type="push") == []


def test_unknown_event_is_dropped():
    flexmock(group).should_receive("apply_async").never()
    assert SteveJobs.process_message({"zen": "Keep it logically awesome."}) == []


def test_push_signature():
    event = Push(
        ref="refs/heads/main",
        before="a",
        after="b",
        org="org",
        repo="repo",
        event_guid="guid",
    )
    signature = TriggerPushHandler.get_signature(event)
    assert signature.task == "task.run_trigger_push_handler"
    assert signature.kwargs["event"]["event_type"] == "push.Push"
