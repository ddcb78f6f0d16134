# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import hmac
from hashlib import sha256
from http import HTTPStatus
from json import dumps

import pytest
from flask import Flask, request
from flexmock import flexmock

from lighthouse_service.service.api import webhooks
from lighthouse_service.service.api.errors import ValidationFailed


@pytest.mark.parametrize(
    "headers, is_good",
    [
        # hmac.new(webhook_secret, msg=payload, digestmod=hashlib.sha256).hexdigest()
        (
            {
                "X-Hub-Signature-256": "sha256="
                "7884c9fc5f880c17920b2066e85aae7b57489505a16aa9b56806a924df78f846",
            },
            True,
        ),
        (
            {
                "X-Hub-Signature-256": "sha256="
                "feedfacecafebeef920b2066e85aae7b57489505a16aa9b56806a924df78f666",
            },
            False,
        ),
        ({}, False),
    ],
)
def test_validate_signature(headers, is_good):
    with Flask(__name__).test_request_context():
        payload = {"zen": "Keep it logically awesome."}

        request._cached_data = request.data = dumps(payload).encode()
        request.headers = headers
        if not is_good:
            with pytest.raises(ValidationFailed):
                webhooks.GithubWebhook.validate_signature()
        else:
            webhooks.GithubWebhook.validate_signature()


def test_validate_signature_disabled(global_service_config):
    global_service_config.validate_webhooks = False
    with Flask(__name__).test_request_context():
        request._cached_data = request.data = b"{}"
        request.headers = {}
        webhooks.GithubWebhook.validate_signature()


@pytest.mark.parametrize(
    "headers, is_good",
    [
        (
            {
                # jwt.encode({"namespace": "multi/part/namespace", "repo_name": "repo"},
                #            "gitlab-token-secret", algorithm="HS256")
                "X-Gitlab-Token": "eyJ0eXAiOiJKV1QiLCJhbGciOiJIUzI1NiJ9."
                "eyJuYW1lc3BhY2UiOiJtdWx0aS9wYXJ0L25hbWVzcGFjZSIsInJlcG9fbmFtZSI6InJlcG8ifQ."
                "r5-khuzdQJ3b15KZt3E1AqFXjtKfFn_Q1BBwkq04Mf8",
            },
            True,
        ),
        (
            {
                # jwt.encode({"namespace": "multi/part/namespace"},
                #            "gitlab-token-secret", algorithm="HS256")
                "X-Gitlab-Token": "eyJ0eXAiOiJKV1QiLCJhbGciOiJIUzI1NiJ9."
                "eyJuYW1lc3BhY2UiOiJtdWx0aS9wYXJ0L25hbWVzcGFjZSJ9."
                "WNasZgIU91hMwKtGeGCILjPIDLU-PpL5rww-BEAzMgU",
            },
            True,
        ),
        (
            {
                # jwt.encode({"namespace": "multi/part/namespace", "repo_name": "repo2"},
                #            "gitlab-token-secret", algorithm="HS256")
                "X-Gitlab-Token": "eyJ0eXAiOiJKV1QiLCJhbGciOiJIUzI1NiJ9."
                "eyJuYW1lc3BhY2UiOiJtdWx0aS9wYXJ0L25hbWVzcGFjZSIsInJlcG9fbmFtZSI6InJlcG8yIn0."
                "vyQYbtmaCyHfDKpfmyk_uAn9QvDulnaIy2wZ1xgc-uI",
            },
            False,
        ),
        ({"X-Gitlab-Token": "None"}, False),
        ({}, False),
    ],
)
def test_validate_token(headers, is_good):
    with Flask(__name__).test_request_context():
        payload = {
            "project": {
                "http_url": "https://gitlab.com/multi/part/namespace/repo.git",
            },
        }
        request._cached_data = request.data = dumps(payload).encode()
        request.headers = headers
        if not is_good:
            with pytest.raises(ValidationFailed):
                webhooks.GitlabWebhook.validate_token()
        else:
            webhooks.GitlabWebhook.validate_token()


@pytest.mark.parametrize(
    "headers, payload, interested",
    [
        (
            {"X-GitHub-Event": "pull_request", "X-GitHub-Delivery": "uuid"},
            {"action": "opened"},
            True,
        ),
        (
            {"X-GitHub-Event": "pull_request", "X-GitHub-Delivery": "uuid"},
            {"action": "labeled"},
            True,
        ),
        (
            {"X-GitHub-Event": "pull_request", "X-GitHub-Delivery": "uuid"},
            {"action": "closed"},
            False,
        ),
        (
            {"X-GitHub-Event": "issue_comment", "X-GitHub-Delivery": "uuid"},
            {"action": "created"},
            True,
        ),
        (
            {"X-GitHub-Event": "issue_comment", "X-GitHub-Delivery": "uuid"},
            {"action": "deleted"},
            False,
        ),
        (
            {"X-GitHub-Event": "pull_request_review", "X-GitHub-Delivery": "uuid"},
            {"action": "submitted"},
            True,
        ),
        (
            {"X-GitHub-Event": "pull_request_review", "X-GitHub-Delivery": "uuid"},
            {"action": "edited"},
            False,
        ),
        (
            {"X-GitHub-Event": "push", "X-GitHub-Delivery": "uuid"},
            {"deleted": False},
            True,
        ),
        (
            {"X-GitHub-Event": "push", "X-GitHub-Delivery": "uuid"},
            {"deleted": True},
            False,
        ),
        (
            {"X-GitHub-Event": "deployment_status", "X-GitHub-Delivery": "uuid"},
            {"action": "created"},
            True,
        ),
        (
            {"X-GitHub-Event": "release", "X-GitHub-Delivery": "uuid"},
            {"action": "published"},
            False,
        ),
    ],
)
def test_interested(headers, payload, interested):
    with Flask(__name__).test_request_context(
        json=payload,
        content_type="application/json",
        headers=headers,
    ):
        assert webhooks.GithubWebhook.interested() == interested


@pytest.mark.parametrize(
    "event_type, interested",
    [
        ("Merge Request Hook", True),
        ("Note Hook", True),
        ("Push Hook", True),
        ("Pipeline Hook", False),
    ],
)
def test_gitlab_interested(event_type, interested):
    with Flask(__name__).test_request_context(
        json={"object_kind": "whatever"},
        content_type="application/json",
        headers={"X-Gitlab-Event": event_type},
    ):
        assert webhooks.GitlabWebhook.interested() == interested


def test_github_ping():
    flexmock(webhooks).should_receive("send_to_worker").never()
    with Flask(__name__).test_request_context(
        json={"zen": "Design for failure.", "hook_id": 1, "hook": {"type": "Repository"}},
        content_type="application/json",
        headers={"X-GitHub-Event": "ping"},
    ):
        assert webhooks.GithubWebhook().post() == ("Pong!", HTTPStatus.OK)


def test_github_event_is_sent_to_worker():
    payload = {"action": "created", "comment": {"body": "/lgtm"}}
    body = dumps(payload).encode()
    signature = hmac.new(b"testing-secret", msg=body, digestmod=sha256).hexdigest()

    flexmock(webhooks).should_receive("send_to_worker").with_args(
        payload,
        source="github",
        event_type="issue_comment",
        event_guid="delivery-uuid",
    ).once()
    with Flask(__name__).test_request_context(
        data=body,
        content_type="application/json",
        headers={
            "X-GitHub-Event": "issue_comment",
            "X-GitHub-Delivery": "delivery-uuid",
            "X-Hub-Signature-256": f"sha256={signature}",
        },
    ):
        _, status = webhooks.GithubWebhook().post()
    assert status == HTTPStatus.ACCEPTED


def test_github_invalid_signature_is_rejected():
    flexmock(webhooks).should_receive("send_to_worker").never()
    with Flask(__name__).test_request_context(
        json={"action": "created"},
        content_type="application/json",
        headers={
            "X-GitHub-Event": "issue_comment",
            "X-Hub-Signature-256": "sha256=deadbeef",
        },
    ):
        _, status = webhooks.GithubWebhook().post()
    assert status == HTTPStatus.UNAUTHORIZED


def test_send_to_worker():
    celery_app = flexmock()
    flexmock(webhooks, celery_app=celery_app)
    celery_app.should_receive("send_task").with_args(
        name="task.steve_jobs.process_message",
        kwargs={
            "event": {"a": "b"},
            "source": "github",
            "event_type": "push",
            "event_guid": "",
        },
    ).once()
    webhooks.send_to_worker({"a": "b"}, source="github", event_type="push", event_guid=None)
