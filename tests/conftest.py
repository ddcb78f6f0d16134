# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import pytest
from deepdiff import DeepDiff

from lighthouse_service.config import Deployment, ServiceConfig
from lighthouse_service.constants import Plugin
from lighthouse_service.models import LighthouseJob
from lighthouse_service.scm.base import PullRequest
from tests.spellbook import FakeSCMClient

ALL_PLUGINS = [plugin.value for plugin in Plugin]


@pytest.fixture(autouse=True)
def global_service_config():
    """
    This config will be used instead of the one loaded from the local config file.

    You can still mock/overwrite the service config content in your tests
    but this one will be used by default.

    You can also (re)define some values like this:
    ServiceConfig.get_service_config().attribute = "value"
    """
    service_config = ServiceConfig(
        deployment=Deployment.prod,
        webhook_secret="testing-secret",
        gitlab_token_secret="gitlab-token-secret",
        bot_name="lighthouse-bot",
        server_name="localhost",
        in_repo_config=False,
        plugins={"org": ALL_PLUGINS},
    )
    ServiceConfig.service_config = service_config
    yield service_config
    ServiceConfig.service_config = None


@pytest.fixture()
def pull_request():
    return PullRequest(
        org="org",
        repo="repo",
        number=1,
        author="author",
        title="Add a feature",
        base_ref="main",
        base_sha="base-sha",
        head_sha="head-sha",
        repo_link="https://github.com/org/repo",
        link="https://github.com/org/repo/pull/1",
        clone_url="https://github.com/org/repo.git",
    )


@pytest.fixture()
def scm(pull_request):
    """In-memory forge knowing the `pull_request` fixture."""
    client = FakeSCMClient()
    client.add_pull_request(pull_request, changes=["README.md"])
    return client


def pytest_assertrepr_compare(op, left, right):
    if isinstance(left, LighthouseJob) and isinstance(right, LighthouseJob) and op == "==":
        return [str(DeepDiff(left.to_dict(), right.to_dict()))]
    return None
