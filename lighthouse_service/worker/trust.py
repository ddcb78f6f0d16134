# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Who may get presubmits run automatically.
"""

import logging
from typing import Optional

from lighthouse_service.config import TriggerConfig
from lighthouse_service.constants import LABEL_OK_TO_TEST
from lighthouse_service.scm.base import SCMClient

logger = logging.getLogger(__name__)

APP_BOT_SUFFIX = "[bot]"


def trusted_user(
    scm: SCMClient,
    trigger_config: TriggerConfig,
    user: str,
    org: str,
    repo: str,
) -> bool:
    """
    Bot, trusted apps, collaborators (unless only org members are trusted),
    members of the org and members of the additional trusted org.
    """
    if scm.is_bot(user):
        logger.info(f"User {user!r} is the bot user.")
        return True

    if user.endswith(APP_BOT_SUFFIX) and user[: -len(APP_BOT_SUFFIX)] in (
        trigger_config.trusted_apps or []
    ):
        logger.info(f"User {user!r} is a trusted app.")
        return True

    if not trigger_config.only_org_members and scm.is_collaborator(org, repo, user):
        logger.info(f"User {user!r} is a collaborator of {org}/{repo}.")
        return True

    if scm.is_member(org, user):
        logger.info(f"User {user!r} is a member of org {org!r}.")
        return True

    trusted_org = trigger_config.trusted_org
    if not trusted_org or trusted_org == org:
        return False

    member = scm.is_member(trusted_org, user)
    logger.info(f"User {user!r} is a member of the trusted org {trusted_org!r}: {member}")
    return member


def trusted_pull_request(
    scm: SCMClient,
    trigger_config: TriggerConfig,
    author: str,
    org: str,
    repo: str,
    number: int,
    labels: Optional[list[str]] = None,
) -> tuple[Optional[list[str]], bool]:
    """
    The PR is trusted if its author is or if it carries the `ok-to-test` label.

    Returns:
        The labels of the PR (None if they did not need to be fetched)
        and whether the PR is trusted.
    """
    if trusted_user(scm, trigger_config, author, org, repo):
        return labels, True

    if labels is None:
        labels = scm.get_issue_labels(org, repo, number)
    return labels, LABEL_OK_TO_TEST in labels
