# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Plugins which only toggle a `do-not-merge/*` label.
"""

import logging
import re

from lighthouse_service.constants import LABEL_HOLD, LABEL_WIP, Plugin
from lighthouse_service.events import comment, pr
from lighthouse_service.events.enums import CommentAction, PullRequestAction
from lighthouse_service.worker.handlers.abstract import (
    JobHandler,
    TaskName,
    reacts_to,
    run_for_comment,
)
from lighthouse_service.worker.result import TaskResults

logger = logging.getLogger(__name__)

HOLD_RE = re.compile(r"(?mi)^/(?:lh-)?hold\s*$")
HOLD_CANCEL_RE = re.compile(r"(?mi)^/(?:lh-)?hold cancel\s*$")
WIP_TITLE_RE = re.compile(r"(?i)^\W?WIP\W")


def toggle_label(scm, org: str, repo: str, number: int, label: str, wanted: bool) -> str:
    """Add or remove the label to match `wanted`, returns what was done."""
    has_label = label in scm.get_issue_labels(org, repo, number)
    if wanted and not has_label:
        scm.add_label(org, repo, number, label)
        return "added"
    if not wanted and has_label:
        scm.remove_label(org, repo, number, label)
        return "removed"
    return "kept"


@run_for_comment(command="hold")
@reacts_to(event=comment.Comment)
class HoldHandler(JobHandler):
    """`/hold` adds the hold label, `/hold cancel` removes it."""

    task_name = TaskName.hold
    plugin = Plugin.hold

    event: comment.Comment

    @classmethod
    def handles(cls, event: comment.Comment) -> bool:
        return event.action == CommentAction.created and event.is_open

    def run(self) -> TaskResults:
        event = self.event
        if HOLD_CANCEL_RE.search(event.body):
            wanted = False
        elif HOLD_RE.search(event.body):
            wanted = True
        else:
            return TaskResults.create_from(success=True, msg="No hold command.", event=event)

        done = toggle_label(self.scm, event.org, event.repo, event.number, LABEL_HOLD, wanted)
        logger.info(f"Label {LABEL_HOLD} {done} on {event.full_name}#{event.number}.")
        return TaskResults.create_from(
            success=True,
            msg=f"Label {LABEL_HOLD} {done}.",
            event=event,
        )


@reacts_to(event=pr.Action)
class WipHandler(JobHandler):
    """Drafts and PRs titled `WIP ...` carry the work-in-progress label."""

    task_name = TaskName.wip
    plugin = Plugin.wip

    event: pr.Action

    @classmethod
    def handles(cls, event: pr.Action) -> bool:
        return event.action in (
            PullRequestAction.opened,
            PullRequestAction.reopened,
            PullRequestAction.edited,
            PullRequestAction.synchronize,
            PullRequestAction.ready_for_review,
            PullRequestAction.converted_to_draft,
        )

    def run(self) -> TaskResults:
        pull_request = self.event.pull_request
        needs_label = pull_request.draft or bool(WIP_TITLE_RE.search(pull_request.title))
        done = toggle_label(
            self.scm,
            pull_request.org,
            pull_request.repo,
            pull_request.number,
            LABEL_WIP,
            needs_label,
        )
        logger.debug(f"Label {LABEL_WIP} {done} on {pull_request}.")
        return TaskResults.create_from(
            success=True,
            msg=f"Label {LABEL_WIP} {done}.",
            event=self.event,
        )
