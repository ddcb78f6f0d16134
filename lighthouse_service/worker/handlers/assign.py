# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
import re

from lighthouse_service.constants import Plugin
from lighthouse_service.events import comment
from lighthouse_service.events.enums import CommentAction
from lighthouse_service.owners.parser import norm_login
from lighthouse_service.worker.handlers.abstract import (
    JobHandler,
    TaskName,
    reacts_to,
    run_for_comment,
)
from lighthouse_service.worker.result import TaskResults

logger = logging.getLogger(__name__)

ASSIGN_RE = re.compile(r"(?mi)^/(?:lh-)?(un)?assign(( +@?[-\w]+?)*)\s*$")
CC_RE = re.compile(r"(?mi)^/(?:lh-)?(un)?cc(( +@?[-/\w]+?)*)\s*$")


def parse_logins(text: str) -> list[str]:
    return [norm_login(login) for login in text.split() if login.strip()]


def collect(regex: re.Pattern, body: str, commenter: str) -> tuple[list[str], list[str]]:
    """Logins to add and to remove, the commenter if the command names nobody."""
    to_add, to_remove = [], []
    for match in regex.finditer(body):
        logins = parse_logins(match.group(2) or "") or [norm_login(commenter)]
        (to_remove if match.group(1) else to_add).extend(logins)
    return to_add, to_remove


@run_for_comment(command="assign")
@run_for_comment(command="unassign")
@run_for_comment(command="cc")
@run_for_comment(command="uncc")
@reacts_to(event=comment.Comment)
class AssignHandler(JobHandler):
    """
    `/assign` and `/unassign` change the assignees,
    `/cc` and `/uncc` the requested reviewers of a pull request.
    """

    task_name = TaskName.assign
    plugin = Plugin.assign

    event: comment.Comment

    @classmethod
    def handles(cls, event: comment.Comment) -> bool:
        return event.action == CommentAction.created

    def run(self) -> TaskResults:
        event = self.event
        org, repo, number = event.org, event.repo, event.number
        commenter = event.actor or ""

        assign, unassign = collect(ASSIGN_RE, event.body, commenter)
        if unassign:
            logger.info(f"Unassigning {unassign} from {org}/{repo}#{number}.")
            self.scm.unassign_issue(org, repo, number, unassign)
        if assign:
            logger.info(f"Assigning {assign} to {org}/{repo}#{number}.")
            self.scm.assign_issue(org, repo, number, assign)

        request, unrequest = ([], [])
        if event.is_pull_request:
            request, unrequest = collect(CC_RE, event.body, commenter)
            if unrequest:
                self.scm.unrequest_review(org, repo, number, unrequest)
            if request:
                self.scm.request_review(org, repo, number, request)

        return TaskResults.create_from(
            success=True,
            msg="Assignees and reviewers updated.",
            event=event,
            assigned=assign,
            unassigned=unassign,
            requested=request,
            unrequested=unrequest,
        )
