# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
import re

from lighthouse_service.constants import (
    OVERRIDE_DESCRIPTION,
    OVERRIDE_DONE,
    OVERRIDE_NO_CONTEXT,
    OVERRIDE_UNAUTHORIZED,
    OVERRIDE_UNKNOWN_CONTEXTS,
    Plugin,
)
from lighthouse_service.events import comment
from lighthouse_service.events.enums import CommentAction
from lighthouse_service.exceptions import SCMError
from lighthouse_service.scm.base import Status, StatusState
from lighthouse_service.worker.handlers.abstract import (
    JobHandler,
    TaskName,
    reacts_to,
    run_for_comment,
)
from lighthouse_service.worker.reply import format_response
from lighthouse_service.worker.result import TaskResults

logger = logging.getLogger(__name__)

OVERRIDE_RE = re.compile(r"(?mi)^/(?:lh-)?override( (.+?)\s*)?$")


def format_list(items) -> str:
    return "\n".join(f" - {item}" for item in items)


@run_for_comment(command="override")
@reacts_to(event=comment.Comment)
class OverrideHandler(JobHandler):
    """`/override <context>` marks failed contexts as successful."""

    task_name = TaskName.override
    plugin = Plugin.override

    event: comment.Comment

    @classmethod
    def handles(cls, event: comment.Comment) -> bool:
        return event.action == CommentAction.created and event.is_pull_request and event.is_open

    def reply(self, message: str) -> TaskResults:
        event = self.event
        self.scm.create_comment(
            event.org,
            event.repo,
            event.number,
            format_response(
                event.body,
                event.link,
                self.scm.quote_author_for_comment(event.actor or ""),
                message,
            ),
        )
        return TaskResults.create_from(success=True, msg=message, event=event)

    def authorized(self, user: str) -> bool:
        org, repo = self.event.org, self.event.repo
        if user in self.service_config.admins:
            return True
        try:
            return self.scm.has_permission(org, repo, user, "admin")
        except SCMError as ex:
            logger.warning(f"Cannot determine whether {user} is an admin of {org}/{repo}: {ex}")
        return False

    def run(self) -> TaskResults:
        event = self.event
        org, repo, number = event.org, event.repo, event.number
        user = event.actor or ""

        overrides = {match.group(2) for match in OVERRIDE_RE.finditer(event.body) if match.group(2)}
        if not overrides:
            logger.debug(OVERRIDE_NO_CONTEXT)
            return self.reply(OVERRIDE_NO_CONTEXT)

        if not self.authorized(user):
            return self.reply(OVERRIDE_UNAUTHORIZED.format(user=user))

        pull_request = self.scm.get_pull_request(org, repo, number)
        statuses = self.scm.list_statuses(org, repo, pull_request.head_sha)
        contexts = {status.context for status in statuses if status.state != StatusState.success}

        if unknown := overrides - contexts:
            return self.reply(
                OVERRIDE_UNKNOWN_CONTEXTS.format(
                    unknown=format_list(sorted(unknown)),
                    known=format_list(sorted(contexts)),
                ),
            )

        done = []
        for status in statuses:
            if status.context in done or status.context not in overrides:
                continue
            if status.state == StatusState.success:
                continue
            self.scm.create_status(
                org,
                repo,
                pull_request.head_sha,
                Status(
                    state=StatusState.success,
                    context=status.context,
                    description=OVERRIDE_DESCRIPTION.format(user=user),
                    target_url=status.target_url,
                ),
            )
            done.append(status.context)

        message = OVERRIDE_DONE.format(user=user, contexts=", ".join(sorted(done)))
        logger.info(message)
        return self.reply(message)
