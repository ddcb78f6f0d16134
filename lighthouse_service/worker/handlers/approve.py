# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
The approve plugin keeps the `approved` label and the approval
notification of a pull request in sync with its OWNERS files and history.
"""

import logging
from typing import Union

from lighthouse_service.config import ApproveConfig
from lighthouse_service.constants import LABEL_APPROVED, Plugin
from lighthouse_service.events import comment, pr, review
from lighthouse_service.events.enums import (
    CommentAction,
    PullRequestAction,
    ReviewAction,
)
from lighthouse_service.scm.base import PullRequest
from lighthouse_service.worker.approve.engine import ApprovalEngine, HistoryItem
from lighthouse_service.worker.handlers.abstract import (
    JobHandler,
    TaskName,
    reacts_to,
    run_for_comment,
)
from lighthouse_service.worker.result import TaskResults

logger = logging.getLogger(__name__)


@run_for_comment(command="approve")
@run_for_comment(command="lgtm")
@reacts_to(event=comment.Comment)
@reacts_to(event=review.Review)
@reacts_to(event=pr.Action)
class ApproveHandler(JobHandler):
    task_name = TaskName.approve
    plugin = Plugin.approve

    event: Union[comment.Comment, review.Review, pr.Action]

    @classmethod
    def handles(cls, event: Union[comment.Comment, review.Review, pr.Action]) -> bool:
        if isinstance(event, comment.Comment):
            return event.action == CommentAction.created and event.is_pull_request and event.is_open
        if isinstance(event, review.Review):
            return event.action in (ReviewAction.submitted, ReviewAction.dismissed)
        if event.action in (
            PullRequestAction.opened,
            PullRequestAction.reopened,
            PullRequestAction.synchronize,
        ):
            return True
        return (
            event.action in (PullRequestAction.labeled, PullRequestAction.unlabeled)
            and event.label == LABEL_APPROVED
            and not event.pull_request.closed
        )

    @property
    def options(self) -> ApproveConfig:
        return self.service_config.approve_for(self.event.org, self.event.repo)

    def is_relevant(self, engine: ApprovalEngine) -> bool:
        """Whether the event can change the approval state at all."""
        event = self.event
        if isinstance(event, comment.Comment):
            item = HistoryItem(body=event.body, author=event.actor or "")
            return engine.is_approval_command(item)
        if isinstance(event, review.Review):
            item = HistoryItem(
                body=event.body,
                author=event.actor or "",
                review_state=event.state.value,
            )
            # the command in the review body is handled as any other comment
            return engine.is_approval_command(item) or engine.is_approval_state(item)
        if event.action in (PullRequestAction.labeled, PullRequestAction.unlabeled):
            return not engine.scm.is_bot(event.actor or "")
        return True

    def pull_request(self) -> PullRequest:
        event = self.event
        if isinstance(event, comment.Comment):
            return self.scm.get_pull_request(event.org, event.repo, event.number)
        return event.pull_request

    def run(self) -> TaskResults:
        # OWNERS are only loaded once the event turns out to be relevant
        engine = ApprovalEngine(self.scm, None, self.options, pushgateway=self.pushgateway)
        if not self.is_relevant(engine):
            return TaskResults.create_from(
                success=True,
                msg="Event does not affect the approval state.",
                event=self.event,
            )

        pull_request = self.pull_request()
        engine.repo_owners = self.owners_client.load_repo_owners(
            pull_request.org,
            pull_request.repo,
            pull_request.base_ref,
        )
        approved = engine.reconcile(pull_request)
        return TaskResults.create_from(
            success=True,
            msg=f"{pull_request} is {'approved' if approved else 'not approved'}.",
            event=self.event,
            approved=approved,
        )
