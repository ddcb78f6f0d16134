# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
import re
from typing import Optional, Union

from lighthouse_service.constants import (
    LABEL_LGTM,
    LGTM_REMOVED,
    LGTM_RESTRICTED,
    LGTM_RESTRICTED_TO_OWNERS,
    LGTM_SELF,
    Plugin,
)
from lighthouse_service.events import comment, pr, review
from lighthouse_service.events.enums import CommentAction, PullRequestAction, ReviewAction
from lighthouse_service.owners.parser import norm_login
from lighthouse_service.scm.base import ReviewState
from lighthouse_service.worker.handlers.abstract import (
    JobHandler,
    TaskName,
    reacts_to,
    run_for_comment,
)
from lighthouse_service.worker.reply import format_response
from lighthouse_service.worker.result import TaskResults

logger = logging.getLogger(__name__)

LGTM_RE = re.compile(r"(?mi)^/(?:lh-)?lgtm(?: no-issue)?\s*$")
LGTM_CANCEL_RE = re.compile(r"(?mi)^/(?:lh-)?lgtm cancel\s*$")


@run_for_comment(command="lgtm")
@reacts_to(event=comment.Comment)
@reacts_to(event=review.Review)
@reacts_to(event=pr.Action)
class LgtmHandler(JobHandler):
    """
    `/lgtm` by a reviewer adds the `lgtm` label, `/lgtm cancel` removes it.
    New commits drop the label.
    """

    task_name = TaskName.lgtm
    plugin = Plugin.lgtm

    event: Union[comment.Comment, review.Review, pr.Action]

    @classmethod
    def handles(cls, event: Union[comment.Comment, review.Review, pr.Action]) -> bool:
        if isinstance(event, comment.Comment):
            return event.action == CommentAction.created and event.is_pull_request and event.is_open
        if isinstance(event, review.Review):
            return event.action == ReviewAction.submitted
        return event.action == PullRequestAction.synchronize and not event.pull_request.merged

    def wanted_lgtm(self) -> Optional[bool]:
        """True to add the label, False to remove it, None if the event says nothing."""
        event = self.event
        body = event.body
        if LGTM_CANCEL_RE.search(body):
            return False
        if LGTM_RE.search(body):
            return True
        if isinstance(event, review.Review):
            options = self.service_config.lgtm_for(event.org, event.repo)
            if options.review_acts_as_lgtm and event.state == ReviewState.approved:
                return True
            if options.review_acts_as_lgtm and event.state == ReviewState.changes_requested:
                return False
        return None

    def reply(self, message: str, author: str):
        event = self.event
        self.scm.create_comment(
            event.org,
            event.repo,
            event.number,
            format_response(
                event.body,
                event.link,
                self.scm.quote_author_for_comment(author),
                message,
            ),
        )

    def reviewers_of_changes(self) -> set[str]:
        """Approvers and reviewers from the OWNERS files of the changed files."""
        event = self.event
        pull_request = self.scm.get_pull_request(event.org, event.repo, event.number)
        repo_owners = self.owners_client.load_repo_owners(
            event.org,
            event.repo,
            pull_request.base_ref,
        )
        people: set[str] = set()
        for change in self.scm.get_pull_request_changes(event.org, event.repo, event.number):
            people |= repo_owners.approvers(change.path)
            people |= repo_owners.leaf_reviewers(change.path)
        return people

    def remove_on_push(self) -> TaskResults:
        pull_request = self.event.pull_request
        org, repo, number = pull_request.org, pull_request.repo, pull_request.number
        if LABEL_LGTM not in self.scm.get_issue_labels(org, repo, number):
            return TaskResults.create_from(success=True, msg="No LGTM to remove.", event=self.event)
        self.scm.remove_label(org, repo, number, LABEL_LGTM)
        logger.info(f"New commits on {pull_request}, {LABEL_LGTM} removed.")
        self.scm.create_comment(org, repo, number, LGTM_REMOVED)
        return TaskResults.create_from(success=True, msg=LGTM_REMOVED, event=self.event)

    def run(self) -> TaskResults:
        if isinstance(self.event, pr.Action):
            return self.remove_on_push()

        wanted = self.wanted_lgtm()
        if wanted is None:
            return TaskResults.create_from(success=True, msg="No LGTM command.", event=self.event)

        event = self.event
        org, repo, number = event.org, event.repo, event.number
        author = event.actor or ""
        issue_author = (
            event.pull_request.author if isinstance(event, review.Review) else event.issue_author
        )
        is_author = author == issue_author

        if is_author and wanted:
            logger.info(f"Commenting with {LGTM_SELF!r}.")
            self.reply(LGTM_SELF, author)
            return TaskResults.create_from(success=True, msg=LGTM_SELF, event=event)

        skip_collaborators = self.service_config.skips_collaborators(org, repo)
        if not is_author and not skip_collaborators:
            if not self.scm.is_collaborator(org, repo, author):
                logger.info(f"Replying to /lgtm with {LGTM_RESTRICTED!r}.")
                self.reply(LGTM_RESTRICTED, author)
                return TaskResults.create_from(success=True, msg=LGTM_RESTRICTED, event=event)
            pull_request = self.scm.get_pull_request(org, repo, number)
            if author not in pull_request.assignees:
                logger.info(f"Assigning {org}/{repo}#{number} to {author}.")
                self.scm.assign_issue(org, repo, number, [author])
        elif not is_author and norm_login(author) not in self.reviewers_of_changes():
            logger.info(f"Replying to /lgtm with {LGTM_RESTRICTED_TO_OWNERS!r}.")
            self.reply(LGTM_RESTRICTED_TO_OWNERS, author)
            return TaskResults.create_from(success=True, msg=LGTM_RESTRICTED_TO_OWNERS, event=event)

        has_lgtm = LABEL_LGTM in self.scm.get_issue_labels(org, repo, number)
        if has_lgtm and not wanted:
            logger.info("Removing LGTM label.")
            self.scm.remove_label(org, repo, number, LABEL_LGTM)
        elif not has_lgtm and wanted:
            logger.info("Adding LGTM label.")
            self.scm.add_label(org, repo, number, LABEL_LGTM)

        return TaskResults.create_from(
            success=True,
            msg=f"LGTM {'added' if wanted else 'removed'} by {author}.",
            event=event,
        )
