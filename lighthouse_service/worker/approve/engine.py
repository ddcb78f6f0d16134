# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Recompute the approval state of a pull request from its whole history
and reconcile the notification comment and the `approved` label with it.

The algorithm:
    * every comment, review comment and review body is considered,
      in the order of creation
    * `/approve` adds the author to the approvers, `/approve cancel`
      removes them; `/lgtm` does the same when LGTM acts as approval
    * an approving review adds the author, a review requesting changes
      removes them (unless review states are ignored)
    * the PR is approved when every OWNERS file of the changed files
      has an approver among them (and the associated issue requirement
      is met), or when a human added the `approved` label
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from lighthouse_service.config import ApproveConfig
from lighthouse_service.constants import COMMAND_PREFIX, DEPRECATED_BOT_NAMES, LABEL_APPROVED
from lighthouse_service.exceptions import PermanentSCMError
from lighthouse_service.scm.base import PullRequest, ReviewState, SCMClient
from lighthouse_service.worker.approve.approvers import Approvers
from lighthouse_service.worker.approve.notification import NOTIFICATION_RE, get_message
from lighthouse_service.worker.approve.owners import Owners, OwnersRepo

logger = logging.getLogger(__name__)

APPROVE_COMMAND = "APPROVE"
LGTM_COMMAND = "LGTM"
CANCEL_ARGUMENT = "cancel"
NO_ISSUE_ARGUMENT = "no-issue"

COMMAND_RE = re.compile(r"(?m)^/([^\s]+)[\t ]*([^\n\r]*)")
ASSOCIATED_ISSUE_FORMAT = r"(?:{}/[^/]+/issues/|#)(\d+)"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class HistoryItem:
    """Issue comment, review comment or review, whatever approves."""

    body: str
    author: str
    created: Optional[datetime] = None
    link: str = ""
    id: int = 0
    review_state: str = ""

    @property
    def sort_key(self) -> datetime:
        if self.created is None:
            return _EPOCH
        if self.created.tzinfo is None:
            return self.created.replace(tzinfo=timezone.utc)
        return self.created


def find_associated_issue(body: str, org: str) -> int:
    """Number of the issue the body refers to, 0 if none."""
    match = re.search(ASSOCIATED_ISSUE_FORMAT.format(re.escape(org)), body or "")
    return int(match.group(1)) if match else 0


def normalize_command(command: str) -> str:
    command = command.upper()
    return command.removeprefix(COMMAND_PREFIX.upper())


def is_deprecated_bot(login: str) -> bool:
    return login in DEPRECATED_BOT_NAMES


class ApprovalEngine:
    def __init__(
        self,
        scm: SCMClient,
        repo_owners: Optional[OwnersRepo],
        options: ApproveConfig,
        pushgateway=None,
    ):
        self.scm = scm
        self.repo_owners = repo_owners
        self.options = options
        self.pushgateway = pushgateway

    def _is_bot(self, login: str) -> bool:
        return self.scm.is_bot(login) or is_deprecated_bot(login)

    def is_approval_command(self, item: HistoryItem) -> bool:
        if self._is_bot(item.author):
            return False
        for match in COMMAND_RE.finditer(item.body):
            command = normalize_command(match.group(1))
            if command == APPROVE_COMMAND or (
                command == LGTM_COMMAND and self.options.lgtm_acts_as_approve
            ):
                return True
        return False

    def is_approval_state(self, item: HistoryItem) -> bool:
        if self._is_bot(item.author) or not self.options.consider_review_state:
            return False
        return item.review_state.upper() in (
            ReviewState.approved.value,
            ReviewState.changes_requested.value,
            ReviewState.dismissed.value,
        )

    def is_notification(self, item: HistoryItem) -> bool:
        return self._is_bot(item.author) and bool(NOTIFICATION_RE.match(item.body))

    def history(self, pr: PullRequest) -> list[HistoryItem]:
        """Comments, review comments and reviews sorted by creation."""
        org, repo, number = pr.org, pr.repo, pr.number
        items = [
            HistoryItem(body=c.body, author=c.author, created=c.created, link=c.link, id=c.id)
            for c in self.scm.list_pull_request_comments(org, repo, number)
        ]
        items += [
            HistoryItem(body=c.body, author=c.author, created=c.created, link=c.link, id=c.id)
            for c in self.scm.list_issue_comments(org, repo, number)
        ]
        items += [
            HistoryItem(
                body=r.body,
                author=r.author,
                created=r.created,
                link=r.link,
                id=r.id,
                review_state=r.state.value,
            )
            for r in self.scm.list_reviews(org, repo, number)
        ]
        return sorted(items, key=lambda item: item.sort_key)

    def add_approvers(self, approvers: Approvers, items: list[HistoryItem], author: str):
        """The latest approval or cancellation of each user wins."""
        consider_review_state = self.options.consider_review_state
        for item in items:
            if not item.author:
                continue

            if consider_review_state and item.review_state == ReviewState.approved.value:
                approvers.add_approver(item.author, item.link, False)
            if consider_review_state and item.review_state == ReviewState.changes_requested.value:
                approvers.remove_approver(item.author)

            for match in COMMAND_RE.finditer(item.body):
                command = normalize_command(match.group(1))
                if command not in (APPROVE_COMMAND, LGTM_COMMAND):
                    continue
                arguments = match.group(2).strip().lower()
                if CANCEL_ARGUMENT in arguments:
                    approvers.remove_approver(item.author)
                    continue

                no_issue = arguments == NO_ISSUE_ARGUMENT
                if item.author == author:
                    approvers.add_author_self_approver(item.author, item.link, no_issue)
                if command == APPROVE_COMMAND:
                    approvers.add_approver(item.author, item.link, no_issue)
                else:
                    approvers.add_lgtmer(item.author, item.link, no_issue)

    def human_added_approved(self, pr: PullRequest, has_label: bool):
        """Lazy, cached check whether a human added the `approved` label last."""
        cache: dict[str, bool] = {}

        def find_out() -> bool:
            if not has_label:
                return False
            last_actor = ""
            for event in self.scm.list_issue_events(pr.org, pr.repo, pr.number):
                if event.event == "labeled" and event.label == LABEL_APPROVED:
                    last_actor = event.actor
            return bool(last_actor) and not self._is_bot(last_actor)

        def manually_approved() -> bool:
            if "value" not in cache:
                cache["value"] = find_out()
            return cache["value"]

        return manually_approved

    def build_approvers(
        self,
        pr: PullRequest,
        filenames: list[str],
        has_approved_label: bool,
        items: list[HistoryItem],
    ) -> Approvers:
        approvers = Approvers(Owners(filenames, self.repo_owners, pr.number))
        approvers.associated_issue = find_associated_issue(pr.body, pr.org)
        approvers.require_issue = self.options.issue_required
        approvers.manually_approved = self.human_added_approved(pr, has_approved_label)

        # author approves implicitly, otherwise suggest them as any other assignee
        if self.options.has_self_approval:
            approvers.add_author_self_approver(pr.author, f"{pr.link}#", False)
        else:
            approvers.add_assignees(pr.author)

        approve_items = [
            item
            for item in items
            if self.is_approval_command(item) or self.is_approval_state(item)
        ]
        self.add_approvers(approvers, approve_items, pr.author)
        approvers.add_assignees(*pr.assignees)
        return approvers

    def reconcile(self, pr: PullRequest) -> bool:
        """
        Update the notification and the `approved` label of the PR.

        Returns:
            Whether the PR is approved.
        """
        org, repo, number = pr.org, pr.repo, pr.number
        filenames = [
            change.path for change in self.scm.get_pull_request_changes(org, repo, number)
        ]
        labels = self.scm.get_issue_labels(org, repo, number)
        has_approved_label = LABEL_APPROVED in labels
        items = self.history(pr)

        approvers = self.build_approvers(pr, filenames, has_approved_label, items)

        notifications = [item for item in items if self.is_notification(item)]
        latest = notifications[-1] if notifications else None
        message = get_message(approvers, self.scm, org, repo, pr.base_ref)
        if latest is not None and latest.body == message:
            logger.debug(f"Approval notification of {pr} is up to date.")
        else:
            self.replace_notifications(pr, notifications, message)

        approved = approvers.is_approved()
        try:
            if not approved and has_approved_label:
                self.scm.remove_label(org, repo, number, LABEL_APPROVED)
            elif approved and not has_approved_label:
                self.scm.add_label(org, repo, number, LABEL_APPROVED)
        except PermanentSCMError as ex:
            logger.error(f"Failed to update the {LABEL_APPROVED!r} label of {pr}: {ex}")
        return approved

    def replace_notifications(
        self,
        pr: PullRequest,
        notifications: list[HistoryItem],
        message: str,
    ):
        """Delete the previous notifications before the new one is created."""
        for item in notifications:
            try:
                self.scm.delete_comment(pr.org, pr.repo, pr.number, item.id)
            except PermanentSCMError as ex:
                logger.error(f"Failed to delete comment {item.id} from {pr}: {ex}")
        try:
            self.scm.create_comment(pr.org, pr.repo, pr.number, message)
        except PermanentSCMError as ex:
            logger.error(f"Failed to create the approval notification on {pr}: {ex}")
            return
        if self.pushgateway:
            self.pushgateway.approval_notifications.inc()
