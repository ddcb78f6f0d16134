# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
from dataclasses import dataclass
from typing import Callable

from lighthouse_service.worker.approve.owners import Owners

logger = logging.getLogger(__name__)


@dataclass
class Approval:
    login: str  # original case
    how: str
    reference: str = ""
    no_issue: bool = False

    def __str__(self):
        return f'*[{self.login}]({self.reference or "<>"} "{self.how}")*'


def intersect_sets_case(one: set[str], other: set[str]) -> set[str]:
    """Case-insensitive intersection keeping the case of `one`."""
    lower = {item.lower() for item in other}
    return {item for item in one if item.lower() in lower}


class Approvers:
    """
    Who approved the change and whether that is enough.
    Keys of the approvals are lower-cased logins.
    """

    def __init__(self, owners: Owners):
        self.owners = owners
        self.approvals: dict[str, Approval] = {}
        self.assignees: set[str] = set()
        self.associated_issue = 0
        self.require_issue = False
        self.manually_approved: Callable[[], bool] = lambda: False

    def _should_not_override(self, login: str, no_issue: bool) -> bool:
        # a later plain approval does not drop an earlier no-issue one
        approval = self.approvals.get(login.lower())
        return approval is not None and approval.no_issue and not no_issue

    def _add(self, login: str, how: str, reference: str, no_issue: bool):
        if self._should_not_override(login, no_issue):
            return
        self.approvals[login.lower()] = Approval(
            login=login,
            how=how,
            reference=reference,
            no_issue=no_issue,
        )

    def add_approver(self, login: str, reference: str, no_issue: bool):
        self._add(login, "Approved", reference, no_issue)

    def add_lgtmer(self, login: str, reference: str, no_issue: bool):
        self._add(login, "LGTM", reference, no_issue)

    def add_author_self_approver(self, login: str, reference: str, no_issue: bool):
        self._add(login, "Author self-approved", reference, no_issue)

    def remove_approver(self, login: str):
        self.approvals.pop(login.lower(), None)

    def add_assignees(self, *logins: str):
        self.assignees.update(login.lower() for login in logins)

    def get_current_approvers_set(self) -> set[str]:
        return set(self.approvals)

    def get_current_approvers_set_cased(self) -> set[str]:
        return {approval.login for approval in self.approvals.values()}

    def get_files_approvers(self) -> dict[str, set[str]]:
        """OWNERS directory -> current approvers able to approve it."""
        current = self.get_current_approvers_set_cased()
        return {
            owners_file: intersect_sets_case(current, potential)
            for owners_file, potential in self.owners.get_approvers().items()
        }

    def no_issue_approvers(self) -> dict[str, Approval]:
        """`no-issue` approvals of people able to approve at least one file."""
        reverse_map = self.owners.get_reverse_map(self.owners.get_approvers())
        return {
            login: approval
            for login, approval in self.approvals.items()
            if approval.no_issue and reverse_map.get(login)
        }

    def unapproved_files(self) -> set[str]:
        return {
            owners_file
            for owners_file, approvers in self.get_files_approvers().items()
            if not approvers
        }

    def get_ccs(self) -> list[str]:
        """
        Suggested approvers: the closest (leaf) approvers covering the
        unapproved files, plus the assignees still useful when looking
        at the full approvers lists.
        """
        randomized = self.owners.get_shuffled_approvers()
        current = self.get_current_approvers_set()
        leaf_reverse_map = self.owners.get_reverse_map(self.owners.get_leaf_approvers())
        suggested = self.owners.keep_covering_approvers(
            leaf_reverse_map,
            current | self.assignees,
            randomized,
        )
        approvers_and_suggested = current | suggested
        everyone = approvers_and_suggested | self.assignees
        full_reverse_map = self.owners.get_reverse_map(self.owners.get_approvers())
        keep_assignees = self.owners.keep_covering_approvers(
            full_reverse_map,
            approvers_and_suggested,
            sorted(everyone),
        )
        return sorted(suggested | keep_assignees)

    def are_files_approved(self) -> bool:
        return (
            not self.unapproved_files()
            and len(self.approvals) >= self.owners.get_required_approvers_count()
        )

    def requirements_met(self) -> bool:
        return self.are_files_approved() and (
            not self.require_issue
            or self.associated_issue != 0
            or bool(self.no_issue_approvers())
        )

    def is_approved(self) -> bool:
        """Requirements met, or a human added the `approved` label."""
        return self.requirements_met() or self.manually_approved()

    def list_approvals(self) -> list[Approval]:
        return [self.approvals[login] for login in sorted(self.approvals)]

    def list_no_issue_approvals(self) -> list[Approval]:
        no_issue = self.no_issue_approvers()
        return [no_issue[login] for login in sorted(no_issue)]
