# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Capabilities of the source control provider the service needs
and the plain value types passed around.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


class ProviderType(str, enum.Enum):
    github = "github"
    gitlab = "gitlab"
    gitea = "gitea"
    forgejo = "forgejo"
    stash = "stash"
    pagure = "pagure"
    fake = "fake"


class StatusState(str, enum.Enum):
    pending = "pending"
    success = "success"
    failure = "failure"
    error = "error"


class ReviewState(str, enum.Enum):
    approved = "APPROVED"
    changes_requested = "CHANGES_REQUESTED"
    commented = "COMMENTED"
    dismissed = "DISMISSED"
    pending = "PENDING"


@dataclass
class PullRequest:
    org: str
    repo: str
    number: int
    author: str
    title: str = ""
    body: str = ""
    base_ref: str = ""
    base_sha: str = ""
    head_ref: str = ""
    head_sha: str = ""
    link: str = ""
    author_link: str = ""
    repo_link: str = ""
    clone_url: str = ""
    labels: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)
    draft: bool = False
    closed: bool = False
    merged: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.org}/{self.repo}"

    def __str__(self):
        return f"{self.full_name}#{self.number}"


@dataclass
class Comment:
    id: int
    body: str
    author: str
    created: Optional[datetime] = None
    link: str = ""


@dataclass
class Review:
    id: int
    body: str
    author: str
    state: ReviewState
    created: Optional[datetime] = None
    link: str = ""


@dataclass
class IssueEvent:
    event: str
    actor: str
    label: str = ""
    created: Optional[datetime] = None


@dataclass
class Status:
    state: StatusState
    context: str
    description: str = ""
    target_url: str = ""


@dataclass
class CombinedStatus:
    sha: str
    statuses: list[Status] = field(default_factory=list)


@dataclass
class Change:
    path: str
    previous_path: str = ""
    added: bool = False
    deleted: bool = False
    renamed: bool = False


class SCMClient(ABC):
    """
    Everything the handlers need from the forge.

    Reads are allowed to raise `TransientSCMError` (retry the task)
    or `PermanentSCMError`.
    """

    def __init__(self, bot_name: str, server_url: str = ""):
        self._bot_name = bot_name
        self.server_url = server_url.rstrip("/")

    @property
    def bot_name(self) -> str:
        return self._bot_name

    @property
    @abstractmethod
    def provider_type(self) -> ProviderType: ...

    # pull requests and issues

    @abstractmethod
    def get_pull_request(self, org: str, repo: str, number: int) -> PullRequest: ...

    @abstractmethod
    def get_pull_request_changes(self, org: str, repo: str, number: int) -> list[Change]: ...

    @abstractmethod
    def list_pull_request_comments(self, org: str, repo: str, number: int) -> list[Comment]:
        """Review comments attached to the diff."""

    @abstractmethod
    def list_issue_comments(self, org: str, repo: str, number: int) -> list[Comment]: ...

    @abstractmethod
    def list_reviews(self, org: str, repo: str, number: int) -> list[Review]: ...

    @abstractmethod
    def list_issue_events(self, org: str, repo: str, number: int) -> list[IssueEvent]: ...

    @abstractmethod
    def get_issue_labels(self, org: str, repo: str, number: int) -> list[str]: ...

    @abstractmethod
    def add_label(self, org: str, repo: str, number: int, label: str): ...

    @abstractmethod
    def remove_label(self, org: str, repo: str, number: int, label: str): ...

    @abstractmethod
    def create_comment(self, org: str, repo: str, number: int, body: str): ...

    @abstractmethod
    def delete_comment(self, org: str, repo: str, number: int, comment_id: int): ...

    @abstractmethod
    def assign_issue(self, org: str, repo: str, number: int, logins: list[str]): ...

    @abstractmethod
    def unassign_issue(self, org: str, repo: str, number: int, logins: list[str]): ...

    @abstractmethod
    def request_review(self, org: str, repo: str, number: int, logins: list[str]): ...

    @abstractmethod
    def unrequest_review(self, org: str, repo: str, number: int, logins: list[str]): ...

    # commits

    @abstractmethod
    def create_status(self, org: str, repo: str, sha: str, status: Status): ...

    @abstractmethod
    def list_statuses(self, org: str, repo: str, ref: str) -> list[Status]: ...

    def get_combined_status(self, org: str, repo: str, ref: str) -> CombinedStatus:
        """The latest status of every context."""
        latest: dict[str, Status] = {}
        # statuses are listed newest first
        for status in self.list_statuses(org, repo, ref):
            latest.setdefault(status.context, status)
        return CombinedStatus(sha=ref, statuses=list(latest.values()))

    @abstractmethod
    def get_ref(self, org: str, repo: str, ref: str) -> str:
        """SHA the ref (e.g. `heads/main`) points to."""

    # repository content

    @abstractmethod
    def get_file(self, org: str, repo: str, path: str, ref: str) -> Optional[str]:
        """Content of the file, None if it does not exist."""

    @abstractmethod
    def list_files(self, org: str, repo: str, path: str, ref: str) -> list[str]:
        """Paths of the files directly in the directory."""

    # people

    @abstractmethod
    def is_member(self, org: str, user: str) -> bool: ...

    @abstractmethod
    def is_collaborator(self, org: str, repo: str, user: str) -> bool: ...

    @abstractmethod
    def list_collaborators(self, org: str, repo: str) -> list[str]: ...

    @abstractmethod
    def has_permission(self, org: str, repo: str, user: str, permission: str) -> bool:
        """E.g. `admin` or `write` on the repository."""

    # rendering

    def is_bot(self, user: str) -> bool:
        return user.lower() == self.bot_name.lower()

    def repo_link(self, org: str, repo: str) -> str:
        return f"{self.server_url}/{org}/{repo}"

    def file_link(self, org: str, repo: str, ref: str, path: str = "") -> str:
        link = self.repo_link(org, repo)
        if self.provider_type == ProviderType.gitlab:
            return f"{link}/-/blob/{ref}/{path}"
        if self.provider_type == ProviderType.stash:
            return f"{link}/browse/{path}?at={ref}"
        return f"{link}/blob/{ref}/{path}"

    def quote_author_for_comment(self, author: str) -> str:
        if self.provider_type == ProviderType.stash:
            return f'"{author}"'
        return author

    def pr_ref_fmt(self) -> str:
        """Ref the head of a pull request can be fetched from."""
        if self.provider_type == ProviderType.gitlab:
            return "refs/merge-requests/{number}/head"
        if self.provider_type == ProviderType.stash:
            return "refs/pull-requests/{number}/from"
        return "refs/pull/{number}/head"

    def supports_pr_comments_separately(self) -> bool:
        """Only GitHub keeps review comments apart from the issue comments."""
        return self.provider_type == ProviderType.github
