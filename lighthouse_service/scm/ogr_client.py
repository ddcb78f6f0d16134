# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
from contextlib import contextmanager
from typing import Optional

import github
import gitlab
from ogr.abstract import CommitStatus, GitProject
from ogr.abstract import PullRequest as OgrPullRequest
from ogr.exceptions import GitForgeInternalError, OgrException, OgrNetworkError
from ogr.services.github import GithubProject
from ogr.services.gitlab import GitlabProject

from lighthouse_service.config import ServiceConfig
from lighthouse_service.exceptions import PermanentSCMError, TransientSCMError
from lighthouse_service.scm.base import (
    Change,
    Comment,
    IssueEvent,
    ProviderType,
    PullRequest,
    Review,
    ReviewState,
    SCMClient,
    Status,
    StatusState,
)

logger = logging.getLogger(__name__)

MAP_TO_COMMIT_STATUS: dict[StatusState, CommitStatus] = {
    StatusState.pending: CommitStatus.pending,
    StatusState.success: CommitStatus.success,
    StatusState.failure: CommitStatus.failure,
    StatusState.error: CommitStatus.error,
}

MAP_FROM_COMMIT_STATUS: dict[CommitStatus, StatusState] = {
    CommitStatus.pending: StatusState.pending,
    CommitStatus.running: StatusState.pending,
    CommitStatus.success: StatusState.success,
    CommitStatus.failure: StatusState.failure,
    CommitStatus.error: StatusState.error,
    CommitStatus.canceled: StatusState.error,
}

# GitLab access levels, 40 = maintainer, 50 = owner
GITLAB_ADMIN_ACCESS_LEVEL = 40
GITLAB_WRITE_ACCESS_LEVEL = 30


def _is_transient(response_code: Optional[int]) -> bool:
    return response_code is None or response_code >= 500 or response_code == 429


@contextmanager
def translate_errors(action: str):
    """Turn the forge client errors into transient or permanent SCM errors."""
    try:
        yield
    except (OgrNetworkError, GitForgeInternalError) as ex:
        raise TransientSCMError(f"{action}: {ex}") from ex
    except github.GithubException as ex:
        error = TransientSCMError if _is_transient(ex.status) else PermanentSCMError
        raise error(f"{action}: {ex}") from ex
    except gitlab.exceptions.GitlabError as ex:
        error = TransientSCMError if _is_transient(ex.response_code) else PermanentSCMError
        raise error(f"{action}: {ex}") from ex
    except OgrException as ex:
        response_code = getattr(ex, "response_code", None)
        error = TransientSCMError if _is_transient(response_code) else PermanentSCMError
        raise error(f"{action}: {ex}") from ex


def _assignees(raw) -> list[str]:
    """Logins of the assignees of a raw GitHub or GitLab pull request."""
    assignees = getattr(raw, "assignees", None) or []
    return [
        assignee["username"] if isinstance(assignee, dict) else assignee.login
        for assignee in assignees
    ]


class OgrSCMClient(SCMClient):
    """
    SCM client on top of ogr; PyGithub and python-gitlab objects ogr
    wraps are used for the few calls ogr does not abstract.
    """

    def __init__(
        self,
        service_config: ServiceConfig,
        server_url: str,
        provider: ProviderType = ProviderType.github,
    ):
        super().__init__(bot_name=service_config.bot_name, server_url=server_url)
        self.service_config = service_config
        self.provider = provider
        self._projects: dict[str, GitProject] = {}

    def __repr__(self):
        return f"OgrSCMClient(server_url={self.server_url}, provider={self.provider.value})"

    def project(self, org: str, repo: str) -> GitProject:
        full_name = f"{org}/{repo}"
        if full_name not in self._projects:
            self._projects[full_name] = self.service_config.get_project(
                url=self.repo_link(org, repo),
            )
        return self._projects[full_name]

    @property
    def provider_type(self) -> ProviderType:
        return self.provider

    def _pr(self, org: str, repo: str, number: int) -> OgrPullRequest:
        return self.project(org, repo).get_pr(number)

    def get_pull_request(self, org: str, repo: str, number: int) -> PullRequest:
        with translate_errors(f"get pull request {org}/{repo}#{number}"):
            pr = self._pr(org, repo, number)
            raw = pr._raw_pr
            draft = bool(getattr(raw, "draft", False) or getattr(raw, "work_in_progress", False))
            return PullRequest(
                org=org,
                repo=repo,
                number=pr.id,
                author=pr.author,
                title=pr.title,
                body=pr.description or "",
                base_ref=pr.target_branch,
                base_sha=pr.target_branch_head_commit,
                head_ref=pr.source_branch,
                head_sha=pr.head_commit,
                link=pr.url,
                author_link=f"{self.server_url}/{pr.author}",
                repo_link=self.repo_link(org, repo),
                clone_url=f"{self.repo_link(org, repo)}.git",
                labels=[label.name for label in pr.labels],
                assignees=_assignees(raw),
                draft=draft,
                closed=pr.status.name != "open",
                merged=pr.status.name == "merged",
            )

    def get_pull_request_changes(self, org: str, repo: str, number: int) -> list[Change]:
        with translate_errors(f"get changes of {org}/{repo}#{number}"):
            raw = self._pr(org, repo, number)._raw_pr
            if isinstance(self.project(org, repo), GitlabProject):
                return [
                    Change(
                        path=change["new_path"],
                        previous_path=change["old_path"],
                        added=change["new_file"],
                        deleted=change["deleted_file"],
                        renamed=change["renamed_file"],
                    )
                    for change in raw.changes()["changes"]
                ]
            return [
                Change(
                    path=file.filename,
                    previous_path=file.previous_filename or "",
                    added=file.status == "added",
                    deleted=file.status == "removed",
                    renamed=file.status == "renamed",
                )
                for file in raw.get_files()
            ]

    def list_pull_request_comments(self, org: str, repo: str, number: int) -> list[Comment]:
        project = self.project(org, repo)
        if not isinstance(project, GithubProject):
            # the other forges list review comments among the PR comments
            return []
        with translate_errors(f"list review comments of {org}/{repo}#{number}"):
            return [
                Comment(
                    id=comment.id,
                    body=comment.body,
                    author=comment.user.login,
                    created=comment.created_at,
                    link=comment.html_url,
                )
                for comment in self._pr(org, repo, number)._raw_pr.get_review_comments()
            ]

    def list_issue_comments(self, org: str, repo: str, number: int) -> list[Comment]:
        with translate_errors(f"list comments of {org}/{repo}#{number}"):
            pr = self._pr(org, repo, number)
            return [
                Comment(
                    id=comment.id,
                    body=comment.body,
                    author=comment.author,
                    created=comment.created,
                    link=f"{pr.url}#issuecomment-{comment.id}",
                )
                for comment in pr.get_comments()
            ]

    def list_reviews(self, org: str, repo: str, number: int) -> list[Review]:
        project = self.project(org, repo)
        with translate_errors(f"list reviews of {org}/{repo}#{number}"):
            raw = self._pr(org, repo, number)._raw_pr
            if isinstance(project, GithubProject):
                return [
                    Review(
                        id=review.id,
                        body=review.body or "",
                        author=review.user.login,
                        state=ReviewState(review.state),
                        created=review.submitted_at,
                        link=review.html_url,
                    )
                    for review in raw.get_reviews()
                ]
            if isinstance(project, GitlabProject):
                approvals = raw.approvals.get()
                return [
                    Review(
                        id=index,
                        body="",
                        author=approver["user"]["username"],
                        state=ReviewState.approved,
                    )
                    for index, approver in enumerate(approvals.approved_by)
                ]
            return []

    def list_issue_events(self, org: str, repo: str, number: int) -> list[IssueEvent]:
        project = self.project(org, repo)
        with translate_errors(f"list events of {org}/{repo}#{number}"):
            if isinstance(project, GithubProject):
                issue = project.github_repo.get_issue(number)
                return [
                    IssueEvent(
                        event=event.event,
                        actor=event.actor.login if event.actor else "",
                        label=event.label.name if event.label else "",
                        created=event.created_at,
                    )
                    for event in issue.get_events()
                ]
            if isinstance(project, GitlabProject):
                raw = self._pr(org, repo, number)._raw_pr
                return [
                    IssueEvent(
                        event="labeled" if event.action == "add" else "unlabeled",
                        actor=event.user["username"] if event.user else "",
                        label=event.label["name"] if event.label else "",
                    )
                    for event in raw.resourcelabelevents.list(iterator=True)
                ]
            return []

    def get_issue_labels(self, org: str, repo: str, number: int) -> list[str]:
        with translate_errors(f"get labels of {org}/{repo}#{number}"):
            return [label.name for label in self._pr(org, repo, number).labels]

    def add_label(self, org: str, repo: str, number: int, label: str):
        logger.debug(f"Adding label {label} to {org}/{repo}#{number}.")
        with translate_errors(f"add label {label} to {org}/{repo}#{number}"):
            self._pr(org, repo, number).add_label(label)

    def remove_label(self, org: str, repo: str, number: int, label: str):
        logger.debug(f"Removing label {label} from {org}/{repo}#{number}.")
        project = self.project(org, repo)
        with translate_errors(f"remove label {label} from {org}/{repo}#{number}"):
            raw = self._pr(org, repo, number)._raw_pr
            if isinstance(project, GitlabProject):
                raw.labels = [existing for existing in raw.labels if existing != label]
                raw.save()
            else:
                raw.remove_from_labels(label)

    def create_comment(self, org: str, repo: str, number: int, body: str):
        with translate_errors(f"comment on {org}/{repo}#{number}"):
            self._pr(org, repo, number).comment(body)

    def delete_comment(self, org: str, repo: str, number: int, comment_id: int):
        logger.debug(f"Deleting comment {comment_id} on {org}/{repo}#{number}.")
        with translate_errors(f"delete comment {comment_id} on {org}/{repo}#{number}"):
            for comment in self._pr(org, repo, number).get_comments():
                if comment.id == comment_id:
                    comment._raw_comment.delete()
                    return

    def _set_people(self, org: str, repo: str, number: int, logins: list[str], method: str):
        project = self.project(org, repo)
        with translate_errors(f"{method} {logins} on {org}/{repo}#{number}"):
            if isinstance(project, GithubProject):
                issue = project.github_repo.get_issue(number)
                pull = issue.as_pull_request()
                {
                    "assign": lambda: issue.add_to_assignees(*logins),
                    "unassign": lambda: issue.remove_from_assignees(*logins),
                    "request_review": lambda: pull.create_review_request(reviewers=logins),
                    "unrequest_review": lambda: pull.delete_review_request(reviewers=logins),
                }[method]()
                return

            if isinstance(project, GitlabProject):
                raw = self._pr(org, repo, number)._raw_pr
                users = {
                    login: project.service.gitlab_instance.users.list(username=login)
                    for login in logins
                }
                ids = [found[0].id for found in users.values() if found]
                field = "assignee_ids" if method.endswith("assign") else "reviewer_ids"
                current = [
                    person["id"]
                    for person in getattr(
                        raw,
                        "assignees" if field == "assignee_ids" else "reviewers",
                        [],
                    )
                ]
                if method.startswith("un"):
                    updated = [user_id for user_id in current if user_id not in ids]
                else:
                    updated = current + [user_id for user_id in ids if user_id not in current]
                setattr(raw, field, updated)
                raw.save()
                return

            logger.info(f"{method} is not supported for {project.service}.")

    def assign_issue(self, org: str, repo: str, number: int, logins: list[str]):
        self._set_people(org, repo, number, logins, "assign")

    def unassign_issue(self, org: str, repo: str, number: int, logins: list[str]):
        self._set_people(org, repo, number, logins, "unassign")

    def request_review(self, org: str, repo: str, number: int, logins: list[str]):
        self._set_people(org, repo, number, logins, "request_review")

    def unrequest_review(self, org: str, repo: str, number: int, logins: list[str]):
        self._set_people(org, repo, number, logins, "unrequest_review")

    def create_status(self, org: str, repo: str, sha: str, status: Status):
        logger.debug(
            f"Setting status '{status.state.value}' for '{status.context}' "
            f"on {org}/{repo}@{sha}: {status.description}",
        )
        with translate_errors(f"set status {status.context} on {org}/{repo}@{sha}"):
            self.project(org, repo).set_commit_status(
                sha,
                MAP_TO_COMMIT_STATUS[status.state],
                status.target_url,
                status.description,
                status.context,
                trim=True,
            )

    def list_statuses(self, org: str, repo: str, ref: str) -> list[Status]:
        with translate_errors(f"list statuses of {org}/{repo}@{ref}"):
            flags = self.project(org, repo).get_commit_statuses(ref)
            return [
                Status(
                    state=MAP_FROM_COMMIT_STATUS.get(flag.state, StatusState.error),
                    context=flag.context,
                    description=flag.comment or "",
                    target_url=flag.url or "",
                )
                for flag in sorted(
                    flags,
                    key=lambda flag: flag.created.timestamp() if flag.created else 0,
                    reverse=True,
                )
            ]

    def get_ref(self, org: str, repo: str, ref: str) -> str:
        with translate_errors(f"get ref {ref} of {org}/{repo}"):
            return self.project(org, repo).get_sha_from_branch(ref.removeprefix("heads/"))

    def get_file(self, org: str, repo: str, path: str, ref: str) -> Optional[str]:
        with translate_errors(f"get file {path} of {org}/{repo}@{ref}"):
            try:
                return self.project(org, repo).get_file_content(path, ref=ref)
            except FileNotFoundError:
                return None

    def list_files(self, org: str, repo: str, path: str, ref: str) -> list[str]:
        prefix = f"{path.rstrip('/')}/" if path else ""
        with translate_errors(f"list files of {org}/{repo}@{ref}"):
            return [
                file
                for file in self.project(org, repo).get_files(ref=ref, recursive=True)
                if file.startswith(prefix) and "/" not in file[len(prefix) :]
            ]

    def is_member(self, org: str, user: str) -> bool:
        with translate_errors(f"check membership of {user} in {org}"):
            for service in self.service_config.services:
                if self.provider == ProviderType.github and hasattr(service, "github"):
                    try:
                        organization = service.github.get_organization(org)
                    except github.UnknownObjectException:
                        return False
                    return organization.has_in_members(service.github.get_user(user))
                if self.provider == ProviderType.gitlab and hasattr(service, "gitlab_instance"):
                    group = service.gitlab_instance.groups.get(org)
                    return any(
                        member.username.lower() == user.lower()
                        for member in group.members_all.list(iterator=True)
                    )
            return False

    def is_collaborator(self, org: str, repo: str, user: str) -> bool:
        return user.lower() in {login.lower() for login in self.list_collaborators(org, repo)}

    def list_collaborators(self, org: str, repo: str) -> list[str]:
        project = self.project(org, repo)
        with translate_errors(f"list collaborators of {org}/{repo}"):
            if isinstance(project, GithubProject):
                return [user.login for user in project.github_repo.get_collaborators()]
            if isinstance(project, GitlabProject):
                return [
                    member.username
                    for member in project.gitlab_repo.members_all.list(iterator=True)
                    if member.access_level >= GITLAB_WRITE_ACCESS_LEVEL
                ]
            return list(project.who_can_merge_pr())

    def has_permission(self, org: str, repo: str, user: str, permission: str) -> bool:
        project = self.project(org, repo)
        with translate_errors(f"check {permission} permission of {user} on {org}/{repo}"):
            if isinstance(project, GithubProject):
                granted = project.github_repo.get_collaborator_permission(user)
                if permission == "admin":
                    return granted == "admin"
                return granted in ("admin", "write", "maintain")
            if isinstance(project, GitlabProject):
                level = GITLAB_WRITE_ACCESS_LEVEL
                if permission == "admin":
                    level = GITLAB_ADMIN_ACCESS_LEVEL
                return any(
                    member.username.lower() == user.lower() and member.access_level >= level
                    for member in project.gitlab_repo.members_all.list(iterator=True)
                )
            return project.can_merge_pr(user)
