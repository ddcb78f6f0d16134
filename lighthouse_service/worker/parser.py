# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Parser is transforming GitHub/GitLab webhook JSONs into `events` objects
"""

import logging
from typing import Callable, ClassVar, Optional, Union

from lighthouse_service.events import comment, deployment, pr, push, review
from lighthouse_service.events.enums import CommentAction, PullRequestAction, ReviewAction
from lighthouse_service.scm.base import ProviderType, PullRequest
from lighthouse_service.utils import nested_get, split_full_name

logger = logging.getLogger(__name__)

NULL_SHA = "0" * 40

# GitLab merge request actions which map directly to the GitHub ones
GITLAB_MR_ACTIONS = {
    "open": PullRequestAction.opened,
    "reopen": PullRequestAction.reopened,
    "close": PullRequestAction.closed,
    "merge": PullRequestAction.closed,
}


def _github_repo(event: dict) -> dict:
    """Common repository attributes of the GitHub events."""
    repository = event.get("repository") or {}
    owner = nested_get(repository, "owner", "login") or nested_get(repository, "owner", "name")
    return {
        "org": owner,
        "repo": repository.get("name"),
        "repo_link": repository.get("html_url", ""),
        "clone_url": repository.get("clone_url", ""),
        "provider": ProviderType.github,
    }


def _github_pull_request(raw: dict, repo: dict) -> PullRequest:
    return PullRequest(
        org=repo["org"],
        repo=repo["repo"],
        number=raw["number"],
        author=nested_get(raw, "user", "login", default=""),
        title=raw.get("title") or "",
        body=raw.get("body") or "",
        base_ref=nested_get(raw, "base", "ref", default=""),
        base_sha=nested_get(raw, "base", "sha", default=""),
        head_ref=nested_get(raw, "head", "ref", default=""),
        head_sha=nested_get(raw, "head", "sha", default=""),
        link=raw.get("html_url", ""),
        author_link=nested_get(raw, "user", "html_url", default=""),
        repo_link=repo["repo_link"],
        clone_url=repo["clone_url"],
        labels=[label["name"] for label in raw.get("labels") or []],
        assignees=[assignee["login"] for assignee in raw.get("assignees") or []],
        draft=bool(raw.get("draft")),
        closed=raw.get("state") == "closed",
        merged=bool(raw.get("merged")),
    )


def _gitlab_repo(event: dict) -> dict:
    project = event.get("project") or {}
    org, repo = split_full_name(project.get("path_with_namespace", ""))
    return {
        "org": org,
        "repo": repo,
        "repo_link": project.get("web_url", ""),
        "clone_url": project.get("git_http_url") or project.get("http_url", ""),
        "provider": ProviderType.gitlab,
    }


def _gitlab_merge_request(attributes: dict, labels: list, repo: dict, author: str) -> PullRequest:
    state = attributes.get("state")
    return PullRequest(
        org=repo["org"],
        repo=repo["repo"],
        number=attributes["iid"],
        author=author,
        title=attributes.get("title") or "",
        body=attributes.get("description") or "",
        base_ref=attributes.get("target_branch", ""),
        head_ref=attributes.get("source_branch", ""),
        head_sha=nested_get(attributes, "last_commit", "id", default=""),
        link=attributes.get("url", ""),
        repo_link=repo["repo_link"],
        clone_url=repo["clone_url"],
        labels=[label.get("title", "") for label in labels or []],
        draft=bool(attributes.get("draft") or attributes.get("work_in_progress")),
        closed=state in ("closed", "merged"),
        merged=state == "merged",
    )


class Parser:
    """
    Once we receive a new event (GitHub/GitLab webhook) for every event
    we need to have method inside the `Parser` class to create objects defined in `events`.
    """

    @staticmethod
    def parse_event(
        event: dict,
    ) -> Optional[
        Union[
            comment.Comment,
            deployment.DeploymentStatus,
            pr.Action,
            push.Push,
            review.Review,
        ]
    ]:
        """
        Try all the parsers when we don't know what the event is.
        """
        if not event:
            logger.warning("No event to process!")
            return None

        for response in (
            parser(event)
            for parser in (
                Parser.parse_pr_event,
                Parser.parse_review_event,
                Parser.parse_pr_review_comment_event,
                Parser.parse_issue_comment_event,
                Parser.parse_github_push_event,
                Parser.parse_deployment_status_event,
                Parser.parse_mr_event,
                Parser.parse_gitlab_comment_event,
                Parser.parse_gitlab_push_event,
            )
        ):
            if response:
                return response

        logger.debug("We don't process this event.")
        return None

    @staticmethod
    def parse_pr_event(event) -> Optional[pr.Action]:
        if not event.get("pull_request") or event.get("review") or event.get("comment"):
            return None

        action = event.get("action")
        if action not in PullRequestAction.__members__:
            logger.debug(f"Pull request action {action!r} is not handled.")
            return None

        repo = _github_repo(event)
        if not (repo["org"] and repo["repo"]):
            logger.warning("No full name of the repository.")
            return None

        pull_request = _github_pull_request(event["pull_request"], repo)
        logger.info(f"GitHub PR#{pull_request.number} {action!r} event.")

        return pr.Action(
            action=PullRequestAction[action],
            pull_request=pull_request,
            label=nested_get(event, "label", "name", default=""),
            previous_base_ref=nested_get(event, "changes", "base", "ref", "from", default=""),
            previous_title=nested_get(event, "changes", "title", "from"),
            actor=nested_get(event, "sender", "login"),
            **repo,
        )

    @staticmethod
    def parse_review_event(event) -> Optional[review.Review]:
        if not (event.get("review") and event.get("pull_request")):
            return None

        action = event.get("action")
        if action not in ReviewAction.__members__:
            return None

        repo = _github_repo(event)
        raw_review = event["review"]
        pull_request = _github_pull_request(event["pull_request"], repo)
        logger.info(f"GitHub PR#{pull_request.number} review {action!r} event.")

        return review.Review(
            action=ReviewAction[action],
            pull_request=pull_request,
            review_id=raw_review["id"],
            body=raw_review.get("body") or "",
            state=raw_review.get("state", "commented"),
            link=raw_review.get("html_url", ""),
            actor=nested_get(raw_review, "user", "login"),
            **repo,
        )

    @staticmethod
    def parse_pr_review_comment_event(event) -> Optional[comment.Comment]:
        """Comments attached to the diff of a pull request."""
        if not (event.get("comment") and event.get("pull_request")):
            return None
        return Parser._github_comment(event, event["pull_request"], is_pull_request=True)

    @staticmethod
    def parse_issue_comment_event(event) -> Optional[comment.Comment]:
        if not (event.get("comment") and event.get("issue")):
            return None
        issue = event["issue"]
        return Parser._github_comment(
            event,
            issue,
            is_pull_request=bool(issue.get("pull_request")),
        )

    @staticmethod
    def _github_comment(
        event: dict,
        issue: dict,
        is_pull_request: bool,
    ) -> Optional[comment.Comment]:
        action = event.get("action")
        if action not in CommentAction.__members__:
            return None

        raw_comment = event["comment"]
        author = nested_get(raw_comment, "user", "login")
        if not author:
            logger.warning("No GitHub login name from event.")
            return None

        number = issue.get("number")
        logger.info(f"GitHub {'PR' if is_pull_request else 'issue'}#{number} comment {action!r}.")
        return comment.Comment(
            action=CommentAction[action],
            number=number,
            comment_id=raw_comment["id"],
            body=raw_comment.get("body") or "",
            is_pull_request=is_pull_request,
            issue_author=nested_get(issue, "user", "login", default=""),
            issue_state=issue.get("state", "open"),
            link=raw_comment.get("html_url", ""),
            actor=author,
            **_github_repo(event),
        )

    @staticmethod
    def parse_github_comment_event(event) -> Optional[comment.Comment]:
        return Parser.parse_issue_comment_event(event) or Parser.parse_pr_review_comment_event(
            event,
        )

    @staticmethod
    def parse_github_push_event(event) -> Optional[push.Push]:
        if not (event.get("ref") and event.get("pusher")):
            return None

        changed: list[str] = []
        for commit in event.get("commits") or []:
            for key in ("added", "removed", "modified"):
                changed.extend(commit.get(key) or [])

        repo = _github_repo(event)
        logger.info(f"GitHub push to {repo['org']}/{repo['repo']} {event['ref']}.")
        return push.Push(
            ref=event["ref"],
            before=event.get("before", ""),
            after=event.get("after", ""),
            changed_files=sorted(set(changed)),
            created=bool(event.get("created")),
            deleted=bool(event.get("deleted")),
            forced=bool(event.get("forced")),
            compare_link=event.get("compare", ""),
            actor=nested_get(event, "sender", "login") or nested_get(event, "pusher", "name"),
            **repo,
        )

    @staticmethod
    def parse_deployment_status_event(event) -> Optional[deployment.DeploymentStatus]:
        if not (event.get("deployment_status") and event.get("deployment")):
            return None

        status = event["deployment_status"]
        raw_deployment = event["deployment"]
        return deployment.DeploymentStatus(
            deployment_id=raw_deployment["id"],
            sha=raw_deployment.get("sha", ""),
            ref=raw_deployment.get("ref", ""),
            environment=status.get("environment") or raw_deployment.get("environment", ""),
            state=status.get("state", ""),
            target_url=status.get("target_url") or "",
            description=status.get("description") or "",
            actor=nested_get(event, "sender", "login"),
            **_github_repo(event),
        )

    @staticmethod
    def parse_mr_event(event) -> Optional[pr.Action]:
        """Look into the provided event and see if it's one for a gitlab MR."""
        if event.get("object_kind") != "merge_request":
            return None

        attributes = event.get("object_attributes") or {}
        gitlab_action = attributes.get("action")
        changes = event.get("changes") or {}
        label = ""
        previous_base_ref = ""
        previous_title = None

        if gitlab_action in GITLAB_MR_ACTIONS:
            action = GITLAB_MR_ACTIONS[gitlab_action]
        elif gitlab_action == "update" and attributes.get("oldrev"):
            action = PullRequestAction.synchronize
        elif gitlab_action == "update" and "labels" in changes:
            previous = {item["title"] for item in changes["labels"].get("previous") or []}
            current = {item["title"] for item in changes["labels"].get("current") or []}
            if added := sorted(current - previous):
                action, label = PullRequestAction.labeled, added[0]
            elif removed := sorted(previous - current):
                action, label = PullRequestAction.unlabeled, removed[0]
            else:
                return None
        elif gitlab_action == "update" and ("target_branch" in changes or "title" in changes):
            action = PullRequestAction.edited
            previous_base_ref = nested_get(changes, "target_branch", "previous", default="")
            previous_title = nested_get(changes, "title", "previous")
        else:
            logger.debug(f"Merge request action {gitlab_action!r} is not handled.")
            return None

        actor = nested_get(event, "user", "username")
        if not actor:
            logger.warning("No Gitlab username from event.")
            return None

        repo = _gitlab_repo(event)
        # the author is only present as an ID, the actor opened the MR
        author = actor if action == PullRequestAction.opened else ""
        merge_request = _gitlab_merge_request(
            attributes,
            event.get("labels") or [],
            repo,
            author,
        )
        logger.info(f"GitLab MR!{merge_request.number} {action.value!r} event.")
        return pr.Action(
            action=action,
            pull_request=merge_request,
            label=label,
            previous_base_ref=previous_base_ref,
            previous_title=previous_title,
            actor=actor,
            **repo,
        )

    @staticmethod
    def parse_gitlab_comment_event(event) -> Optional[comment.Comment]:
        if event.get("object_kind") != "note":
            return None

        attributes = event.get("object_attributes") or {}
        noteable_type = attributes.get("noteable_type")
        if noteable_type == "MergeRequest":
            issue = event.get("merge_request") or {}
        elif noteable_type == "Issue":
            issue = event.get("issue") or {}
        else:
            logger.debug(f"Comments on {noteable_type} are not handled.")
            return None

        actor = nested_get(event, "user", "username")
        if not actor:
            logger.warning("No Gitlab username from event.")
            return None

        action = CommentAction.edited if attributes.get("action") == "update" else None
        return comment.Comment(
            action=action or CommentAction.created,
            number=issue.get("iid"),
            comment_id=attributes["id"],
            body=attributes.get("note") or "",
            is_pull_request=noteable_type == "MergeRequest",
            issue_state=issue.get("state", "opened"),
            link=attributes.get("url", ""),
            actor=actor,
            **_gitlab_repo(event),
        )

    @staticmethod
    def parse_gitlab_push_event(event) -> Optional[push.Push]:
        if event.get("object_kind") != "push":
            return None

        changed: list[str] = []
        for commit in event.get("commits") or []:
            for key in ("added", "removed", "modified"):
                changed.extend(commit.get(key) or [])

        return push.Push(
            ref=event.get("ref", ""),
            before=event.get("before", ""),
            after=event.get("after", ""),
            changed_files=sorted(set(changed)),
            created=event.get("before") == NULL_SHA,
            deleted=event.get("after") == NULL_SHA,
            actor=event.get("user_username"),
            **_gitlab_repo(event),
        )

    # The .__func__ are needed for Python < 3.10
    MAPPING: ClassVar[dict[str, dict[str, Callable]]] = {
        "github": {
            "pull_request": parse_pr_event.__func__,  # type: ignore
            "pull_request_review": parse_review_event.__func__,  # type: ignore
            "pull_request_review_comment": parse_pr_review_comment_event.__func__,  # type: ignore
            "issue_comment": parse_issue_comment_event.__func__,  # type: ignore
            "push": parse_github_push_event.__func__,  # type: ignore
            "deployment_status": parse_deployment_status_event.__func__,  # type: ignore
        },
        # https://docs.gitlab.com/ee/user/project/integrations/webhook_events.html
        "gitlab": {
            "Merge Request Hook": parse_mr_event.__func__,  # type: ignore
            "Note Hook": parse_gitlab_comment_event.__func__,  # type: ignore
            "Push Hook": parse_gitlab_push_event.__func__,  # type: ignore
        },
    }
