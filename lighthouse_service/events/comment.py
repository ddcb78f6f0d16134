# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from typing import Optional, Union

from lighthouse_service.events.enums import CommentAction
from lighthouse_service.events.event import RepoEvent


class Comment(RepoEvent):
    """
    Comment on an issue or a pull request, review comments
    attached to the diff included. `actor` is the author of the comment.
    """

    def __init__(
        self,
        action: Union[CommentAction, str],
        number: int,
        comment_id: int,
        body: str,
        is_pull_request: bool = True,
        issue_author: str = "",
        issue_state: str = "open",
        link: str = "",
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.action = CommentAction(action)
        self.number = number
        self.comment_id = comment_id
        self.body = body
        self.is_pull_request = is_pull_request
        self.issue_author = issue_author
        self.issue_state = issue_state
        self.link = link

    @classmethod
    def event_type(cls) -> str:
        return "comment.Comment"

    @property
    def is_open(self) -> bool:
        return self.issue_state in ("open", "opened")

    def get_dict(self, default_dict: Optional[dict] = None) -> dict:
        result = super().get_dict(default_dict)
        result["action"] = self.action.value
        return result
