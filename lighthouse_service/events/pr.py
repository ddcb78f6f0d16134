# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from dataclasses import asdict
from typing import Optional, Union

from lighthouse_service.events.enums import PullRequestAction
from lighthouse_service.events.event import RepoEvent
from lighthouse_service.scm.base import PullRequest


def load_pull_request(pull_request: Union[PullRequest, dict]) -> PullRequest:
    if isinstance(pull_request, PullRequest):
        return pull_request
    return PullRequest(**pull_request)


class Action(RepoEvent):
    """
    Pull request opened, updated, labeled, ...; `actor` is the user
    who did it, not necessarily the author.
    """

    def __init__(
        self,
        action: Union[PullRequestAction, str],
        pull_request: Union[PullRequest, dict],
        label: str = "",
        previous_base_ref: str = "",
        previous_title: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.action = PullRequestAction(action)
        self.pull_request = load_pull_request(pull_request)
        # label added or removed by the labeled/unlabeled actions
        self.label = label
        # set by the edited action when the target branch changed
        self.previous_base_ref = previous_base_ref
        self.previous_title = previous_title

    @classmethod
    def event_type(cls) -> str:
        return "pr.Action"

    @property
    def number(self) -> int:
        return self.pull_request.number

    def get_dict(self, default_dict: Optional[dict] = None) -> dict:
        result = super().get_dict(default_dict)
        result["action"] = self.action.value
        result["pull_request"] = asdict(self.pull_request)
        return result
