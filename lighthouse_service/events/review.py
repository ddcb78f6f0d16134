# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from dataclasses import asdict
from typing import Optional, Union

from lighthouse_service.events.enums import ReviewAction
from lighthouse_service.events.event import RepoEvent
from lighthouse_service.events.pr import load_pull_request
from lighthouse_service.scm.base import PullRequest, ReviewState


class Review(RepoEvent):
    def __init__(
        self,
        action: Union[ReviewAction, str],
        pull_request: Union[PullRequest, dict],
        review_id: int,
        body: str,
        state: Union[ReviewState, str],
        link: str = "",
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.action = ReviewAction(action)
        self.pull_request = load_pull_request(pull_request)
        self.review_id = review_id
        self.body = body or ""
        self.state = state if isinstance(state, ReviewState) else ReviewState(state.upper())
        self.link = link

    @classmethod
    def event_type(cls) -> str:
        return "review.Review"

    @property
    def number(self) -> int:
        return self.pull_request.number

    def get_dict(self, default_dict: Optional[dict] = None) -> dict:
        result = super().get_dict(default_dict)
        result["action"] = self.action.value
        result["state"] = self.state.value
        result["pull_request"] = asdict(self.pull_request)
        return result
