# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from typing import Optional

from lighthouse_service.events.event import RepoEvent

BRANCH_REF_PREFIX = "refs/heads/"


class Push(RepoEvent):
    def __init__(
        self,
        ref: str,
        before: str,
        after: str,
        changed_files: Optional[list[str]] = None,
        created: bool = False,
        deleted: bool = False,
        forced: bool = False,
        compare_link: str = "",
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.ref = ref
        self.before = before
        self.after = after
        # added, removed and modified files of all the pushed commits
        self.changed_files = list(changed_files or [])
        self.created = created
        self.deleted = deleted
        self.forced = forced
        self.compare_link = compare_link

    @classmethod
    def event_type(cls) -> str:
        return "push.Push"

    @property
    def branch(self) -> str:
        return self.ref.removeprefix(BRANCH_REF_PREFIX)

    @property
    def is_branch(self) -> bool:
        return self.ref.startswith(BRANCH_REF_PREFIX)

    def pre_check(self) -> bool:
        return not self.deleted and self.is_branch
