# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

from lighthouse_service.exceptions import ConfigError

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1024)
def compile_regex(pattern: str) -> re.Pattern:
    """
    Memoized compilation keyed by the pattern string,
    safe to share between threads.
    """
    try:
        return re.compile(pattern)
    except re.error as ex:
        raise ConfigError(f"invalid regex {pattern!r}: {ex}") from ex


def joined_regex(patterns: list[str]) -> Optional[re.Pattern]:
    if not patterns:
        return None
    return compile_regex("|".join(patterns))


@dataclass
class Brancher:
    """
    Branch policy of a job: `branches` is the allow list,
    `skip_branches` the deny list, both lists of regexes.
    """

    branches: list[str] = field(default_factory=list)
    skip_branches: list[str] = field(default_factory=list)

    def validate(self):
        joined_regex(self.branches)
        joined_regex(self.skip_branches)

    def runs_against_all_branches(self) -> bool:
        return not self.branches and not self.skip_branches

    def should_run(self, branch: str) -> bool:
        if self.runs_against_all_branches():
            return True

        # skip_branches take precedence
        skip = joined_regex(self.skip_branches)
        if skip and skip.search(branch):
            return False

        allowed = joined_regex(self.branches)
        return not self.branches or bool(allowed.search(branch))

    def intersects(self, other: "Brancher") -> bool:
        """
        Could both branchers run against the same branch?

        Only literal branch names are compared, regexes are not analyzed.
        """
        if self.runs_against_all_branches() or other.runs_against_all_branches():
            return True

        if self.branches:
            base_branches = set(self.branches)
            if other.branches:
                return bool(base_branches & set(other.branches))

            # other only skips some branches
            return not base_branches.issubset(set(other.skip_branches))

        if not other.branches:
            # both only skip branches, there are branches none of them skips
            return True

        return other.intersects(self)
