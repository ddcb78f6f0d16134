# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
OWNERS files relevant for the files changed by a pull request.
"""

import logging
import posixpath
import random
from typing import TYPE_CHECKING, Protocol

from lighthouse_service.owners.repo_owners import canonicalize

if TYPE_CHECKING:
    from lighthouse_service.worker.approve.approvers import Approvers

logger = logging.getLogger(__name__)


class OwnersRepo(Protocol):
    def approvers(self, path: str) -> set[str]: ...

    def leaf_approvers(self, path: str) -> set[str]: ...

    def find_approver_owners_for_file(self, path: str) -> str: ...

    def is_no_parent_owners(self, path: str) -> bool: ...

    def minimum_reviewers_for_file(self, path: str) -> int: ...


class Owners:
    def __init__(self, filenames: list[str], repo: OwnersRepo, seed: int):
        logger.debug(f"Changed files: {filenames}")
        self.filenames = filenames
        self.repo = repo
        self.seed = seed

    def get_all_owners_for_files_changed(self) -> set[str]:
        return {self.repo.find_approver_owners_for_file(fn) for fn in self.filenames}

    def get_owners_set(self) -> set[str]:
        """OWNERS directories which need to be approved, subdirectories removed."""
        owners = self.get_all_owners_for_files_changed()
        self.remove_subdirs(owners)
        return owners

    def remove_subdirs(self, dirs: set[str]):
        """
        E.g. [a, a/b/c, d/e, d/e/f] -> [a, d/e]

        A subdirectory stays when it, or any directory between it and
        the higher one, does not inherit the parent OWNERS.
        """
        for directory in sorted(dirs):
            path = directory
            while not (self.repo.is_no_parent_owners(path) or canonicalize(path) == ""):
                path = canonicalize(posixpath.dirname(path))
                if path in dirs:
                    dirs.discard(directory)
                    break

    def get_approvers(self) -> dict[str, set[str]]:
        return {fn: self.repo.approvers(fn) for fn in self.get_owners_set()}

    def get_leaf_approvers(self) -> dict[str, set[str]]:
        return {fn: self.repo.leaf_approvers(fn) for fn in self.get_owners_set()}

    def get_required_approvers_count(self) -> int:
        """The highest minimum across all the relevant OWNERS files."""
        return max(
            [1]
            + [
                self.repo.minimum_reviewers_for_file(fn)
                for fn in self.get_all_owners_for_files_changed()
            ],
        )

    def get_all_potential_approvers(self) -> list[str]:
        approvers = sorted(
            {
                approver
                for approvers in self.get_leaf_approvers().values()
                for approver in approvers
            },
        )
        if not approvers:
            logger.debug("No potential approvers exist. Does the repo have OWNERS files?")
        return approvers

    def get_shuffled_approvers(self) -> list[str]:
        """Potential approvers in an order stable for the pull request."""
        approvers = self.get_all_potential_approvers()
        random.Random(self.seed).shuffle(approvers)
        return approvers

    @staticmethod
    def get_reverse_map(approvers: dict[str, set[str]]) -> dict[str, set[str]]:
        """Approver -> OWNERS directories they can approve."""
        reverse: dict[str, set[str]] = {}
        for owners_file, people in approvers.items():
            for approver in people:
                reverse.setdefault(approver, set()).add(owners_file)
        return reverse

    def _new_approvers(self) -> "Approvers":
        from lighthouse_service.worker.approve.approvers import Approvers

        return Approvers(self)

    def temporary_unapproved_files(self, approvers: set[str]) -> set[str]:
        """OWNERS directories the given people would not approve."""
        handler = self._new_approvers()
        for approver in approvers:
            handler.add_approver(approver, "", False)
        return handler.unapproved_files()

    def get_suggested_approvers(
        self,
        reverse_map: dict[str, set[str]],
        potential_approvers: list[str],
    ) -> set[str]:
        """Greedy cover of the OWNERS directories by the potential approvers."""
        handler = self._new_approvers()
        while not handler.requirements_met():
            approver = find_most_covering_approver(
                potential_approvers,
                reverse_map,
                handler.unapproved_files(),
            )
            if not approver:
                logger.warning(
                    f"Couldn't suggest approvers for each file, "
                    f"unapproved: {sorted(handler.unapproved_files())}",
                )
                break
            handler.add_approver(approver, "", False)
        return handler.get_current_approvers_set()

    def keep_covering_approvers(
        self,
        reverse_map: dict[str, set[str]],
        known_approvers: set[str],
        potential_approvers: list[str],
    ) -> set[str]:
        """Suggested approvers still useful next to the known ones."""
        if not potential_approvers:
            logger.debug("No potential approvers exist to filter for relevance.")
        unapproved = self.temporary_unapproved_files(known_approvers)
        return {
            approver
            for approver in self.get_suggested_approvers(reverse_map, potential_approvers)
            if reverse_map.get(approver, set()) & unapproved
        }


def find_most_covering_approver(
    approvers: list[str],
    reverse_map: dict[str, set[str]],
    unapproved: set[str],
) -> str:
    max_covered, best = 0, ""
    for approver in approvers:
        covered = len(reverse_map.get(approver, set()) & unapproved)
        if covered > max_covered:
            max_covered, best = covered, approver
    return best
