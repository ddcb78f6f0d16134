# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
import os
import posixpath
from collections.abc import Iterable
from pathlib import Path
from typing import Optional

from lighthouse_service.constants import OWNERS_ALIASES_FILE, OWNERS_FILE
from lighthouse_service.exceptions import ConfigError
from lighthouse_service.jobs.brancher import compile_regex
from lighthouse_service.owners.parser import (
    DirOptions,
    OwnersFile,
    Section,
    norm_login,
    parse_aliases,
    parse_md_front_matter,
    parse_owners,
)

logger = logging.getLogger(__name__)

BASE_DIR = ""

# directory -> filter pattern (None = every file) -> entries
PeopleMap = dict[str, dict[Optional[str], set[str]]]


def canonicalize(path: str) -> str:
    """Both `.` and `` are the repository root, no trailing slash."""
    if path in (".", ""):
        return BASE_DIR
    return path.rstrip("/") or path


def _relative(directory: str, path: str) -> str:
    return posixpath.relpath(path, directory or ".")


class RepoAliases(dict):
    """Lower-cased alias name -> set of lower-cased logins."""

    def expand_alias(self, alias: str) -> set[str]:
        return set(self.get(alias.strip().lower(), set()))

    def expand_aliases(self, logins: Iterable[str]) -> set[str]:
        expanded: set[str] = set()
        for login in logins:
            members = self.expand_alias(login)
            if members:
                expanded |= members
            else:
                expanded.add(login)
        return expanded


class RepoOwners:
    """
    Directory scoped view of all the OWNERS files of a repository.

    Every map is keyed by the directory relative to the repository root
    (`""` for the root, or the file path itself for markdown front matter)
    and then by the filter pattern the entries apply to.
    """

    def __init__(
        self,
        aliases: Optional[RepoAliases] = None,
        enable_md_yaml: bool = False,
        base_dir: str = "",
    ):
        self.aliases = aliases
        self.enable_md_yaml = enable_md_yaml
        self.base_dir = base_dir

        self.approver_map: PeopleMap = {}
        self.reviewer_map: PeopleMap = {}
        self.required_reviewer_map: PeopleMap = {}
        self.label_map: PeopleMap = {}
        self.minimum_reviewers_map: dict[str, dict[Optional[str], int]] = {}
        self.options: dict[str, DirOptions] = {}

    def __repr__(self):
        return f"RepoOwners(base_dir={self.base_dir}, dirs={sorted(self.approver_map)})"

    # building

    def expand_aliases(self, logins: Iterable[str]) -> set[str]:
        if self.aliases is None:
            return set(logins)
        return self.aliases.expand_aliases(logins)

    def apply_section(
        self,
        path: str,
        pattern: Optional[str],
        section: Section,
        collaborators: Optional[set[str]] = None,
    ):
        """
        Store the section for the directory; approvers and reviewers
        outside of `collaborators` (if given) are dropped.
        """

        def people(logins: list[str], filtered: bool = True) -> set[str]:
            expanded = self.expand_aliases(norm_login(login) for login in logins)
            if filtered and collaborators is not None:
                expanded &= collaborators
            return expanded

        if section.approvers:
            self.approver_map.setdefault(path, {})[pattern] = people(section.approvers)
        if section.reviewers:
            self.reviewer_map.setdefault(path, {})[pattern] = people(section.reviewers)
        if section.required_reviewers:
            self.required_reviewer_map.setdefault(path, {})[pattern] = people(
                section.required_reviewers,
                filtered=False,
            )
        if section.labels:
            self.label_map.setdefault(path, {})[pattern] = set(section.labels)
        if section.minimum_reviewers > 0:
            self.minimum_reviewers_map.setdefault(path, {})[pattern] = section.minimum_reviewers

    def apply_owners_file(
        self,
        path: str,
        owners_file: OwnersFile,
        collaborators: Optional[set[str]] = None,
    ):
        for pattern, section in owners_file.filters.items():
            if pattern is not None:
                compile_regex(pattern)
            self.apply_section(path, pattern, section, collaborators)
        if owners_file.options.no_parent_owners:
            self.options[path] = owners_file.options

    # queries

    def _walk(self, path: str):
        """
        Entries to consult for the path, the deepest first. The walk
        starts at the path itself so it works for directories and for
        markdown files carrying their own owners.
        """
        directory = canonicalize(path)
        while True:
            yield directory
            if directory == BASE_DIR or self.is_no_parent_owners(directory):
                return
            directory = canonicalize(posixpath.dirname(directory))

    @staticmethod
    def _applies(pattern: Optional[str], relative: str) -> bool:
        return pattern is None or bool(compile_regex(pattern).search(relative))

    def _entries_for_file(self, path: str, people: PeopleMap, leaf_only: bool) -> set[str]:
        out: set[str] = set()
        for directory in self._walk(path):
            relative = _relative(directory, path)
            for pattern, entries in people.get(directory, {}).items():
                if self._applies(pattern, relative):
                    out |= entries
            if leaf_only and out:
                break
        return out

    def _find_owners_for_file(self, path: str, people: PeopleMap) -> str:
        directory = canonicalize(path)
        while directory != BASE_DIR:
            relative = _relative(directory, path)
            for pattern, entries in people.get(directory, {}).items():
                if self._applies(pattern, relative) and entries:
                    return directory
            directory = canonicalize(posixpath.dirname(directory))
        return BASE_DIR

    def approvers(self, path: str) -> set[str]:
        """
        Approvers of the file: union up to the root or the closest
        `no_parent_owners` directory.
        """
        return self._entries_for_file(path, self.approver_map, leaf_only=False)

    def leaf_approvers(self, path: str) -> set[str]:
        return self._entries_for_file(path, self.approver_map, leaf_only=True)

    def reviewers(self, path: str) -> set[str]:
        return self._entries_for_file(path, self.reviewer_map, leaf_only=False)

    def leaf_reviewers(self, path: str) -> set[str]:
        return self._entries_for_file(path, self.reviewer_map, leaf_only=True)

    def required_reviewers(self, path: str) -> set[str]:
        return self._entries_for_file(path, self.required_reviewer_map, leaf_only=False)

    def find_approver_owners_for_file(self, path: str) -> str:
        return self._find_owners_for_file(path, self.approver_map)

    def find_reviewers_owners_for_file(self, path: str) -> str:
        return self._find_owners_for_file(path, self.reviewer_map)

    def find_labels_for_file(self, path: str) -> set[str]:
        return self._entries_for_file(path, self.label_map, leaf_only=False)

    def minimum_reviewers_for_file(self, path: str) -> int:
        minimum = 1
        for directory in self._walk(path):
            relative = _relative(directory, path)
            for pattern, value in self.minimum_reviewers_map.get(directory, {}).items():
                if self._applies(pattern, relative):
                    minimum = max(minimum, value)
        return minimum

    def is_no_parent_owners(self, path: str) -> bool:
        return self.options.get(canonicalize(path), DirOptions()).no_parent_owners


def load_aliases_file(base_dir: str) -> tuple[Optional[RepoAliases], list[dict[str, str]]]:
    path = Path(base_dir) / OWNERS_ALIASES_FILE
    if not path.is_file():
        return None, []
    aliases, foreign = parse_aliases(path.read_text())
    return RepoAliases(aliases), foreign


def load_repo_owners_from_dir(
    base_dir: str,
    aliases: Optional[RepoAliases] = None,
    collaborators: Optional[set[str]] = None,
    dir_excludes: Optional[list[str]] = None,
    enable_md_yaml: bool = False,
) -> RepoOwners:
    """
    Walk the checkout and parse every OWNERS file (and markdown
    front matter if enabled).

    Args:
        collaborators: lower-cased logins approvers and reviewers are
            limited to, None to keep everyone listed
        dir_excludes: regexes of directories to skip
    """
    owners = RepoOwners(aliases=aliases, enable_md_yaml=enable_md_yaml, base_dir=base_dir)
    excludes = [compile_regex(pattern) for pattern in dir_excludes or []]

    for root, dirs, files in os.walk(base_dir):
        rel_dir = canonicalize(Path(os.path.relpath(root, base_dir)).as_posix())

        kept = []
        for name in sorted(dirs):
            rel = posixpath.join(rel_dir, name) if rel_dir else name
            if name == ".git" or any(regex.search(rel) for regex in excludes):
                logger.debug(f"Skipping OWNERS in excluded directory {rel}.")
                continue
            kept.append(name)
        dirs[:] = kept

        for filename in sorted(files):
            rel_path = posixpath.join(rel_dir, filename) if rel_dir else filename
            file_path = Path(root) / filename

            if enable_md_yaml and filename.endswith(".md"):
                try:
                    owners_file = parse_md_front_matter(file_path.read_text(), rel_path)
                except (ConfigError, UnicodeDecodeError) as ex:
                    logger.warning(f"Ignoring front matter of {rel_path}: {ex}")
                    continue
                if owners_file:
                    owners.apply_owners_file(rel_path, owners_file, collaborators)
                continue

            if filename != OWNERS_FILE:
                continue

            try:
                owners_file = parse_owners(file_path.read_text(), rel_path)
            except ConfigError as ex:
                logger.error(f"Failed to parse {rel_path}: {ex}")
                continue
            owners.apply_owners_file(rel_dir, owners_file, collaborators)

    return owners
