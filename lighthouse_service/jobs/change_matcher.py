# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from lighthouse_service.jobs.brancher import compile_regex

logger = logging.getLogger(__name__)


class ChangedFilesProvider(ABC):
    """Lazily provides the list of paths changed by an event."""

    @abstractmethod
    def get(self) -> list[str]:
        pass


class MemoizedChangedFiles(ChangedFilesProvider):
    """
    Calls the loader at most once; a failed load is not cached
    so that a later call can try again.
    """

    def __init__(self, loader: Callable[[], list[str]]):
        self._loader = loader
        self._changes: Optional[list[str]] = None
        self._lock = threading.Lock()

    def get(self) -> list[str]:
        with self._lock:
            if self._changes is None:
                self._changes = list(self._loader())
                logger.debug(f"Loaded {len(self._changes)} changed files.")
            return self._changes


class StaticChangedFiles(ChangedFilesProvider):
    def __init__(self, changes: list[str]):
        self._changes = list(changes)

    def get(self) -> list[str]:
        return self._changes


@dataclass
class RegexpChangeMatcher:
    run_if_changed: str = ""
    # paths matching this regex never trigger the job on their own
    ignore_changes: str = ""

    def validate(self):
        if self.run_if_changed:
            compile_regex(self.run_if_changed)
        if self.ignore_changes:
            compile_regex(self.ignore_changes)

    def could_run(self) -> bool:
        return self.run_if_changed != ""

    def should_run(self, changes: ChangedFilesProvider) -> tuple[bool, bool]:
        """
        Returns:
            (determined, should_run); errors of the provider propagate
        """
        if not self.could_run():
            return False, False
        return True, self.runs_against_changes(changes.get())

    def runs_against_changes(self, changes: list[str]) -> bool:
        run_re = compile_regex(self.run_if_changed)
        ignore_re = compile_regex(self.ignore_changes) if self.ignore_changes else None
        return any(
            run_re.search(change) and not (ignore_re and ignore_re.search(change))
            for change in changes
        )
