# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from dataclasses import dataclass, field
from typing import Any, Optional

from lighthouse_service.exceptions import ConfigError
from lighthouse_service.jobs.base import Base, JobType
from lighthouse_service.jobs.brancher import Brancher
from lighthouse_service.jobs.change_matcher import ChangedFilesProvider, RegexpChangeMatcher


@dataclass
class Postsubmit(Base):
    """Job run against a branch after a push."""

    brancher: Brancher = field(default_factory=Brancher)
    change_matcher: RegexpChangeMatcher = field(default_factory=RegexpChangeMatcher)
    context: str = ""
    skip_report: bool = False
    jenkins_spec: Optional[dict[str, Any]] = None
    job_type: JobType = JobType.postsubmit

    def set_defaults(self, namespace: str):
        super().set_defaults(namespace)
        if not self.context:
            self.context = self.name

    def validate(self):
        try:
            super().validate()
        except ConfigError as ex:
            raise ConfigError(f"invalid postsubmit job {self.name}: {ex}") from ex
        try:
            self.brancher.validate()
        except ConfigError as ex:
            raise ConfigError(f"could not set branch regexes for {self.name}: {ex}") from ex
        try:
            self.change_matcher.validate()
        except ConfigError as ex:
            raise ConfigError(f"could not set change regexes for {self.name}: {ex}") from ex

    def could_run(self, base_ref: str) -> bool:
        return self.brancher.should_run(base_ref)

    def should_run(self, base_ref: str, changes: ChangedFilesProvider) -> bool:
        if not self.could_run(base_ref):
            return False
        determined, should_run = self.change_matcher.should_run(changes)
        if determined:
            return should_run
        # postsubmits run by default
        return True
