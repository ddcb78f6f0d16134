# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from lighthouse_service.exceptions import ConfigError
from lighthouse_service.jobs.base import Base, JobType
from lighthouse_service.jobs.brancher import Brancher, compile_regex
from lighthouse_service.jobs.change_matcher import ChangedFilesProvider, RegexpChangeMatcher

logger = logging.getLogger(__name__)


def default_trigger_for(name: str) -> str:
    """`/test <name>` (optionally `/lh-test`) on a line of its own."""
    return rf"(?m)^/(?:lh-)?test( | .* ){re.escape(name)},?($|\s.*)"


def default_rerun_command_for(name: str) -> str:
    return f"/test {name}"


@dataclass
class Presubmit(Base):
    """
    Job run against pull requests. Batch jobs share the shape,
    they only differ in `job_type`.
    """

    brancher: Brancher = field(default_factory=Brancher)
    change_matcher: RegexpChangeMatcher = field(default_factory=RegexpChangeMatcher)
    context: str = ""
    skip_report: bool = False
    always_run: bool = False
    # accepted for compatibility, it does not influence whether the job runs
    require_run: bool = False
    optional: bool = False
    trigger: str = ""
    rerun_command: str = ""
    jenkins_spec: Optional[dict[str, Any]] = None
    job_type: JobType = JobType.presubmit

    def set_defaults(self, namespace: str):
        super().set_defaults(namespace)
        if not self.context:
            self.context = self.name
        # Only default both of them, validation fails if just one is set.
        if not self.trigger and not self.rerun_command:
            self.trigger = default_trigger_for(self.name)
            self.rerun_command = default_rerun_command_for(self.name)

    def validate(self):
        try:
            super().validate()
        except ConfigError as ex:
            raise ConfigError(f"invalid presubmit job {self.name}: {ex}") from ex

        if self.always_run and self.change_matcher.run_if_changed:
            raise ConfigError(
                f"job {self.name} is set to always run but also declares run_if_changed "
                "targets, which are mutually exclusive",
            )
        if not self.skip_report and not self.context:
            raise ConfigError(f"job {self.name} is set to report but has no context configured")

        self.validate_regexes()

    def validate_regexes(self):
        try:
            trigger_re = compile_regex(self.trigger)
        except ConfigError as ex:
            raise ConfigError(f"could not compile trigger regex for {self.name}: {ex}") from ex
        if not trigger_re.search(self.rerun_command):
            raise ConfigError(
                f'for job {self.name}, rerun command "{self.rerun_command}" '
                f'does not match trigger "{self.trigger}"',
            )
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

    def should_run(
        self,
        base_ref: str,
        changes: ChangedFilesProvider,
        forced: bool,
        default: bool,
    ) -> bool:
        """
        Decide whether the job runs against the base ref in response
        to the changes; the changes are only loaded when needed.
        """
        if not self.could_run(base_ref):
            return False

        if not forced:
            determined, should_run = self.change_matcher.should_run(changes)
            if determined:
                return should_run

        if self.always_run:
            return True
        if forced:
            return True
        return default

    def triggers_conditionally(self) -> bool:
        return self.needs_explicit_trigger() or self.change_matcher.could_run()

    def needs_explicit_trigger(self) -> bool:
        return not self.always_run and not self.change_matcher.could_run()

    def trigger_matches(self, body: str) -> bool:
        if not self.trigger:
            return False
        try:
            return bool(compile_regex(self.trigger).search(body))
        except ConfigError:
            return body == self.trigger

    def context_required(self) -> bool:
        return not (self.optional or self.skip_report)
