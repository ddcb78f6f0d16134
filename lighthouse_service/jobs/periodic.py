# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from dataclasses import dataclass, field

from lighthouse_service.exceptions import ConfigError
from lighthouse_service.jobs.base import Base, JobType


@dataclass
class Periodic(Base):
    """Job run on a cron schedule, not associated with any pull request."""

    cron: str = ""
    tags: list[str] = field(default_factory=list)
    job_type: JobType = JobType.periodic

    def validate(self):
        # required to avoid circular imports
        from lighthouse_service.worker.cron import CronSchedule

        try:
            super().validate()
        except ConfigError as ex:
            raise ConfigError(f"invalid periodic job {self.name}: {ex}") from ex
        try:
            CronSchedule.parse(self.cron)
        except ValueError as ex:
            raise ConfigError(f"invalid cron string {self.cron!r} of {self.name}: {ex}") from ex

    def lazy_fields_equal(self, other: "Periodic") -> bool:
        """
        Same job apart from the fields filled in lazily
        (the pipeline loaded from the repository).
        """
        return {**self.__dict__, "pipeline_run_spec": None} == {
            **other.__dict__,
            "pipeline_run_spec": None,
        }
