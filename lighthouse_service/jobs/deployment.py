# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from dataclasses import dataclass

from lighthouse_service.exceptions import ConfigError
from lighthouse_service.jobs.base import Base, JobType


@dataclass
class Deployment(Base):
    """
    Job run when a deployment status is reported;
    empty `state` or `environment` match any value.
    """

    context: str = ""
    skip_report: bool = False
    # error, failure, inactive, in_progress, queued, pending, success
    state: str = ""
    environment: str = ""
    job_type: JobType = JobType.deployment

    def set_defaults(self, namespace: str):
        super().set_defaults(namespace)
        if not self.context:
            self.context = self.name

    def validate(self):
        try:
            super().validate()
        except ConfigError as ex:
            raise ConfigError(f"invalid deployment job {self.name}: {ex}") from ex

    def matches(self, state: str, environment: str) -> bool:
        if self.state and self.state != state:
            return False
        return not self.environment or self.environment == environment
