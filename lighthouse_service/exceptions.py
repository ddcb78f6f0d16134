# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from typing import Optional


class LighthouseException(Exception):
    pass


class ConfigError(LighthouseException):
    """Invalid service config, job catalog or OWNERS file."""


class SCMError(LighthouseException):
    pass


class TransientSCMError(SCMError):
    """Network problem, 5xx or rate limiting; the task may be retried."""


class PermanentSCMError(SCMError):
    """4xx other than rate limiting; retrying won't help."""


class LauncherError(LighthouseException):
    pass


class GitError(LighthouseException):
    pass


class AggregateError(LighthouseException):
    """
    Collects errors of independent operations (e.g. launching several jobs)
    so that one failure does not stop the rest.
    """

    def __init__(self, errors: list[Exception]):
        self.errors = list(errors)
        super().__init__(str(self))

    def __str__(self) -> str:
        if not self.errors:
            return "no errors"
        if len(self.errors) == 1:
            return str(self.errors[0])
        return f"{self.errors[0]} (and {len(self.errors) - 1} more errors)"

    @classmethod
    def from_list(cls, errors: list[Exception]) -> Optional[Exception]:
        """
        None for no errors, the error itself for a single one,
        an aggregate otherwise.
        """
        if not errors:
            return None
        if len(errors) == 1:
            return errors[0]
        return cls(errors)
