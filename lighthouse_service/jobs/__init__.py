# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from lighthouse_service.jobs.base import Agent, Base, JobType
from lighthouse_service.jobs.brancher import Brancher
from lighthouse_service.jobs.change_matcher import (
    ChangedFilesProvider,
    MemoizedChangedFiles,
    RegexpChangeMatcher,
    StaticChangedFiles,
)
from lighthouse_service.jobs.config import JobConfig
from lighthouse_service.jobs.deployment import Deployment
from lighthouse_service.jobs.periodic import Periodic
from lighthouse_service.jobs.postsubmit import Postsubmit
from lighthouse_service.jobs.preset import Preset, merge_preset
from lighthouse_service.jobs.presubmit import Presubmit

__all__ = [
    Agent.__name__,
    Base.__name__,
    Brancher.__name__,
    ChangedFilesProvider.__name__,
    Deployment.__name__,
    JobConfig.__name__,
    JobType.__name__,
    MemoizedChangedFiles.__name__,
    Periodic.__name__,
    Postsubmit.__name__,
    Preset.__name__,
    Presubmit.__name__,
    RegexpChangeMatcher.__name__,
    StaticChangedFiles.__name__,
    merge_preset.__name__,
]
