# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Jobs defined in the repositories themselves: `.lighthouse/triggers.yaml`
and `.lighthouse/<dir>/triggers.yaml`.
"""

import logging
import posixpath
import threading
from pathlib import Path
from typing import NamedTuple, Optional

from cachetools import TTLCache
from marshmallow import ValidationError
from yaml import YAMLError, safe_load

from lighthouse_service.constants import (
    IN_REPO_CONFIG_DIR,
    IN_REPO_TRIGGERS_FILE,
    OWNERS_CACHE_SIZE,
    OWNERS_CACHE_TTL,
)
from lighthouse_service.exceptions import ConfigError
from lighthouse_service.git import GitClient
from lighthouse_service.jobs.base import Agent, Base
from lighthouse_service.jobs.config import JobConfig
from lighthouse_service.jobs.deployment import Deployment
from lighthouse_service.jobs.periodic import Periodic
from lighthouse_service.jobs.postsubmit import Postsubmit
from lighthouse_service.jobs.presubmit import Presubmit

logger = logging.getLogger(__name__)


class InRepoJobs(NamedTuple):
    presubmits: list[Presubmit] = []
    postsubmits: list[Postsubmit] = []
    periodics: list[Periodic] = []
    deployments: list[Deployment] = []

    def is_empty(self) -> bool:
        return not (self.presubmits or self.postsubmits or self.periodics or self.deployments)


def _load_pipeline(checkout_dir: Path, triggers_dir: str, job: Base):
    """
    The `source` of a job is a pipeline run next to the triggers file,
    it becomes the pipeline run spec of the job.
    """
    if not job.agent:
        job.agent = Agent.tekton_pipeline.value
    relative = posixpath.normpath(posixpath.join(triggers_dir, job.source))
    path = checkout_dir / relative
    try:
        pipeline = safe_load(path.read_text()) or {}
    except (OSError, YAMLError) as ex:
        raise ConfigError(f"failed to load source {relative} of job {job.name}: {ex}") from ex
    if not isinstance(pipeline, dict):
        raise ConfigError(f"source {relative} of job {job.name} is not a pipeline run")
    job.pipeline_run_spec = pipeline.get("spec", pipeline)
    job.source = relative


def load_triggers_file(checkout_dir: Path, relative_path: str) -> Optional[InRepoJobs]:
    # required to avoid circular imports
    from lighthouse_service.jobs.schema import TriggerConfigSchema

    path = checkout_dir / relative_path
    if not path.is_file():
        return None
    try:
        content = path.read_text()
        raw = safe_load(content) if content.strip() else None
    except (OSError, YAMLError) as ex:
        raise ConfigError(f"failed to read {relative_path}: {ex}") from ex
    if not raw:
        return None

    try:
        spec = TriggerConfigSchema().load(raw)["spec"]
    except ValidationError as ex:
        raise ConfigError(f"failed to unmarshal {relative_path}: {ex.messages}") from ex

    jobs = InRepoJobs(**spec)
    triggers_dir = posixpath.dirname(relative_path)
    for job in [*jobs.presubmits, *jobs.postsubmits, *jobs.periodics, *jobs.deployments]:
        if job.source:
            _load_pipeline(checkout_dir, triggers_dir, job)
    return jobs


def _check_duplicates(loaded: dict[str, InRepoJobs]):
    for kind in InRepoJobs._fields:
        seen: dict[str, str] = {}
        for file, jobs in loaded.items():
            for job in getattr(jobs, kind):
                if job.name in seen:
                    raise ConfigError(
                        f"duplicate {kind[:-1]} {job.name} in file {seen[job.name]} and {file}",
                    )
                seen[job.name] = file


def load_trigger_config_from_dir(checkout_dir: str) -> InRepoJobs:
    """Combined jobs of all the triggers files of the checkout."""
    root = Path(checkout_dir)
    config_dir = root / IN_REPO_CONFIG_DIR
    loaded: dict[str, InRepoJobs] = {}
    if config_dir.is_dir():
        for entry in sorted(config_dir.iterdir()):
            if entry.name.startswith("."):
                continue
            if entry.is_dir():
                relative = f"{IN_REPO_CONFIG_DIR}/{entry.name}/{IN_REPO_TRIGGERS_FILE}"
            elif entry.name == IN_REPO_TRIGGERS_FILE:
                relative = f"{IN_REPO_CONFIG_DIR}/{IN_REPO_TRIGGERS_FILE}"
            else:
                continue
            jobs = load_triggers_file(root, relative)
            if jobs is not None:
                loaded[relative] = jobs

    _check_duplicates(loaded)
    combined = InRepoJobs([], [], [], [])
    for jobs in loaded.values():
        for kind in InRepoJobs._fields:
            getattr(combined, kind).extend(getattr(jobs, kind))
    return combined


class InRepoConfigLoader:
    """
    Loads the in-repo jobs of a commit, cached by (org/repo, sha)
    as a commit never changes.
    """

    def __init__(self, git_client: GitClient):
        self.git_client = git_client
        self._cache: TTLCache = TTLCache(maxsize=OWNERS_CACHE_SIZE, ttl=OWNERS_CACHE_TTL)
        self._lock = threading.Lock()

    def load(self, org: str, repo: str, sha: str) -> InRepoJobs:
        full_name = f"{org}/{repo}"
        key = (full_name, sha)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        with self.git_client.clone(full_name) as checkout:
            checkout.checkout(sha)
            jobs = load_trigger_config_from_dir(checkout.directory)

        logger.debug(
            f"Loaded in-repo config of {full_name}@{sha}: "
            f"{len(jobs.presubmits)} presubmits, {len(jobs.postsubmits)} postsubmits, "
            f"{len(jobs.periodics)} periodics, {len(jobs.deployments)} deployments.",
        )
        with self._lock:
            self._cache[key] = jobs
        return jobs

    def job_config_for(
        self,
        base_config: JobConfig,
        org: str,
        repo: str,
        sha: str,
        namespace: str,
    ) -> JobConfig:
        """The global catalog with the jobs of the repository merged in."""
        jobs = self.load(org, repo, sha)
        if jobs.is_empty():
            return base_config
        return base_config.merge(
            f"{org}/{repo}",
            presubmits=jobs.presubmits,
            postsubmits=jobs.postsubmits,
            periodics=jobs.periodics,
            deployments=jobs.deployments,
            namespace=namespace,
        )
