# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import copy
import logging
from pathlib import Path
from typing import Optional, Union

from marshmallow import ValidationError
from yaml import YAMLError, safe_load

from lighthouse_service.constants import DEFAULT_LAUNCHER_NAMESPACE
from lighthouse_service.exceptions import ConfigError
from lighthouse_service.jobs.deployment import Deployment
from lighthouse_service.jobs.periodic import Periodic
from lighthouse_service.jobs.postsubmit import Postsubmit
from lighthouse_service.jobs.preset import Preset, merge_preset
from lighthouse_service.jobs.presubmit import Presubmit

logger = logging.getLogger(__name__)


class JobConfig:
    """
    Catalog of all the jobs; presubmits, postsubmits and deployments
    are keyed by `org/repo`, periodics and presets are global.

    Instances are not mutated once validated, merging the in-repo
    configuration creates a new catalog.
    """

    def __init__(
        self,
        presubmits: Optional[dict[str, list[Presubmit]]] = None,
        postsubmits: Optional[dict[str, list[Postsubmit]]] = None,
        periodics: Optional[list[Periodic]] = None,
        deployments: Optional[dict[str, list[Deployment]]] = None,
        presets: Optional[list[Preset]] = None,
    ):
        self.presubmits = presubmits or {}
        self.postsubmits = postsubmits or {}
        self.periodics = periodics or []
        self.deployments = deployments or {}
        self.presets = presets or []

    def __repr__(self):
        return (
            f"JobConfig(presubmits={sum(len(j) for j in self.presubmits.values())}, "
            f"postsubmits={sum(len(j) for j in self.postsubmits.values())}, "
            f"periodics={len(self.periodics)}, "
            f"deployments={sum(len(j) for j in self.deployments.values())})"
        )

    @classmethod
    def get_from_dict(
        cls,
        raw_dict: dict,
        namespace: str = DEFAULT_LAUNCHER_NAMESPACE,
    ) -> "JobConfig":
        # required to avoid circular imports
        from lighthouse_service.jobs.schema import JobConfigSchema

        try:
            config = JobConfigSchema().load(raw_dict or {})
        except ValidationError as ex:
            raise ConfigError(f"Invalid job config: {ex.messages}") from ex
        config.init(namespace)
        config.validate()
        return config

    @classmethod
    def load(
        cls,
        path: Union[str, Path],
        namespace: str = DEFAULT_LAUNCHER_NAMESPACE,
    ) -> "JobConfig":
        """
        Load the catalog from a YAML file or from a directory
        of YAML files which are merged together.
        """
        path = Path(path)
        files = sorted(path.glob("**/*.y*ml")) if path.is_dir() else [path]
        merged: dict = {}
        for file in files:
            logger.debug(f"Loading job config from {file}.")
            try:
                raw = safe_load(file.read_text()) or {}
            except (OSError, YAMLError) as ex:
                raise ConfigError(f"Cannot load job config {file}: {ex}") from ex
            for key, value in raw.items():
                if isinstance(value, dict):
                    repos = merged.setdefault(key, {})
                    for repo, jobs in value.items():
                        repos.setdefault(repo, []).extend(jobs or [])
                elif isinstance(value, list):
                    merged.setdefault(key, []).extend(value)
        return cls.get_from_dict(merged, namespace=namespace)

    def init(self, namespace: str):
        """Fill in the defaults and apply presets to the pod specs."""
        for job in self.all_jobs():
            job.set_defaults(namespace)
            for preset in self.presets:
                try:
                    merge_preset(preset, job.labels, job.spec)
                except ConfigError as ex:
                    raise ConfigError(f"job {job.name}: {ex}") from ex

    def all_jobs(self):
        for jobs in self.presubmits.values():
            yield from jobs
        for jobs in self.postsubmits.values():
            yield from jobs
        for jobs in self.deployments.values():
            yield from jobs
        yield from self.periodics

    def validate(self):
        for repo, jobs in self.presubmits.items():
            seen: set[str] = set()
            for job in jobs:
                if job.name in seen:
                    raise ConfigError(f"duplicated presubmit job: {job.name}")
                seen.add(job.name)
                job.validate()

        for repo, jobs in self.postsubmits.items():
            validated: dict[str, list[Postsubmit]] = {}
            for job in jobs:
                for existing in validated.get(job.name, []):
                    if existing.brancher.intersects(job.brancher):
                        raise ConfigError(f"duplicated postsubmit job: {job.name}")
                validated.setdefault(job.name, []).append(job)
                job.validate()

        for repo, jobs in self.deployments.items():
            for job in jobs:
                job.validate()

        periodic_names: set[str] = set()
        for job in self.periodics:
            if job.name in periodic_names:
                raise ConfigError(f"duplicated periodic job: {job.name}")
            periodic_names.add(job.name)
            job.validate()

    def get_presubmits(self, full_name: str) -> list[Presubmit]:
        return self.presubmits.get(full_name, [])

    def get_postsubmits(self, full_name: str) -> list[Postsubmit]:
        return self.postsubmits.get(full_name, [])

    def get_deployments(self, full_name: str) -> list[Deployment]:
        return self.deployments.get(full_name, [])

    def get_periodic(self, name: str) -> Optional[Periodic]:
        return next((job for job in self.periodics if job.name == name), None)

    def merge(
        self,
        full_name: str,
        presubmits: list[Presubmit],
        postsubmits: list[Postsubmit],
        periodics: list[Periodic],
        deployments: list[Deployment],
        namespace: str = DEFAULT_LAUNCHER_NAMESPACE,
    ) -> "JobConfig":
        """
        New catalog with the jobs of the repository added, jobs of the same
        name defined for the repository are replaced.
        """

        def replace_by_name(existing: list, new: list) -> list:
            result = list(existing)
            for job in new:
                for index, other in enumerate(result):
                    if other.name == job.name:
                        result[index] = job
                        break
                else:
                    result.append(job)
            return result

        merged = JobConfig(
            presubmits=dict(self.presubmits),
            postsubmits=dict(self.postsubmits),
            periodics=list(self.periodics),
            deployments=dict(self.deployments),
            presets=self.presets,
        )
        new_presubmits = copy.deepcopy(presubmits)
        new_postsubmits = copy.deepcopy(postsubmits)
        new_periodics = copy.deepcopy(periodics)
        new_deployments = copy.deepcopy(deployments)

        for job in [*new_presubmits, *new_postsubmits, *new_periodics, *new_deployments]:
            job.set_defaults(namespace)
            for preset in self.presets:
                merge_preset(preset, job.labels, job.spec)

        if new_presubmits:
            merged.presubmits[full_name] = replace_by_name(
                self.get_presubmits(full_name),
                new_presubmits,
            )
        if new_postsubmits:
            merged.postsubmits[full_name] = replace_by_name(
                self.get_postsubmits(full_name),
                new_postsubmits,
            )
        if new_deployments:
            merged.deployments[full_name] = replace_by_name(
                self.get_deployments(full_name),
                new_deployments,
            )
        merged.periodics.extend(new_periodics)

        merged.validate()
        return merged
