# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Hands the LighthouseJob envelopes over to the pipeline backend.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config import ConfigException

from lighthouse_service.constants import (
    LIGHTHOUSE_JOB_API_GROUP,
    LIGHTHOUSE_JOB_API_VERSION,
    LIGHTHOUSE_JOB_PLURAL,
)
from lighthouse_service.exceptions import LauncherError
from lighthouse_service.models import LighthouseJob, PipelineState
from lighthouse_service.utils import utc_now

logger = logging.getLogger(__name__)


class Launcher(ABC):
    """
    Creating a job is idempotent by its name, creating a job which
    already exists returns the existing one.
    """

    def __init__(self, namespace: str):
        self.namespace = namespace

    @abstractmethod
    def create(self, job: LighthouseJob) -> LighthouseJob:
        """Create the job, return the existing one if the name is taken."""

    @abstractmethod
    def update_status(
        self,
        job: LighthouseJob,
        state: PipelineState,
        start_time: Optional[datetime] = None,
    ) -> LighthouseJob: ...

    @abstractmethod
    def list_jobs(self, selector: dict[str, str]) -> list[LighthouseJob]:
        """Jobs with all the given labels."""

    def launch(self, job: LighthouseJob) -> LighthouseJob:
        """Create the job and mark it as triggered."""
        if not job.namespace:
            job.namespace = self.namespace
        launched = self.create(job)
        logger.info(f"Launched {launched}.")
        return self.update_status(launched, PipelineState.triggered, utc_now())


class KubernetesLauncher(Launcher):
    """`LighthouseJob` custom resources in the cluster the service runs in."""

    def __init__(self, namespace: str, api: Optional[client.CustomObjectsApi] = None):
        super().__init__(namespace)
        self._api = api

    @property
    def api(self) -> client.CustomObjectsApi:
        if self._api is None:
            try:
                config.load_incluster_config()
            except ConfigException:
                logger.debug("Not running in a cluster, loading the kube config.")
                config.load_kube_config()
            self._api = client.CustomObjectsApi()
        return self._api

    def _object_args(self, namespace: str) -> dict[str, str]:
        return {
            "group": LIGHTHOUSE_JOB_API_GROUP,
            "version": LIGHTHOUSE_JOB_API_VERSION,
            "namespace": namespace or self.namespace,
            "plural": LIGHTHOUSE_JOB_PLURAL,
        }

    def create(self, job: LighthouseJob) -> LighthouseJob:
        args = self._object_args(job.namespace)
        try:
            created = self.api.create_namespaced_custom_object(body=job.to_dict(), **args)
        except ApiException as ex:
            if ex.status == 409 and job.name:
                logger.info(f"Job {job.name} already exists, nothing to create.")
                return self._get(job.name, job.namespace)
            raise LauncherError(f"failed to create {job}: {ex.reason}") from ex
        return LighthouseJob.from_dict(created)

    def _get(self, name: str, namespace: str) -> LighthouseJob:
        try:
            existing = self.api.get_namespaced_custom_object(
                name=name,
                **self._object_args(namespace),
            )
        except ApiException as ex:
            raise LauncherError(f"failed to get job {name}: {ex.reason}") from ex
        return LighthouseJob.from_dict(existing)

    def update_status(
        self,
        job: LighthouseJob,
        state: PipelineState,
        start_time: Optional[datetime] = None,
    ) -> LighthouseJob:
        if not job.status.transition(state, start_time or utc_now()):
            return job
        try:
            updated = self.api.patch_namespaced_custom_object_status(
                name=job.name,
                body={"status": job.status.to_dict()},
                **self._object_args(job.namespace),
            )
        except ApiException as ex:
            raise LauncherError(f"failed to update status of {job}: {ex.reason}") from ex
        return LighthouseJob.from_dict(updated)

    def list_jobs(self, selector: dict[str, str]) -> list[LighthouseJob]:
        label_selector = ",".join(f"{key}={value}" for key, value in sorted(selector.items()))
        try:
            response = self.api.list_namespaced_custom_object(
                label_selector=label_selector,
                **self._object_args(self.namespace),
            )
        except ApiException as ex:
            raise LauncherError(f"failed to list jobs {label_selector}: {ex.reason}") from ex
        return [LighthouseJob.from_dict(item) for item in response.get("items", [])]
