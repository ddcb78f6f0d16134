# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
The LighthouseJob envelope handed over to the launcher.

Field names follow the `lighthouse.jenkins.io/v1alpha1` custom resource
so that `to_dict()` can be created in the cluster as is.
"""

import enum
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional

from lighthouse_service.constants import (
    LIGHTHOUSE_JOB_API_GROUP,
    LIGHTHOUSE_JOB_API_VERSION,
    LIGHTHOUSE_JOB_KIND,
)
from lighthouse_service.jobs.base import JobType, PipelineRunParam
from lighthouse_service.utils import get_timezone_aware_datetime

logger = logging.getLogger(__name__)


class PipelineState(str, enum.Enum):
    triggered = "triggered"
    pending = "pending"
    running = "running"
    success = "success"
    failure = "failure"
    error = "error"
    aborted = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {PipelineState.success, PipelineState.failure, PipelineState.error, PipelineState.aborted},
)


@dataclass
class Pull:
    number: int
    author: str = ""
    sha: str = ""
    link: str = ""
    commit_link: str = ""
    author_link: str = ""
    ref: str = ""


@dataclass
class Refs:
    org: str
    repo: str
    repo_link: str = ""
    base_ref: str = ""
    base_sha: str = ""
    base_link: str = ""
    clone_uri: str = ""
    path_alias: str = ""
    skip_submodules: bool = False
    clone_depth: int = 0
    pulls: list[Pull] = field(default_factory=list)

    def __str__(self):
        """`main:abc,1:def:refs/pull/1/head` as exported in `PULL_REFS`."""
        parts = [f"{self.base_ref}:{self.base_sha}" if self.base_sha else self.base_ref]
        for pull in self.pulls:
            ref = f"{pull.number}:{pull.sha}"
            if pull.ref:
                ref = f"{ref}:{pull.ref}"
            parts.append(ref)
        return ",".join(parts)

    @classmethod
    def from_dict(cls, raw: dict) -> "Refs":
        raw = dict(raw)
        pulls = [Pull(**pull) for pull in raw.pop("pulls", None) or []]
        return cls(pulls=pulls, **raw)


@dataclass
class LighthouseJobSpec:
    type: JobType
    job: str
    agent: str = ""
    namespace: str = ""
    refs: Optional[Refs] = None
    context: str = ""
    rerun_command: str = ""
    max_concurrency: int = 0
    pod_spec: Optional[dict[str, Any]] = None
    pipeline_run_spec: Optional[dict[str, Any]] = None
    pipeline_run_params: list[PipelineRunParam] = field(default_factory=list)

    def get_branch(self) -> str:
        """Target branch of the refs, empty for periodics."""
        return self.refs.base_ref if self.refs else ""

    @property
    def last_commit_sha(self) -> str:
        if not self.refs:
            return ""
        if self.refs.pulls:
            return self.refs.pulls[0].sha
        return self.refs.base_sha

    def env_vars(self, docker_registry: str = "", build_id: str = "") -> dict[str, str]:
        """Environment variables describing the job to the pipeline."""
        env = {
            "JOB_NAME": self.job,
            "JOB_TYPE": self.type.value,
            "JOB_SPEC": f"type:{self.type.value}",
        }
        if docker_registry:
            env["DOCKER_REGISTRY"] = docker_registry
        if build_id:
            env["BUILD_ID"] = build_id

        if self.type == JobType.periodic or not self.refs:
            return env

        env.update(
            {
                "REPO_OWNER": self.refs.org,
                "REPO_NAME": self.refs.repo,
                "PULL_BASE_REF": self.refs.base_ref,
                "PULL_BASE_SHA": self.refs.base_sha,
                "PULL_REFS": str(self.refs),
            },
        )
        if self.type in (JobType.postsubmit, JobType.batch, JobType.deployment):
            return env

        if self.refs.pulls:
            env["PULL_NUMBER"] = str(self.refs.pulls[0].number)
            env["PULL_PULL_SHA"] = self.refs.pulls[0].sha
        return env

    def to_dict(self) -> dict[str, Any]:
        result = {
            "type": self.type.value,
            "job": self.job,
            "agent": self.agent,
            "namespace": self.namespace,
            "context": self.context,
            "rerun_command": self.rerun_command,
            "max_concurrency": self.max_concurrency,
            "pod_spec": self.pod_spec,
            "pipeline_run_spec": self.pipeline_run_spec,
            "pipeline_run_params": [asdict(param) for param in self.pipeline_run_params],
        }
        if self.refs:
            result["refs"] = asdict(self.refs)
        return {key: value for key, value in result.items() if value not in (None, "", [], 0)}

    @classmethod
    def from_dict(cls, raw: dict) -> "LighthouseJobSpec":
        return cls(
            type=JobType(raw.get("type", JobType.presubmit.value)),
            job=raw.get("job", ""),
            agent=raw.get("agent", ""),
            namespace=raw.get("namespace", ""),
            refs=Refs.from_dict(raw["refs"]) if raw.get("refs") else None,
            context=raw.get("context", ""),
            rerun_command=raw.get("rerun_command", ""),
            max_concurrency=raw.get("max_concurrency", 0),
            pod_spec=raw.get("pod_spec"),
            pipeline_run_spec=raw.get("pipeline_run_spec"),
            pipeline_run_params=[
                PipelineRunParam(**param) for param in raw.get("pipeline_run_params") or []
            ],
        )


def _parse_time(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return get_timezone_aware_datetime(datetime.fromisoformat(value.replace("Z", "+00:00")))


@dataclass
class LighthouseJobStatus:
    state: Optional[PipelineState] = None
    description: str = ""
    start_time: Optional[datetime] = None
    completion_time: Optional[datetime] = None
    build_id: str = ""

    def complete(self) -> bool:
        return self.state is not None and self.state.is_terminal

    def transition(self, state: PipelineState, now: datetime) -> bool:
        """
        Move to the new state, terminal states never change.

        Returns:
            whether the state changed
        """
        if self.complete():
            logger.debug(f"Job already finished as {self.state}, ignoring {state}.")
            return False
        self.state = state
        if state == PipelineState.triggered and not self.start_time:
            self.start_time = now
        if state.is_terminal:
            self.completion_time = now
        return True

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.state:
            result["state"] = self.state.value
        if self.description:
            result["description"] = self.description
        if self.start_time:
            result["startTime"] = self.start_time.isoformat()
        if self.completion_time:
            result["completionTime"] = self.completion_time.isoformat()
        if self.build_id:
            result["buildID"] = self.build_id
        return result

    @classmethod
    def from_dict(cls, raw: Optional[dict]) -> "LighthouseJobStatus":
        raw = raw or {}
        return cls(
            state=PipelineState(raw["state"]) if raw.get("state") else None,
            description=raw.get("description", ""),
            start_time=_parse_time(raw.get("startTime")),
            completion_time=_parse_time(raw.get("completionTime")),
            build_id=raw.get("buildID", ""),
        )


@dataclass
class LighthouseJob:
    spec: LighthouseJobSpec
    name: str = ""
    generate_name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    status: LighthouseJobStatus = field(default_factory=LighthouseJobStatus)
    creation_timestamp: Optional[datetime] = None

    def __str__(self):
        return f"LighthouseJob({self.name or self.generate_name}, job={self.spec.job})"

    def complete(self) -> bool:
        return self.status.complete()

    def to_dict(self) -> dict[str, Any]:
        metadata: dict[str, Any] = {
            "labels": dict(self.labels),
            "annotations": dict(self.annotations),
        }
        if self.name:
            metadata["name"] = self.name
        if self.generate_name:
            metadata["generateName"] = self.generate_name
        if self.namespace:
            metadata["namespace"] = self.namespace
        return {
            "apiVersion": f"{LIGHTHOUSE_JOB_API_GROUP}/{LIGHTHOUSE_JOB_API_VERSION}",
            "kind": LIGHTHOUSE_JOB_KIND,
            "metadata": metadata,
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "LighthouseJob":
        metadata = raw.get("metadata") or {}
        return cls(
            spec=LighthouseJobSpec.from_dict(raw.get("spec") or {}),
            name=metadata.get("name", ""),
            generate_name=metadata.get("generateName", ""),
            namespace=metadata.get("namespace", ""),
            labels=metadata.get("labels") or {},
            annotations=metadata.get("annotations") or {},
            status=LighthouseJobStatus.from_dict(raw.get("status")),
            creation_timestamp=_parse_time(metadata.get("creationTimestamp")),
        )
