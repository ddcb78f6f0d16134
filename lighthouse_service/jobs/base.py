# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from lighthouse_service.constants import (
    LABEL_VALUE_MAX_LENGTH,
    RESERVED_JOB_LABELS,
)
from lighthouse_service.exceptions import ConfigError

logger = logging.getLogger(__name__)

JOB_NAME_RE = re.compile(r"^[A-Za-z0-9-._]+$")
LABEL_VALUE_RE = re.compile(r"^(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?$")
QUALIFIED_NAME_RE = re.compile(r"^([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]$")
DNS_SUBDOMAIN_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")

DEFAULT_CLUSTER_ALIAS = "default"


class JobType(str, enum.Enum):
    presubmit = "presubmit"
    postsubmit = "postsubmit"
    periodic = "periodic"
    batch = "batch"
    deployment = "deployment"


class Agent(str, enum.Enum):
    jenkins_x = "jenkins-x"
    # legacy name of the jenkins-x agent
    tekton = "tekton"
    tekton_pipeline = "tekton-pipeline"
    jenkins = "jenkins"


def is_valid_label_value(value: str) -> bool:
    return len(value) <= LABEL_VALUE_MAX_LENGTH and bool(LABEL_VALUE_RE.match(value))


def is_qualified_name(key: str) -> bool:
    """Kubernetes label key: optional DNS subdomain prefix, then a name."""
    prefix, _, name = key.rpartition("/")
    if prefix and (len(prefix) > 253 or not DNS_SUBDOMAIN_RE.match(prefix)):
        return False
    return 0 < len(name) <= LABEL_VALUE_MAX_LENGTH and bool(QUALIFIED_NAME_RE.match(name))


def validate_labels(labels: dict[str, str]):
    for key, value in labels.items():
        if key in RESERVED_JOB_LABELS:
            raise ConfigError(f"label {key} is reserved for decoration")
        if not is_qualified_name(key):
            raise ConfigError(f"invalid label {key}")
        if not is_valid_label_value(value):
            raise ConfigError(f"label {key} has invalid value {value}")


@dataclass
class PipelineRunParam:
    name: str
    value_template: str = ""


@dataclass
class UtilityConfig:
    """How the checkout of the sources should look like."""

    decorate: bool = False
    # alternative go import path
    path_alias: str = ""
    clone_uri: str = ""
    skip_submodules: bool = False
    clone_depth: int = 0
    skip_cloning: bool = False


@dataclass
class Base:
    """Fields shared by all kinds of jobs."""

    name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    # 0 means no limit
    max_concurrency: int = 0
    agent: str = ""
    cluster: str = ""
    # None: the default namespace for pods, "": the namespace of the job
    namespace: Optional[str] = None
    error_on_eviction: bool = False
    # file the job was loaded from
    source: str = ""
    spec: Optional[dict[str, Any]] = None
    pipeline_run_spec: Optional[dict[str, Any]] = None
    pipeline_run_params: list[PipelineRunParam] = field(default_factory=list)
    utility_config: UtilityConfig = field(default_factory=UtilityConfig)

    def set_defaults(self, namespace: str):
        if not self.agent:
            self.agent = Agent.jenkins_x.value
        if not self.namespace:
            self.namespace = namespace
        if not self.cluster:
            self.cluster = DEFAULT_CLUSTER_ALIAS

    def validate(self):
        if not JOB_NAME_RE.match(self.name or ""):
            raise ConfigError(f"name: must match regex {JOB_NAME_RE.pattern!r}")
        if self.max_concurrency < 0:
            raise ConfigError(
                f"max_concurrency: {self.max_concurrency} must be a non-negative number",
            )
        self.validate_agent()
        self.validate_pod_spec()
        validate_labels(self.labels)

    def validate_agent(self):
        agents = sorted(agent.value for agent in Agent)
        if self.agent not in agents:
            raise ConfigError(
                f"agent must be one of {', '.join(agents)} (found {self.agent!r})",
            )

    def validate_pod_spec(self):
        if self.spec is None:
            return
        if self.spec.get("initContainers"):
            raise ConfigError("pod spec may not use init containers")
        containers = self.spec.get("containers") or []
        if len(containers) != 1:
            raise ConfigError(
                f"pod spec must specify exactly 1 container, found: {len(containers)}",
            )

    @property
    def containers(self) -> list[dict]:
        return (self.spec or {}).get("containers", [])
