# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from dataclasses import dataclass, field
from typing import Any, Optional

from lighthouse_service.exceptions import ConfigError


@dataclass
class Preset:
    """
    Environment, volumes and volume mounts added to the pod spec
    of every job carrying all of the `labels`.
    """

    labels: dict[str, str] = field(default_factory=dict)
    env: list[dict[str, Any]] = field(default_factory=list)
    volumes: list[dict[str, Any]] = field(default_factory=list)
    volume_mounts: list[dict[str, Any]] = field(default_factory=list)

    def selects(self, labels: dict[str, str]) -> bool:
        return all(labels.get(key) == value for key, value in self.labels.items())


def _check_not_present(item: dict, existing: list[dict], what: str):
    if any(other.get("name") == item.get("name") for other in existing):
        raise ConfigError(f"{what} duplicated in pod spec: {item.get('name')}")


def merge_preset(preset: Preset, labels: dict[str, str], pod_spec: Optional[dict[str, Any]]):
    """
    Merge the preset into the pod spec in place if the preset selects
    the labels; a name present in both is a configuration error.
    """
    if pod_spec is None or not preset.selects(labels):
        return

    containers = pod_spec.setdefault("containers", [])
    for env in preset.env:
        for container in containers:
            container_env = container.setdefault("env", [])
            _check_not_present(env, container_env, "env var")
            container_env.append(dict(env))

    volumes = pod_spec.setdefault("volumes", [])
    for volume in preset.volumes:
        _check_not_present(volume, volumes, "volume")
        volumes.append(dict(volume))

    for mount in preset.volume_mounts:
        for container in containers:
            mounts = container.setdefault("volumeMounts", [])
            _check_not_present(mount, mounts, "volume mount")
            mounts.append(dict(mount))
