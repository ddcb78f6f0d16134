# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from lighthouse_service.events.event import RepoEvent


class DeploymentStatus(RepoEvent):
    """A deployment of `sha` to `environment` reached `state`."""

    def __init__(
        self,
        deployment_id: int,
        sha: str,
        ref: str,
        environment: str,
        state: str,
        target_url: str = "",
        description: str = "",
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.deployment_id = deployment_id
        self.sha = sha
        self.ref = ref
        self.environment = environment
        self.state = state
        self.target_url = target_url
        self.description = description

    @classmethod
    def event_type(cls) -> str:
        return "deployment.DeploymentStatus"
