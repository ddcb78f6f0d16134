# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
import os
from enum import Enum
from pathlib import Path
from typing import NamedTuple, Optional

from ogr import get_instances_from_dict, get_project
from ogr.abstract import GitProject
from yaml import safe_load

from lighthouse_service.constants import (
    CONFIG_FILE_NAME,
    DEFAULT_GIT_CACHE_DIR,
    DEFAULT_LAUNCHER_NAMESPACE,
    DEFAULT_PERIODIC_RESYNC_INTERVAL,
)
from lighthouse_service.exceptions import ConfigError

logger = logging.getLogger(__name__)


class Deployment(str, Enum):
    prod = "prod"
    stg = "stg"
    dev = "dev"


def _matches_org_or_repo(repos: list[str], org: str, repo: str) -> bool:
    return org in repos or f"{org}/{repo}" in repos


class TriggerConfig(NamedTuple):
    """
    Who is trusted to get presubmits run automatically and how the
    trigger plugin behaves for the listed orgs and repos.
    """

    repos: list[str] = []
    trusted_org: str = ""
    trusted_apps: list[str] = []
    join_org_url: str = ""
    only_org_members: bool = False
    ignore_ok_to_test: bool = False
    elide_skipped_contexts: bool = False
    skip_draft_pr: bool = False

    def __repr__(self):
        return (
            f"TriggerConfig(repos={self.repos}, trusted_org={self.trusted_org}, "
            f"only_org_members={self.only_org_members}, "
            f"ignore_ok_to_test={self.ignore_ok_to_test})"
        )


class ApproveConfig(NamedTuple):
    repos: list[str] = []
    issue_required: bool = False
    # None means "use the default" for the tri-state options below
    require_self_approval: Optional[bool] = None
    lgtm_acts_as_approve: bool = False
    ignore_review_state: Optional[bool] = None

    @property
    def has_self_approval(self) -> bool:
        if self.require_self_approval is not None:
            return not self.require_self_approval
        return True

    @property
    def consider_review_state(self) -> bool:
        if self.ignore_review_state is not None:
            return not self.ignore_review_state
        return True


class LgtmConfig(NamedTuple):
    repos: list[str] = []
    review_acts_as_lgtm: bool = False


class OwnersDirExcludes(NamedTuple):
    """
    Directories (regexes) to skip when looking for OWNERS files,
    `repos` is keyed by org or org/repo.
    """

    repos: dict[str, list[str]] = {}
    default: list[str] = []


def _options_for_repo(options: list, org: str, repo: str, default):
    """Repo-level options win over the org-level ones."""
    full_name = f"{org}/{repo}"
    for option in options:
        if full_name in option.repos:
            return option
    for option in options:
        if org in option.repos:
            return option
    return default


class ServiceConfig:
    def __init__(
        self,
        deployment: Deployment = Deployment.stg,
        webhook_secret: str = "",
        gitlab_token_secret: str = "",
        validate_webhooks: bool = True,
        bot_name: str = "lighthouse-bot",
        server_name: str = "",
        authentication: Optional[dict] = None,
        job_config_path: Optional[str] = None,
        in_repo_config: bool = True,
        plugins: Optional[dict[str, list[str]]] = None,
        triggers: Optional[list[TriggerConfig]] = None,
        approve: Optional[list[ApproveConfig]] = None,
        lgtm: Optional[list[LgtmConfig]] = None,
        owners_dir_excludes: Optional[OwnersDirExcludes] = None,
        enable_md_yaml: bool = False,
        skip_collaborators: Optional[list[str]] = None,
        launcher_namespace: str = DEFAULT_LAUNCHER_NAMESPACE,
        git_cache_dir: str = DEFAULT_GIT_CACHE_DIR,
        periodic_resync_interval: int = DEFAULT_PERIODIC_RESYNC_INTERVAL,
        docker_registry: str = "",
        admins: Optional[list[str]] = None,
    ):
        self.deployment = deployment
        self.webhook_secret = webhook_secret
        # Gitlab token secret to decode JWT tokens
        self.gitlab_token_secret = gitlab_token_secret
        self.validate_webhooks = validate_webhooks

        # login of the account the service comments and labels as
        self.bot_name = bot_name
        # for flask SERVER_NAME
        self.server_name = server_name

        # ogr service instances (tokens per forge)
        self.authentication = authentication or {}
        self.services = get_instances_from_dict(self.authentication) if authentication else set()

        # global job catalog, in-repo `.lighthouse/` configs are merged into it
        self.job_config_path = job_config_path
        self.in_repo_config = in_repo_config
        self._job_config = None

        # `org` or `org/repo` -> enabled plugin names
        self.plugins: dict[str, list[str]] = plugins or {}
        self.triggers: list[TriggerConfig] = triggers or []
        self.approve: list[ApproveConfig] = approve or []
        self.lgtm: list[LgtmConfig] = lgtm or []
        self.owners_dir_excludes = owners_dir_excludes or OwnersDirExcludes()
        # OWNERS defined as YAML front matter of markdown files
        self.enable_md_yaml = enable_md_yaml
        # orgs or org/repos where OWNERS entries are not limited to collaborators
        self.skip_collaborators: set[str] = set(skip_collaborators or [])

        self.launcher_namespace = launcher_namespace
        self.git_cache_dir = git_cache_dir
        self.periodic_resync_interval = periodic_resync_interval
        # exported to the jobs as DOCKER_REGISTRY
        self.docker_registry = docker_registry

        # users allowed to /override statuses on any repository
        self.admins: set[str] = set(admins or [])

    service_config = None

    def __repr__(self):
        def hide(token: str) -> str:
            return f"{token[:1]}***{token[-1:]}" if token else ""

        return (
            f"{self.__class__.__name__}("
            f"deployment='{self.deployment}', "
            f"webhook_secret='{hide(self.webhook_secret)}', "
            f"gitlab_token_secret='{hide(self.gitlab_token_secret)}', "
            f"validate_webhooks='{self.validate_webhooks}', "
            f"bot_name='{self.bot_name}', "
            f"server_name='{self.server_name}', "
            f"job_config_path='{self.job_config_path}', "
            f"plugins='{self.plugins}', "
            f"triggers='{self.triggers}', "
            f"launcher_namespace='{self.launcher_namespace}', "
            f"git_cache_dir='{self.git_cache_dir}', "
            f"admins='{self.admins}')"
        )

    @classmethod
    def get_from_dict(cls, raw_dict: dict) -> "ServiceConfig":
        # required to avoid circular imports
        from lighthouse_service.schema import ServiceConfigSchema

        config = ServiceConfigSchema().load(raw_dict)

        config.server_name = raw_dict.get("server_name", "localhost:5000")

        logger.debug(f"Loaded config: {config}")
        return config

    @classmethod
    def get_service_config(cls) -> "ServiceConfig":
        if cls.service_config is None:
            config_file = os.getenv(
                "LIGHTHOUSE_SERVICE_CONFIG",
                Path.home() / ".config" / CONFIG_FILE_NAME,
            )
            logger.debug(f"Loading service config from: {config_file}")

            try:
                with open(config_file) as file_stream:
                    loaded_config = safe_load(file_stream)
            except Exception as ex:
                logger.error(f"Cannot load service config '{config_file}'.")
                raise ConfigError(f"Cannot load service config: {ex}.") from ex

            cls.service_config = ServiceConfig.get_from_dict(raw_dict=loaded_config)
        return cls.service_config

    def get_project(self, url: str) -> GitProject:
        return get_project(url=url, custom_instances=self.services)

    @property
    def job_config(self):
        """Global job catalog, loaded and validated on first access."""
        if self._job_config is None:
            from lighthouse_service.jobs.config import JobConfig

            self._job_config = (
                JobConfig.load(self.job_config_path) if self.job_config_path else JobConfig()
            )
        return self._job_config

    @job_config.setter
    def job_config(self, value):
        self._job_config = value

    def plugins_for(self, org: str, repo: str) -> set[str]:
        return set(self.plugins.get(org, [])) | set(self.plugins.get(f"{org}/{repo}", []))

    def is_plugin_enabled(self, plugin: str, org: str, repo: str) -> bool:
        return plugin in self.plugins_for(org, repo)

    def enabled_repos(self) -> tuple[list[str], list[str]]:
        """Orgs and org/repos with at least one plugin enabled."""
        orgs, repos = [], []
        for key, plugins in self.plugins.items():
            if not plugins:
                continue
            (repos if "/" in key else orgs).append(key)
        return orgs, repos

    def trigger_for(self, org: str, repo: str) -> TriggerConfig:
        for trigger in self.triggers:
            if _matches_org_or_repo(trigger.repos, org, repo):
                return trigger
        return TriggerConfig()

    def approve_for(self, org: str, repo: str) -> ApproveConfig:
        return _options_for_repo(self.approve, org, repo, ApproveConfig())

    def lgtm_for(self, org: str, repo: str) -> LgtmConfig:
        return _options_for_repo(self.lgtm, org, repo, LgtmConfig())

    def owners_dir_excludes_for(self, org: str, repo: str) -> list[str]:
        excludes = self.owners_dir_excludes
        return (
            excludes.repos.get(f"{org}/{repo}")
            or excludes.repos.get(org)
            or excludes.default
        )

    def skips_collaborators(self, org: str, repo: str) -> bool:
        return _matches_org_or_repo(self.skip_collaborators, org, repo)
