# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
import threading
from abc import abstractmethod
from typing import Callable, Optional, Protocol
from urllib.parse import urlparse

from lighthouse_service.config import ServiceConfig
from lighthouse_service.events.event import RepoEvent
from lighthouse_service.git import GitClient
from lighthouse_service.jobs.config import JobConfig
from lighthouse_service.jobs.inrepo import InRepoConfigLoader
from lighthouse_service.launcher import KubernetesLauncher, Launcher
from lighthouse_service.owners.client import OwnersClient
from lighthouse_service.scm.base import ProviderType, SCMClient
from lighthouse_service.scm.ogr_client import OgrSCMClient

logger = logging.getLogger(__name__)

# shared by the handlers of one worker process and keyed by the server URL,
# the caches of the owners clients and in-repo loaders live in them
_git_clients: dict[str, GitClient] = {}
_owners_clients: dict[str, OwnersClient] = {}
_in_repo_loaders: dict[str, InRepoConfigLoader] = {}
_shared_lock = threading.RLock()


def server_url_of(repo_link: str) -> str:
    parsed = urlparse(repo_link)
    if not parsed.netloc:
        return "https://github.com"
    return f"{parsed.scheme or 'https'}://{parsed.netloc}"


def token_for(service_config: ServiceConfig, server_url: str) -> str:
    """Token of the configured ogr service for the server, empty if there is none."""
    hostname = urlparse(server_url).hostname
    for service in service_config.services:
        instance_url = getattr(service, "instance_url", None) or ""
        if hostname in (getattr(service, "hostname", None), urlparse(instance_url).hostname):
            return getattr(service, "token", "") or ""
    return ""


def _token_getter(server_url: str) -> Callable[[], str]:
    # the config is looked up on every call so a reloaded config is honoured
    return lambda: token_for(ServiceConfig.get_service_config(), server_url)


def shared_git_client(
    server_url: str,
    provider: ProviderType = ProviderType.github,
) -> GitClient:
    with _shared_lock:
        if server_url not in _git_clients:
            service_config = ServiceConfig.get_service_config()
            _git_clients[server_url] = GitClient(
                server_url,
                cache_dir=service_config.git_cache_dir,
                user=service_config.bot_name,
                token_getter=_token_getter(server_url),
                bitbucket_server=provider == ProviderType.stash,
            )
        return _git_clients[server_url]


def shared_owners_client(
    server_url: str,
    provider: ProviderType = ProviderType.github,
) -> OwnersClient:
    with _shared_lock:
        if server_url not in _owners_clients:
            service_config = ServiceConfig.get_service_config()
            _owners_clients[server_url] = OwnersClient(
                shared_git_client(server_url, provider),
                OgrSCMClient(service_config, server_url=server_url, provider=provider),
                service_config,
            )
        return _owners_clients[server_url]


def shared_in_repo_loader(
    server_url: str,
    provider: ProviderType = ProviderType.github,
) -> InRepoConfigLoader:
    with _shared_lock:
        if server_url not in _in_repo_loaders:
            _in_repo_loaders[server_url] = InRepoConfigLoader(
                shared_git_client(server_url, provider),
            )
        return _in_repo_loaders[server_url]


class Config(Protocol):
    event: RepoEvent

    @property
    @abstractmethod
    def service_config(self) -> ServiceConfig: ...

    @property
    @abstractmethod
    def scm(self) -> SCMClient: ...


class ConfigFromEventMixin(Config):
    _service_config: Optional[ServiceConfig] = None
    _scm: Optional[SCMClient] = None
    _git_client: Optional[GitClient] = None
    _launcher: Optional[Launcher] = None
    event: RepoEvent

    @property
    def service_config(self) -> ServiceConfig:
        if not self._service_config:
            self._service_config = ServiceConfig.get_service_config()
        return self._service_config

    @property
    def server_url(self) -> str:
        return server_url_of(self.event.repo_link)

    @property
    def scm(self) -> SCMClient:
        if not self._scm:
            self._scm = OgrSCMClient(
                self.service_config,
                server_url=self.server_url,
                provider=self.event.provider,
            )
        return self._scm

    @property
    def git_client(self) -> GitClient:
        if not self._git_client:
            self._git_client = shared_git_client(self.server_url, self.event.provider)
        return self._git_client

    @property
    def owners_client(self) -> OwnersClient:
        return shared_owners_client(self.server_url, self.event.provider)

    @property
    def launcher(self) -> Launcher:
        if not self._launcher:
            self._launcher = KubernetesLauncher(namespace=self.service_config.launcher_namespace)
        return self._launcher

    def job_config_at(self, sha: str) -> JobConfig:
        """Global job catalog with the in-repo jobs of the event's repository at `sha`."""
        base_config = self.service_config.job_config
        if not (self.service_config.in_repo_config and sha):
            return base_config
        loader = shared_in_repo_loader(self.server_url, self.event.provider)
        return loader.job_config_for(
            base_config,
            self.event.org,
            self.event.repo,
            sha,
            namespace=self.service_config.launcher_namespace,
        )
