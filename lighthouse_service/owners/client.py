# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
import threading
from typing import Optional

from cachetools import TTLCache

from lighthouse_service.config import ServiceConfig
from lighthouse_service.constants import (
    OWNERS_ALIASES_FILE,
    OWNERS_CACHE_SIZE,
    OWNERS_CACHE_TTL,
)
from lighthouse_service.git import GitClient
from lighthouse_service.owners.parser import parse_aliases
from lighthouse_service.owners.repo_owners import (
    RepoAliases,
    RepoOwners,
    load_aliases_file,
    load_repo_owners_from_dir,
)
from lighthouse_service.scm.base import SCMClient

logger = logging.getLogger(__name__)


class OwnersClient:
    """
    Loads OWNERS of a repository at a given base ref.

    Parsed owners are cached by the tree SHA of the base, so a new
    commit touching no file leaves the cache valid.
    """

    def __init__(self, git_client: GitClient, scm: SCMClient, service_config: ServiceConfig):
        self.git_client = git_client
        self.scm = scm
        self.service_config = service_config
        self._cache: TTLCache = TTLCache(maxsize=OWNERS_CACHE_SIZE, ttl=OWNERS_CACHE_TTL)
        self._lock = threading.Lock()

    def _foreign_aliases(self, org: str, foreign: list[dict[str, str]]) -> RepoAliases:
        merged = RepoAliases()
        for reference in foreign:
            name = reference.get("name")
            if not name:
                continue
            foreign_org = reference.get("org") or org
            ref = reference.get("ref") or "HEAD"
            content = self.scm.get_file(foreign_org, name, OWNERS_ALIASES_FILE, ref)
            if content is None:
                logger.warning(f"No {OWNERS_ALIASES_FILE} in {foreign_org}/{name}@{ref}.")
                continue
            aliases, _ = parse_aliases(content)
            for alias, members in aliases.items():
                merged.setdefault(alias, set()).update(members)
        return merged

    def _collaborators(self, org: str, repo: str) -> Optional[set[str]]:
        if self.service_config.skips_collaborators(org, repo):
            return None
        return {login.lower() for login in self.scm.list_collaborators(org, repo)}

    def load_repo_owners(self, org: str, repo: str, base: str) -> RepoOwners:
        full_name = f"{org}/{repo}"
        key = (full_name, self.git_client.tree_sha(full_name, base))
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            logger.debug(f"Using cached OWNERS of {full_name} for {base}.")
            return cached

        # the mirror has just been fetched by the tree lookup
        checkout = self.git_client.clone(full_name, update=False)
        try:
            checkout.checkout(base)
            aliases, foreign = load_aliases_file(checkout.directory)
            if foreign:
                aliases = aliases if aliases is not None else RepoAliases()
                for alias, members in self._foreign_aliases(org, foreign).items():
                    aliases.setdefault(alias, set()).update(members)

            owners = load_repo_owners_from_dir(
                checkout.directory,
                aliases=aliases,
                collaborators=self._collaborators(org, repo),
                dir_excludes=self.service_config.owners_dir_excludes_for(org, repo),
                enable_md_yaml=self.service_config.enable_md_yaml,
            )
        finally:
            checkout.clean()

        logger.info(f"Loaded OWNERS of {full_name} at {base}: {owners}")
        with self._lock:
            self._cache[key] = owners
        return owners
