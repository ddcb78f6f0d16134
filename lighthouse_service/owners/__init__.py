# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from lighthouse_service.owners.client import OwnersClient
from lighthouse_service.owners.repo_owners import (
    RepoAliases,
    RepoOwners,
    canonicalize,
    load_repo_owners_from_dir,
)

__all__ = [
    OwnersClient.__name__,
    RepoAliases.__name__,
    RepoOwners.__name__,
    canonicalize.__name__,
    load_repo_owners_from_dir.__name__,
]
