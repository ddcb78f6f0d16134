# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Git checkouts backed by an on-disk cache of mirror clones.

The first clone of a repository is a full `git clone --mirror`,
later clones only `git fetch` the mirror and then clone it locally.
"""

import logging
import shutil
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlparse

import backoff

from lighthouse_service.constants import DEFAULT_GIT_CACHE_DIR, GIT_RETRY_MAX_TRIES
from lighthouse_service.exceptions import GitError

logger = logging.getLogger(__name__)


def run_command(cmd: list[str], cwd: Optional[str] = None) -> str:
    """
    Run the command and return its output.

    Raises:
        GitError: the command failed
    """
    logger.debug(f"Running {cmd[:2]} in {cwd or '.'}.")
    result = subprocess.run(
        cmd,
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise GitError(
            f"{' '.join(cmd[:2])} failed with exit code {result.returncode}: {result.stdout}",
        )
    return result.stdout


@backoff.on_exception(
    backoff.expo,
    GitError,
    max_tries=GIT_RETRY_MAX_TRIES,
    on_backoff=lambda details: logger.warning(
        f"Git command failed, retrying in {details['wait']:.1f}s: {details['exception']}",
    ),
)
def run_remote_command(cmd: list[str], cwd: Optional[str] = None) -> str:
    """Commands talking to the forge (clone, fetch) are retried."""
    return run_command(cmd, cwd=cwd)


class Repo:
    """
    A throwaway local clone, don't forget to `clean()` it.
    """

    def __init__(self, directory: str, full_name: str):
        self.directory = directory
        self.full_name = full_name

    def __repr__(self):
        return f"Repo(full_name={self.full_name}, directory={self.directory})"

    def git(self, *args: str) -> str:
        return run_command(["git", *args], cwd=self.directory)

    def checkout(self, commitlike: str):
        logger.info(f"Checkout {commitlike} in {self.full_name}.")
        self.git("checkout", commitlike)

    def rev_parse(self, commitlike: str) -> str:
        return self.git("rev-parse", commitlike).strip()

    def tree_sha(self, commitlike: str) -> str:
        """SHA of the tree the commit points to, identical content gives identical SHA."""
        return self.rev_parse(f"{commitlike}^{{tree}}")

    @property
    def path(self) -> Path:
        return Path(self.directory)

    def clean(self):
        shutil.rmtree(self.directory, ignore_errors=True)

    def __enter__(self):
        return self

    def __exit__(self, *_):
        self.clean()


# one lock per mirror directory, shared by every client of the process
_mirror_locks: dict[str, threading.Lock] = {}
_mirror_locks_lock = threading.Lock()


def mirror_lock(mirror: Path) -> threading.Lock:
    key = str(mirror.resolve())
    with _mirror_locks_lock:
        if key not in _mirror_locks:
            _mirror_locks[key] = threading.Lock()
        return _mirror_locks[key]


class GitClient:
    def __init__(
        self,
        server_url: str,
        cache_dir: str = DEFAULT_GIT_CACHE_DIR,
        user: str = "",
        token_getter: Optional[Callable[[], str]] = None,
        bitbucket_server: bool = False,
    ):
        self.server_url = server_url.rstrip("/")
        self.cache_dir = Path(cache_dir)
        self.user = user
        self.token_getter = token_getter
        self.bitbucket_server = bitbucket_server

    def mirror_path(self, full_name: str) -> Path:
        return self.cache_dir / f"{full_name}.git"

    def _lock_for(self, full_name: str) -> threading.Lock:
        return mirror_lock(self.mirror_path(full_name))

    def remote_url(self, full_name: str) -> str:
        base = self.server_url
        token = self.token_getter() if self.token_getter else ""
        if self.user and token:
            parsed = urlparse(base)
            base = f"{parsed.scheme or 'https'}://{self.user}:{token}@{parsed.netloc}{parsed.path}"

        if self.bitbucket_server:
            # project keys have to be lower-cased for cloning
            owner, _, name = full_name.partition("/")
            return f"{base}/scm/{owner.lower()}/{name}"
        return f"{base}/{full_name}"

    def _update_mirror(self, full_name: str) -> Path:
        """Create or fetch the mirror, the caller holds the lock of the mirror."""
        cache = self.mirror_path(full_name)
        if not cache.exists():
            logger.info(f"Cloning {full_name} for the first time.")
            cache.parent.mkdir(parents=True, exist_ok=True)
            run_remote_command(
                ["git", "clone", "--mirror", self.remote_url(full_name), str(cache)],
            )
        else:
            logger.info(f"Fetching {full_name}.")
            run_remote_command(["git", "fetch", "--prune"], cwd=str(cache))
        return cache

    def tree_sha(self, full_name: str, commitlike: str) -> str:
        """
        Tree SHA of `commitlike` resolved in the updated mirror,
        nothing is checked out.
        """
        with self._lock_for(full_name):
            cache = self._update_mirror(full_name)
            return run_command(
                ["git", "rev-parse", f"{commitlike}^{{tree}}"],
                cwd=str(cache),
            ).strip()

    def clone(self, full_name: str, update: bool = True) -> Repo:
        """
        Fresh local clone of the repository, the mirror in the cache
        is created or updated first unless `update` is off and it exists.
        """
        with self._lock_for(full_name):
            cache = self.mirror_path(full_name)
            if update or not cache.exists():
                cache = self._update_mirror(full_name)

            directory = tempfile.mkdtemp(prefix="lighthouse-git-")
            try:
                run_command(["git", "clone", str(cache), directory])
            except GitError:
                shutil.rmtree(directory, ignore_errors=True)
                raise

        return Repo(directory=directory, full_name=full_name)
