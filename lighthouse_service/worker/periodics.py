# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Periodic jobs.

Every replica keeps its own registration map of the periodics and
Celery beat asks it every minute which of them are due. The name of
the launched job is derived from the job name and the scheduled tick,
so replicas racing for the same tick end up with a single job.
"""

import logging
import posixpath
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from lighthouse_service.config import ServiceConfig
from lighthouse_service.constants import (
    IN_REPO_CONFIG_DIR,
    IN_REPO_TRIGGERS_FILE,
    JOB_NAME_LABEL,
    JOB_TYPE_LABEL,
    RESOURCE_NAME_MAX_LENGTH,
)
from lighthouse_service.exceptions import ConfigError, GitError
from lighthouse_service.git import GitClient
from lighthouse_service.jobs import JobType, Periodic
from lighthouse_service.jobs.inrepo import load_trigger_config_from_dir
from lighthouse_service.jobutil import new_periodic, to_valid_name, truncate_label_value
from lighthouse_service.launcher import Launcher
from lighthouse_service.models import LighthouseJob, PipelineState, Refs
from lighthouse_service.utils import (
    fnv32a,
    get_timezone_aware_datetime,
    go_utc_string,
    utc_now,
)
from lighthouse_service.worker.cron import CronSchedule
from lighthouse_service.worker.mixin import shared_git_client
from lighthouse_service.worker.monitoring import Pushgateway

logger = logging.getLogger(__name__)

HASH_LENGTH = 10
TICK_WINDOW = timedelta(minutes=1)


def periodic_job_name(name: str, scheduled_at: datetime) -> str:
    """
    `<name>-<hash>`, the hash being the FNV-1a hash of the job name and
    the tick zero-padded to 10 digits; the same on every replica.
    """
    hashed = fnv32a(f"{name}{go_utc_string(scheduled_at)}".encode())
    digest = f"{hashed:0{HASH_LENGTH}d}"
    prefix = to_valid_name(
        name,
        allow_dots=True,
        max_length=RESOURCE_NAME_MAX_LENGTH - len(digest) - 1,
    )
    return f"{prefix}-{digest}"


def last_missed_schedule_time(
    schedule: CronSchedule,
    now: datetime,
    existing_jobs: list[LighthouseJob],
) -> Optional[datetime]:
    """
    The most recent tick not later than `now` which no job has been
    created for yet.

    Ticks are looked for after the newest existing job, but never more
    than two intervals back, so a long outage results in a single job.
    """
    now = get_timezone_aware_datetime(now)
    start = now - 2 * schedule.interval_at(now)
    created = [job.creation_timestamp for job in existing_jobs if job.creation_timestamp]
    if created:
        start = max(start, max(get_timezone_aware_datetime(moment) for moment in created))

    missed = None
    tick = schedule.next(start)
    while tick <= now:
        missed = tick
        tick = schedule.next(tick)
    return missed


@dataclass
class Registration:
    periodic: Periodic
    schedule: CronSchedule
    org: str = ""
    repo: str = ""
    branch: str = ""

    @property
    def key(self) -> str:
        return registration_key(self.periodic.name, self.org, self.repo)

    @property
    def in_repo(self) -> bool:
        return bool(self.org)


def registration_key(name: str, org: str = "", repo: str = "") -> str:
    return f"{org}/{repo}:{name}" if org else name


class PeriodicScheduler:
    """
    Registration map of the periodics of one worker process.

    Use `PeriodicScheduler.get_instance()`, the map is shared by all
    the tasks of the process and guarded by a lock.
    """

    _instance: Optional["PeriodicScheduler"] = None
    _instance_lock = threading.Lock()

    def __init__(
        self,
        service_config: Optional[ServiceConfig] = None,
        git_client: Optional[GitClient] = None,
    ):
        self._service_config = service_config
        self._git_client = git_client
        self._registrations: dict[str, Registration] = {}
        # org/repo -> default branch the in-repo periodics were loaded from
        self._branches: dict[str, str] = {}
        self._last_tick: Optional[datetime] = None
        self._lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> "PeriodicScheduler":
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset_instance(cls):
        with cls._instance_lock:
            cls._instance = None

    @property
    def service_config(self) -> ServiceConfig:
        if not self._service_config:
            self._service_config = ServiceConfig.get_service_config()
        return self._service_config

    @property
    def server_url(self) -> str:
        for service in self.service_config.services:
            if url := getattr(service, "instance_url", None):
                return url.rstrip("/")
        return "https://github.com"

    @property
    def git_client(self) -> GitClient:
        if not self._git_client:
            self._git_client = shared_git_client(self.server_url)
        return self._git_client

    @property
    def registrations(self) -> list[Registration]:
        with self._lock:
            return list(self._registrations.values())

    def get(self, name: str, org: str = "", repo: str = "") -> Optional[Registration]:
        with self._lock:
            return self._registrations.get(registration_key(name, org, repo))

    def register(
        self,
        periodic: Periodic,
        org: str = "",
        repo: str = "",
        branch: str = "",
    ) -> Registration:
        registration = Registration(
            periodic=periodic,
            schedule=CronSchedule.parse(periodic.cron),
            org=org,
            repo=repo,
            branch=branch,
        )
        with self._lock:
            self._registrations[registration.key] = registration
        logger.info(f"Scheduled periodic {registration.key} with {periodic.cron!r}.")
        return registration

    def deschedule(self, name: str, org: str = "", repo: str = ""):
        key = registration_key(name, org, repo)
        with self._lock:
            if self._registrations.pop(key, None):
                logger.info(f"Descheduled periodic {key}.")

    def load(self):
        """
        (Re)build the whole map: the periodics of the global catalog and
        the in-repo periodics of every enabled repository.
        """
        job_config = self.service_config.job_config
        periodics = {periodic.name: periodic for periodic in job_config.periodics}
        repos: list[str] = []
        if self.service_config.in_repo_config:
            _, repos = self.service_config.enabled_repos()
        with self._lock:
            for registration in list(self._registrations.values()):
                if registration.in_repo:
                    if f"{registration.org}/{registration.repo}" not in repos:
                        self.deschedule(
                            registration.periodic.name,
                            registration.org,
                            registration.repo,
                        )
                elif registration.periodic.name not in periodics:
                    self.deschedule(registration.periodic.name)
            for periodic in periodics.values():
                registered = self._registrations.get(periodic.name)
                if not registered or not registered.periodic.lazy_fields_equal(periodic):
                    self.register(periodic)

        for full_name in repos:
            org, _, repo = full_name.rpartition("/")
            try:
                self.load_repo(org, repo)
            except (ConfigError, GitError) as ex:
                logger.warning(f"Failed to load the periodics of {full_name}: {ex}")

    def load_repo(self, org: str, repo: str, branch: str = ""):
        """
        Register the in-repo periodics of the repository at the tip of
        `branch` (the default branch if not given), rescheduling only
        the periodics which changed.
        """
        full_name = f"{org}/{repo}"
        with self.git_client.clone(full_name) as checkout:
            if branch:
                checkout.checkout(f"origin/{branch}")
            else:
                branch = checkout.git("rev-parse", "--abbrev-ref", "HEAD").strip()
            periodics = load_trigger_config_from_dir(checkout.directory).periodics

        with self._lock:
            self._branches[full_name] = branch
            current = {
                registration.periodic.name: registration
                for registration in self._registrations.values()
                if (registration.org, registration.repo) == (org, repo)
            }
            wanted = {periodic.name: periodic for periodic in periodics}

            for name in current.keys() - wanted.keys():
                self.deschedule(name, org, repo)
            for name, periodic in wanted.items():
                registered = current.get(name)
                if registered and registered.periodic.lazy_fields_equal(periodic):
                    registered.periodic = periodic
                    continue
                if registered:
                    self.deschedule(name, org, repo)
                self.register(periodic, org, repo, branch)

    def sources_of(self, org: str, repo: str) -> set[str]:
        with self._lock:
            return {
                registration.periodic.source
                for registration in self._registrations.values()
                if (registration.org, registration.repo) == (org, repo)
                and registration.periodic.source
            }

    def affects_periodics(self, org: str, repo: str, changed_files: list[str]) -> bool:
        sources = self.sources_of(org, repo)
        return any(
            path.startswith(f"{IN_REPO_CONFIG_DIR}/")
            and (posixpath.basename(path) == IN_REPO_TRIGGERS_FILE or path in sources)
            for path in changed_files
        )

    def handle_push(self, org: str, repo: str, branch: str, changed_files: list[str]) -> bool:
        """Reload the periodics of the repository if the push changed them."""
        full_name = f"{org}/{repo}"
        with self._lock:
            default_branch = self._branches.get(full_name)
        if default_branch and branch != default_branch:
            logger.debug(f"Push to {full_name}@{branch} is not to the default branch.")
            return False
        if not self.affects_periodics(org, repo, changed_files):
            return False

        logger.info(f"Periodics of {full_name} changed, reloading them.")
        self.load_repo(org, repo, branch)
        return True

    def due(self, now: Optional[datetime] = None) -> list[Registration]:
        """Periodics with a tick since the previous call (or the last minute)."""
        now = get_timezone_aware_datetime(now or utc_now())
        with self._lock:
            since = self._last_tick if self._last_tick and self._last_tick < now else None
            since = since or now - TICK_WINDOW
            self._last_tick = now
            return [
                registration
                for registration in self._registrations.values()
                if registration.schedule.next(since) <= now
            ]

    def refs_of(self, registration: Registration) -> Optional[Refs]:
        if not registration.in_repo:
            return None
        repo_link = f"{self.server_url.rstrip('/')}/{registration.org}/{registration.repo}"
        return Refs(
            org=registration.org,
            repo=registration.repo,
            repo_link=repo_link,
            base_ref=registration.branch,
            clone_uri=f"{repo_link}.git",
        )


def launch_periodic(
    periodic: Periodic,
    launcher: Launcher,
    now: Optional[datetime] = None,
    refs: Optional[Refs] = None,
    pushgateway: Optional[Pushgateway] = None,
) -> Optional[LighthouseJob]:
    """
    Create the job for the last missed tick of the periodic.

    Returns:
        The created (or already existing) job, None if there was no tick
        to run for or the periodic is at its concurrency limit.
    """
    now = get_timezone_aware_datetime(now or utc_now())
    selector = {
        JOB_TYPE_LABEL: JobType.periodic.value,
        JOB_NAME_LABEL: truncate_label_value(periodic.name),
    }
    existing = [job for job in launcher.list_jobs(selector) if job.spec.job == periodic.name]

    if periodic.max_concurrency:
        active = [job for job in existing if not job.complete()]
        if len(active) >= periodic.max_concurrency:
            logger.info(
                f"Periodic {periodic.name} has {len(active)} active jobs, "
                f"max concurrency is {periodic.max_concurrency}.",
            )
            return None

    scheduled_at = last_missed_schedule_time(CronSchedule.parse(periodic.cron), now, existing)
    if not scheduled_at:
        logger.debug(f"No missed tick of periodic {periodic.name}.")
        return None

    job = new_periodic(periodic, refs)
    job.name = periodic_job_name(periodic.name, scheduled_at)
    if not job.namespace:
        job.namespace = launcher.namespace

    created = launcher.create(job)
    if created.status.state:
        logger.debug(f"{created} for {go_utc_string(scheduled_at)} already exists.")
        return created

    logger.info(f"Created {created} for the tick {go_utc_string(scheduled_at)}.")
    if pushgateway:
        pushgateway.periodic_jobs_created.inc()
    return launcher.update_status(created, PipelineState.triggered, utc_now())
