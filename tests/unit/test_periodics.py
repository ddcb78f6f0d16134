# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import re
from datetime import datetime, timezone
from pathlib import Path

import pytest
from flexmock import flexmock

from lighthouse_service.constants import JOB_NAME_LABEL, JOB_TYPE_LABEL
from lighthouse_service.jobs import Periodic
from lighthouse_service.jobs.config import JobConfig
from lighthouse_service.models import PipelineState
from lighthouse_service.worker.cron import CronSchedule
from lighthouse_service.worker import periodics
from lighthouse_service.worker.periodics import (
    PeriodicScheduler,
    last_missed_schedule_time,
    launch_periodic,
    periodic_job_name,
)
from tests.spellbook import FakeLauncher


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


TRIGGERS = """
apiVersion: config.lighthouse.jenkins-x.io/v1alpha1
kind: TriggerConfig
spec:
  periodics:
    - name: dailyjob
      cron: "0 4 * * MON-FRI"
      source: dailyjob.yaml
"""

PIPELINE = """
apiVersion: tekton.dev/v1beta1
kind: PipelineRun
spec:
  pipelineSpec:
    tasks: []
"""


class Checkout:
    """Stands in for a git clone of the repository."""

    def __init__(self, directory, branch="main"):
        self.directory = str(directory)
        self.branch = branch
        self.checked_out = []

    def __enter__(self):
        return self

    def __exit__(self, *_):
        pass

    def checkout(self, commitlike):
        self.checked_out.append(commitlike)

    def git(self, *args):
        return f"{self.branch}\n"


@pytest.fixture()
def repo_checkout(tmp_path):
    config_dir = tmp_path / ".lighthouse" / "jenkins-x"
    config_dir.mkdir(parents=True)
    (config_dir / "triggers.yaml").write_text(TRIGGERS)
    (config_dir / "dailyjob.yaml").write_text(PIPELINE)
    return Checkout(tmp_path)


@pytest.fixture()
def scheduler(repo_checkout):
    git_client = flexmock()
    git_client.should_receive("clone").with_args("org/repo").and_return(repo_checkout)
    return PeriodicScheduler(git_client=git_client)


def test_periodic_job_name():
    name = periodic_job_name("hello-world", utc(2023, 1, 2, 3, 5))
    assert re.fullmatch(r"hello-world-\d{10}", name)
    assert name == periodic_job_name("hello-world", utc(2023, 1, 2, 3, 5))
    assert name != periodic_job_name("hello-world", utc(2023, 1, 2, 3, 10))


def test_periodic_job_name_hash_is_zero_padded():
    flexmock(periodics).should_receive("fnv32a").and_return(42)
    assert periodic_job_name("nightly", utc(2023, 1, 2, 3, 5)) == "nightly-0000000042"


def test_periodic_job_name_is_valid_resource_name():
    name = periodic_job_name("Nightly_Build", utc(2023, 1, 2, 3, 5))
    assert name.startswith("nightly-build-")
    assert len(periodic_job_name("x" * 300, utc(2023, 1, 2, 3, 5))) <= 253


@pytest.mark.parametrize(
    "now, created, expected",
    [
        pytest.param(utc(2023, 1, 2, 3, 7), [], utc(2023, 1, 2, 3, 5), id="latest-tick"),
        pytest.param(
            utc(2023, 1, 2, 3, 7),
            [utc(2023, 1, 2, 3, 5, 10)],
            None,
            id="already-created",
        ),
        pytest.param(
            utc(2023, 1, 2, 3, 11),
            [utc(2023, 1, 2, 3, 5, 10)],
            utc(2023, 1, 2, 3, 10),
            id="next-tick",
        ),
        pytest.param(
            utc(2023, 1, 2, 9, 0),
            [utc(2023, 1, 1)],
            utc(2023, 1, 2, 9, 0),
            id="outage-gives-one-tick",
        ),
    ],
)
def test_last_missed_schedule_time(now, created, expected):
    existing = [flexmock(creation_timestamp=moment) for moment in created]
    schedule = CronSchedule.parse("*/5 * * * *")
    assert last_missed_schedule_time(schedule, now, existing) == expected


def test_launch_periodic():
    launcher = FakeLauncher()
    launcher.now = utc(2023, 1, 2, 3, 7)
    periodic = Periodic(name="hello-world", cron="*/5 * * * *")
    pushgateway = flexmock(periodic_jobs_created=flexmock())
    pushgateway.periodic_jobs_created.should_receive("inc").once()

    job = launch_periodic(periodic, launcher, now=launcher.now, pushgateway=pushgateway)

    assert job.name == periodic_job_name("hello-world", utc(2023, 1, 2, 3, 5))
    assert job.namespace == "jx"
    assert job.status.state == PipelineState.triggered
    assert job.labels[JOB_TYPE_LABEL] == "periodic"
    assert job.labels[JOB_NAME_LABEL] == "hello-world"
    assert job.spec.refs is None

    # nothing new until the next tick
    assert launch_periodic(periodic, launcher, now=utc(2023, 1, 2, 3, 8)) is None
    launcher.now = utc(2023, 1, 2, 3, 11)
    assert launch_periodic(periodic, launcher, now=launcher.now)
    assert len(launcher.jobs) == 2


def test_launch_periodic_existing_job_is_not_triggered_again():
    launcher = FakeLauncher()
    periodic = Periodic(name="hello-world", cron="*/5 * * * *")
    launcher.now = utc(2023, 1, 2, 3, 4)
    existing = launch_periodic(periodic, launcher, now=utc(2023, 1, 2, 3, 4))
    assert existing.name == periodic_job_name("hello-world", utc(2023, 1, 2, 3, 0))

    # another replica created the job of the 3:05 tick in the meantime
    raced = launch_periodic(periodic, FakeLauncher(), now=utc(2023, 1, 2, 3, 6))
    launcher.jobs[raced.name] = raced

    pushgateway = flexmock(periodic_jobs_created=flexmock())
    pushgateway.periodic_jobs_created.should_receive("inc").never()
    existing.creation_timestamp = utc(2023, 1, 2, 3, 1)
    raced.creation_timestamp = utc(2023, 1, 2, 3, 1)
    assert (
        launch_periodic(periodic, launcher, now=utc(2023, 1, 2, 3, 7), pushgateway=pushgateway)
        is raced
    )
    assert len(launcher.jobs) == 2


def test_launch_periodic_max_concurrency():
    launcher = FakeLauncher()
    periodic = Periodic(name="hello-world", cron="*/5 * * * *", max_concurrency=1)
    launcher.now = utc(2023, 1, 2, 3, 7)
    assert launch_periodic(periodic, launcher, now=launcher.now)

    launcher.now = utc(2023, 1, 2, 3, 11)
    assert launch_periodic(periodic, launcher, now=launcher.now) is None

    (job,) = launcher.jobs.values()
    job.status.transition(PipelineState.success, launcher.now)
    assert launch_periodic(periodic, launcher, now=launcher.now)


def test_scheduler_due():
    scheduler = PeriodicScheduler(git_client=flexmock())
    scheduler.register(Periodic(name="every-5", cron="*/5 * * * *"))
    scheduler.register(Periodic(name="hourly", cron="@hourly"))

    assert [r.key for r in scheduler.due(utc(2023, 1, 2, 3, 5, 2))] == ["every-5"]
    assert scheduler.due(utc(2023, 1, 2, 3, 6, 2)) == []
    assert {r.key for r in scheduler.due(utc(2023, 1, 2, 4, 0, 1))} == {"every-5", "hourly"}

    scheduler.deschedule("hourly")
    assert scheduler.get("hourly") is None


def test_scheduler_load_global_periodics(global_service_config):
    global_service_config.job_config = JobConfig.get_from_dict(
        {"periodics": [{"name": "nightly", "cron": "0 0 * * *"}]},
    )
    scheduler = PeriodicScheduler(git_client=flexmock())
    scheduler.register(Periodic(name="removed", cron="0 0 * * *"))

    scheduler.load()

    assert [r.key for r in scheduler.registrations] == ["nightly"]


def test_scheduler_load_repo(scheduler, repo_checkout):
    scheduler.load_repo("org", "repo")

    registration = scheduler.get("dailyjob", "org", "repo")
    assert registration.key == "org/repo:dailyjob"
    assert registration.branch == "main"
    assert registration.periodic.source == ".lighthouse/jenkins-x/dailyjob.yaml"
    assert registration.periodic.pipeline_run_spec == {"pipelineSpec": {"tasks": []}}
    assert scheduler.refs_of(registration).clone_uri == "https://github.com/org/repo.git"
    assert scheduler.refs_of(registration).base_ref == "main"
    assert repo_checkout.checked_out == []


def test_scheduler_handle_push(scheduler, repo_checkout):
    scheduler.load_repo("org", "repo")

    triggers = ".lighthouse/jenkins-x/triggers.yaml"
    assert not scheduler.handle_push("org", "repo", "feature", [triggers])
    assert not scheduler.handle_push("org", "repo", "main", ["README.md"])

    (Path(repo_checkout.directory) / triggers).write_text("spec:\n  periodics: []\n")

    assert scheduler.handle_push("org", "repo", "main", [".lighthouse/jenkins-x/dailyjob.yaml"])
    assert repo_checkout.checked_out == ["origin/main"]
    assert scheduler.get("dailyjob", "org", "repo") is None
