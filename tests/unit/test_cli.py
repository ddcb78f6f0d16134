# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import json

import pytest
from click.testing import CliRunner
from flexmock import flexmock

from lighthouse_service.cli.lighthouse_base import lighthouse_base
from lighthouse_service.worker.jobs import SteveJobs

TRIGGERS = """
apiVersion: config.lighthouse.jenkins-x.io/v1alpha1
kind: TriggerConfig
spec:
  periodics:
    - name: nightly
      cron: "0 4 * * 1-5"
      source: nightly.yaml
"""


@pytest.fixture()
def runner():
    return CliRunner()


def test_validate_job_config(runner, tmp_path):
    config = tmp_path / "jobs.yaml"
    config.write_text("presubmits:\n  org/repo:\n    - name: unit\n      always_run: true\n")

    result = runner.invoke(lighthouse_base, ["validate-jobs", "--job-config", str(config)])

    assert result.exit_code == 0, result.output
    assert str(config) in result.output


def test_validate_invalid_job_config(runner, tmp_path):
    config = tmp_path / "jobs.yaml"
    config.write_text("periodics:\n  - name: nightly\n    cron: every day\n")

    result = runner.invoke(lighthouse_base, ["validate-jobs", "--job-config", str(config)])

    assert result.exit_code == 1
    assert "nightly" in result.output


def test_validate_repo_dir(runner, tmp_path):
    config_dir = tmp_path / ".lighthouse" / "jenkins-x"
    config_dir.mkdir(parents=True)
    (config_dir / "triggers.yaml").write_text(TRIGGERS)
    (config_dir / "nightly.yaml").write_text("kind: PipelineRun\nspec:\n  pipelineSpec: {}\n")

    result = runner.invoke(lighthouse_base, ["validate-jobs", "--repo-dir", str(tmp_path)])

    assert result.exit_code == 0, result.output
    assert "1 periodics" in result.output


def test_validate_nothing(runner):
    result = runner.invoke(lighthouse_base, ["validate-jobs"])
    assert result.exit_code == 2
    assert "Nothing to validate" in result.output


def test_process_message(runner, tmp_path):
    payload = {"zen": "Design for failure."}
    path = tmp_path / "event.json"
    path.write_text(json.dumps(payload))
    flexmock(SteveJobs).should_receive("process_message").with_args(
        event=payload,
        source="github",
        event_type="ping",
        event_guid="",
    ).and_return([]).once()

    result = runner.invoke(
        lighthouse_base,
        ["process-message", str(path), "--source", "github", "--event-type", "ping"],
    )

    assert result.exit_code == 0, result.output
    assert "0 handler tasks created." in result.output
