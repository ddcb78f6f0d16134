# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import click

from lighthouse_service.constants import DEFAULT_LAUNCHER_NAMESPACE
from lighthouse_service.exceptions import ConfigError
from lighthouse_service.jobs.config import JobConfig
from lighthouse_service.jobs.inrepo import load_trigger_config_from_dir


@click.command("validate-jobs")
@click.option(
    "--job-config",
    "job_config_path",
    type=click.Path(exists=True),
    help="Job catalog, a YAML file or a directory of them.",
)
@click.option(
    "--repo-dir",
    type=click.Path(exists=True, file_okay=False),
    help="Checkout of a repository with a .lighthouse directory.",
)
@click.option("--namespace", default=DEFAULT_LAUNCHER_NAMESPACE, show_default=True)
def validate_jobs(job_config_path, repo_dir, namespace):
    """
    Load and validate the job catalog and/or the in-repo trigger config,
    exit with 1 if they are invalid.
    """
    if not (job_config_path or repo_dir):
        raise click.UsageError("Nothing to validate, use --job-config or --repo-dir.")

    try:
        if job_config_path:
            config = JobConfig.load(job_config_path, namespace=namespace)
            click.echo(f"{job_config_path}: {config}")
        if repo_dir:
            jobs = load_trigger_config_from_dir(repo_dir)
            catalog = JobConfig(
                presubmits={"in-repo": jobs.presubmits},
                postsubmits={"in-repo": jobs.postsubmits},
                periodics=jobs.periodics,
                deployments={"in-repo": jobs.deployments},
            )
            catalog.init(namespace)
            catalog.validate()
            click.echo(
                f"{repo_dir}: {len(jobs.presubmits)} presubmits, "
                f"{len(jobs.postsubmits)} postsubmits, {len(jobs.periodics)} periodics, "
                f"{len(jobs.deployments)} deployments",
            )
    except ConfigError as ex:
        raise click.ClickException(str(ex)) from ex
