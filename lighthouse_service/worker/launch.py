# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Launching the selected presubmits and reporting the skipped ones.
"""

import logging
from typing import Optional

from lighthouse_service.constants import METAPIPELINE_ERROR_DESCRIPTION, SKIPPED_DESCRIPTION
from lighthouse_service.exceptions import (
    AggregateError,
    LauncherError,
    LighthouseException,
    SCMError,
)
from lighthouse_service.jobs.presubmit import Presubmit
from lighthouse_service.jobutil import job_log_fields, new_presubmit
from lighthouse_service.launcher import Launcher
from lighthouse_service.scm.base import PullRequest, SCMClient, Status, StatusState
from lighthouse_service.worker.monitoring import Pushgateway

logger = logging.getLogger(__name__)


def validate_context_overlap(to_run: list[Presubmit], to_skip: list[Presubmit]):
    requested_contexts = {job.context for job in to_run}
    overlap = sorted(job.context for job in to_skip if job.context in requested_contexts)
    if overlap:
        raise LighthouseException(
            f"the following contexts are both triggered and skipped: {', '.join(overlap)}",
        )


def skipped_status_for(context: str) -> Status:
    return Status(state=StatusState.success, context=context, description=SKIPPED_DESCRIPTION)


def failed_status_for(context: str, error: Exception) -> Status:
    return Status(
        state=StatusState.error,
        context=context,
        description=METAPIPELINE_ERROR_DESCRIPTION.format(error=error),
    )


def run_and_skip_jobs(
    scm: SCMClient,
    launcher: Launcher,
    pr: PullRequest,
    requested: list[Presubmit],
    skipped: list[Presubmit],
    event_guid: str = "",
    elide_skipped_contexts: bool = False,
    pushgateway: Optional[Pushgateway] = None,
):
    """
    Launch the requested presubmits and report the skipped ones as successful.

    A failed launch is reported on its context and does not stop the rest,
    the errors are raised together at the end.
    """
    validate_context_overlap(requested, skipped)

    org, repo = pr.org, pr.repo
    base_sha = scm.get_ref(org, repo, f"heads/{pr.base_ref}")

    errors: list[Exception] = []
    for job in requested:
        lighthouse_job = new_presubmit(
            pr,
            base_sha,
            job,
            event_guid=event_guid,
            pr_ref_fmt=scm.pr_ref_fmt(),
            provider=scm.provider_type,
        )
        logger.info(f"Creating a new LighthouseJob {job_log_fields(lighthouse_job)}.")
        try:
            launcher.launch(lighthouse_job)
        except LauncherError as ex:
            logger.error(f"Failed to create LighthouseJob for {job.name}: {ex}")
            errors.append(ex)
            if pushgateway:
                pushgateway.jobs_failed.labels(job_type=job.job_type.value).inc()
            try:
                scm.create_status(org, repo, pr.head_sha, failed_status_for(job.context, ex))
            except SCMError as status_ex:
                errors.append(status_ex)
            continue
        if pushgateway:
            pushgateway.jobs_launched.labels(job_type=job.job_type.value).inc()

    if not elide_skipped_contexts:
        for job in skipped:
            if job.skip_report:
                continue
            try:
                scm.create_status(org, repo, pr.head_sha, skipped_status_for(job.context))
            except SCMError as ex:
                logger.error(f"Failed to report {job.context} as skipped: {ex}")
                errors.append(ex)
                continue
            if pushgateway:
                pushgateway.jobs_skipped.inc()

    if error := AggregateError.from_list(errors):
        for other in errors[1:]:
            logger.warning(f"Another error while running the jobs: {other}")
        raise error
