# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Building LighthouseJob envelopes out of the job definitions.
"""

import logging
import posixpath
import uuid
from copy import deepcopy
from typing import Optional, Union

from lighthouse_service.constants import (
    BASE_SHA_LABEL,
    BRANCH_LABEL,
    BUILD_NUM_LABEL,
    CLONE_URI_ANNOTATION,
    CONTEXT_LABEL,
    CREATED_BY_LABEL,
    EVENT_GUID_LABEL,
    GENERATE_NAME_MAX_LENGTH,
    JOB_ID_LABEL,
    JOB_NAME_LABEL,
    JOB_TYPE_LABEL,
    LABEL_VALUE_MAX_LENGTH,
    LAST_COMMIT_SHA_LABEL,
    ORG_LABEL,
    PULL_LABEL,
    REPO_LABEL,
    TRACING_ANNOTATIONS,
)
from lighthouse_service.jobs import Base, Deployment, JobType, Periodic, Postsubmit, Presubmit
from lighthouse_service.jobs.base import is_valid_label_value
from lighthouse_service.models import LighthouseJob, LighthouseJobSpec, Pull, Refs
from lighthouse_service.scm.base import ProviderType, PullRequest

logger = logging.getLogger(__name__)


def to_valid_name(name: str, allow_dots: bool = False, max_length: Optional[int] = None) -> str:
    """
    Lower-cased Kubernetes resource name: starts with a letter, only
    letters, digits and single dashes, no trailing dash.
    """
    if not name:
        return ""
    if not any("a" <= char <= "z" for char in name.lower()):
        name = f"x{name}"

    result: list[str] = []
    last_char_dash = False
    for char in name.lower():
        if max_length is not None and len(result) + 1 > max_length:
            break
        if not result:
            # strip non letters at the start
            if "a" <= char <= "z":
                result.append(char)
            continue
        if char == "." and not allow_dots:
            char = "-"
        if not ("a" <= char <= "z" or "0" <= char <= "9" or char in "-."):
            char = "-"
        if char != "-" or not last_char_dash:
            result.append(char)
        last_char_dash = char == "-"

    return "".join(result).rstrip("-")


def truncate_label_value(value: str) -> str:
    if len(value) <= LABEL_VALUE_MAX_LENGTH:
        return value
    truncated = value[:LABEL_VALUE_MAX_LENGTH].rstrip(".-")
    logger.info(f"Cannot use full value {value!r} as a label, truncated to {truncated!r}.")
    return truncated


def strip_tracing(values: Optional[dict[str, str]]) -> dict[str, str]:
    """Tracing context of the parent must not leak to child resources."""
    return {key: value for key, value in (values or {}).items() if key not in TRACING_ANNOTATIONS}


def labels_and_annotations_for_spec(
    spec: LighthouseJobSpec,
    extra_labels: Optional[dict[str, str]] = None,
    extra_annotations: Optional[dict[str, str]] = None,
    provider: Optional[ProviderType] = None,
) -> tuple[dict[str, str], dict[str, str]]:
    """
    Minimal set of labels and annotations for the job and the resources
    it owns; the extra ones take precedence.

    Label values which are not valid are replaced by their basename
    if that one is valid, dropped otherwise.
    """
    labels = {
        CREATED_BY_LABEL: "true",
        JOB_TYPE_LABEL: spec.type.value,
        JOB_NAME_LABEL: truncate_label_value(spec.job),
    }
    if spec.context:
        labels[CONTEXT_LABEL] = truncate_label_value(spec.context)

    if spec.type != JobType.periodic and spec.refs:
        repo = spec.refs.repo
        if provider == ProviderType.gitlab:
            repo = repo.replace("/", "-")
        labels.update(
            {
                ORG_LABEL: to_valid_name(spec.refs.org.lower(), allow_dots=True)
                or spec.refs.org.lower(),
                REPO_LABEL: repo,
                BRANCH_LABEL: spec.get_branch(),
                BASE_SHA_LABEL: spec.refs.base_sha,
                LAST_COMMIT_SHA_LABEL: spec.last_commit_sha,
            },
        )
        if spec.refs.pulls:
            labels[PULL_LABEL] = str(spec.refs.pulls[0].number)

    labels.update(strip_tracing(extra_labels))

    for key, value in list(labels.items()):
        if is_valid_label_value(value):
            continue
        base = posixpath.basename(value)
        if is_valid_label_value(base):
            labels[key] = base
            continue
        logger.warning(f"Removing invalid label {key}={value!r}.")
        del labels[key]

    annotations = {JOB_NAME_LABEL: spec.job}
    if spec.refs and spec.refs.clone_uri:
        annotations[CLONE_URI_ANNOTATION] = spec.refs.clone_uri
    annotations.update(strip_tracing(extra_annotations))
    return labels, annotations


def labels_and_annotations_for_job(
    job: LighthouseJob,
    build_id: str = "",
) -> tuple[dict[str, str], dict[str, str]]:
    """Labels and annotations for the resources (e.g. pipeline runs) created for the job."""
    extra_labels = dict(job.labels)
    extra_labels[JOB_ID_LABEL] = job.name
    if build_id:
        extra_labels[BUILD_NUM_LABEL] = build_id
    return labels_and_annotations_for_spec(job.spec, extra_labels, job.annotations)


def generate_name(spec: LighthouseJobSpec) -> str:
    """
    `org-repo-pr-1-context-` or `org-repo-branch-context-`, the periodics
    without refs use the job name; at most 32 characters before the dash.
    """
    if spec.refs:
        branch = f"pr-{spec.refs.pulls[0].number}" if spec.refs.pulls else spec.refs.base_ref
        raw = f"{spec.refs.org}-{spec.refs.repo}-{branch}-{spec.context}"
    else:
        raw = spec.job
    name = to_valid_name(raw)
    if len(name) > GENERATE_NAME_MAX_LENGTH:
        name = to_valid_name(name[-GENERATE_NAME_MAX_LENGTH:])
    return f"{name}-"


def new_lighthouse_job(
    spec: LighthouseJobSpec,
    extra_labels: Optional[dict[str, str]] = None,
    extra_annotations: Optional[dict[str, str]] = None,
    provider: Optional[ProviderType] = None,
) -> LighthouseJob:
    labels, annotations = labels_and_annotations_for_spec(
        spec,
        extra_labels,
        extra_annotations,
        provider,
    )
    return LighthouseJob(
        spec=spec,
        name=str(uuid.uuid1()),
        generate_name=generate_name(spec),
        namespace=spec.namespace,
        labels=labels,
        annotations=annotations,
    )


def create_refs(pr: PullRequest, base_sha: str, pr_ref_fmt: str = "") -> Refs:
    """Refs of a presubmit, exactly one pull."""
    return Refs(
        org=pr.org,
        repo=pr.repo,
        repo_link=pr.repo_link,
        base_ref=pr.base_ref,
        base_sha=base_sha,
        base_link=f"{pr.repo_link}/commit/{base_sha}",
        clone_uri=pr.clone_url,
        pulls=[
            Pull(
                number=pr.number,
                author=pr.author,
                sha=pr.head_sha,
                link=pr.link,
                author_link=pr.author_link,
                commit_link=f"{pr.repo_link}/pull/{pr.number}/commits/{pr.head_sha}",
                ref=pr_ref_fmt.format(number=pr.number) if pr_ref_fmt else "",
            ),
        ],
    )


def complete_primary_refs(refs: Refs, job: Base) -> Refs:
    refs = deepcopy(refs)
    if job.utility_config.path_alias:
        refs.path_alias = job.utility_config.path_alias
    if job.utility_config.clone_uri:
        refs.clone_uri = job.utility_config.clone_uri
    refs.skip_submodules = job.utility_config.skip_submodules
    refs.clone_depth = job.utility_config.clone_depth
    return refs


def spec_from_job_base(job: Base, job_type: JobType) -> LighthouseJobSpec:
    return LighthouseJobSpec(
        type=job_type,
        job=job.name,
        agent=job.agent,
        namespace=job.namespace or "",
        max_concurrency=job.max_concurrency,
        pod_spec=deepcopy(job.spec),
        pipeline_run_spec=deepcopy(job.pipeline_run_spec),
        pipeline_run_params=list(job.pipeline_run_params),
    )


def presubmit_spec(job: Presubmit, refs: Refs) -> LighthouseJobSpec:
    spec = spec_from_job_base(job, job.job_type)
    spec.context = job.context
    spec.rerun_command = job.rerun_command
    spec.refs = complete_primary_refs(refs, job)
    return spec


def postsubmit_spec(job: Postsubmit, refs: Refs) -> LighthouseJobSpec:
    spec = spec_from_job_base(job, JobType.postsubmit)
    spec.context = job.context
    spec.refs = complete_primary_refs(refs, job)
    return spec


def periodic_spec(job: Periodic, refs: Optional[Refs] = None) -> LighthouseJobSpec:
    spec = spec_from_job_base(job, JobType.periodic)
    if refs is not None:
        # in-repo periodics run against the repository they are defined in
        spec.refs = complete_primary_refs(refs, job)
    return spec


def deployment_spec(job: Deployment, refs: Refs) -> LighthouseJobSpec:
    spec = spec_from_job_base(job, JobType.deployment)
    spec.context = job.context
    spec.refs = complete_primary_refs(refs, job)
    return spec


def _job_labels(job: Base, event_guid: str = "") -> tuple[dict[str, str], dict[str, str]]:
    labels = dict(job.labels)
    if event_guid:
        labels[EVENT_GUID_LABEL] = event_guid
    return labels, dict(job.annotations)


def new_presubmit(
    pr: PullRequest,
    base_sha: str,
    job: Presubmit,
    event_guid: str = "",
    pr_ref_fmt: str = "",
    provider: Optional[ProviderType] = None,
) -> LighthouseJob:
    labels, annotations = _job_labels(job, event_guid)
    return new_lighthouse_job(
        presubmit_spec(job, create_refs(pr, base_sha, pr_ref_fmt)),
        labels,
        annotations,
        provider,
    )


def new_postsubmit(
    refs: Refs,
    job: Postsubmit,
    event_guid: str = "",
    provider: Optional[ProviderType] = None,
) -> LighthouseJob:
    labels, annotations = _job_labels(job, event_guid)
    return new_lighthouse_job(postsubmit_spec(job, refs), labels, annotations, provider)


def new_periodic(job: Periodic, refs: Optional[Refs] = None) -> LighthouseJob:
    labels, annotations = _job_labels(job)
    return new_lighthouse_job(periodic_spec(job, refs), labels, annotations)


def new_deployment(
    refs: Refs,
    job: Deployment,
    event_guid: str = "",
    provider: Optional[ProviderType] = None,
) -> LighthouseJob:
    labels, annotations = _job_labels(job, event_guid)
    return new_lighthouse_job(deployment_spec(job, refs), labels, annotations, provider)


def job_log_fields(job: LighthouseJob) -> dict[str, Union[str, int]]:
    """Fields identifying the job in the log messages."""
    fields: dict[str, Union[str, int]] = {
        "name": job.name,
        "job": job.spec.job,
        "type": job.spec.type.value,
    }
    if job.labels.get(EVENT_GUID_LABEL):
        fields[EVENT_GUID_LABEL] = job.labels[EVENT_GUID_LABEL]
    if job.spec.refs and len(job.spec.refs.pulls) == 1:
        fields["pr"] = job.spec.refs.pulls[0].number
        fields["repo"] = job.spec.refs.repo
        fields["org"] = job.spec.refs.org
    return fields
