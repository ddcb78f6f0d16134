# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from marshmallow import EXCLUDE, Schema, fields, post_load

from lighthouse_service.jobs.base import PipelineRunParam, UtilityConfig
from lighthouse_service.jobs.brancher import Brancher
from lighthouse_service.jobs.change_matcher import RegexpChangeMatcher
from lighthouse_service.jobs.deployment import Deployment
from lighthouse_service.jobs.periodic import Periodic
from lighthouse_service.jobs.postsubmit import Postsubmit
from lighthouse_service.jobs.preset import Preset
from lighthouse_service.jobs.presubmit import Presubmit

UTILITY_FIELDS = (
    "decorate",
    "path_alias",
    "clone_uri",
    "skip_submodules",
    "clone_depth",
    "skip_cloning",
)


def _pop_brancher(data: dict) -> Brancher:
    return Brancher(
        branches=data.pop("branches", []),
        skip_branches=data.pop("skip_branches", []),
    )


def _pop_change_matcher(data: dict) -> RegexpChangeMatcher:
    return RegexpChangeMatcher(
        run_if_changed=data.pop("run_if_changed", ""),
        ignore_changes=data.pop("ignore_changes", ""),
    )


class PipelineRunParamSchema(Schema):
    name = fields.String(required=True)
    value_template = fields.String(load_default="")

    @post_load
    def make_instance(self, data, **_):
        return PipelineRunParam(**data)


class JobBaseSchema(Schema):
    """
    Fields shared by all the job kinds, the utility config
    is inlined in the job.
    """

    class Meta:
        unknown = EXCLUDE

    name = fields.String(required=True)
    labels = fields.Dict(keys=fields.String(), values=fields.String())
    annotations = fields.Dict(keys=fields.String(), values=fields.String())
    max_concurrency = fields.Integer()
    agent = fields.String()
    cluster = fields.String()
    namespace = fields.String(allow_none=True)
    error_on_eviction = fields.Boolean()
    source = fields.String()
    spec = fields.Dict(allow_none=True)
    pipeline_run_spec = fields.Dict(allow_none=True)
    pipeline_run_params = fields.List(fields.Nested(PipelineRunParamSchema))

    decorate = fields.Boolean()
    path_alias = fields.String()
    clone_uri = fields.String()
    skip_submodules = fields.Boolean()
    clone_depth = fields.Integer()
    skip_cloning = fields.Boolean()

    @staticmethod
    def pop_utility_config(data: dict) -> UtilityConfig:
        return UtilityConfig(
            **{key: data.pop(key) for key in UTILITY_FIELDS if key in data},
        )


class PresubmitSchema(JobBaseSchema):
    context = fields.String()
    skip_report = fields.Boolean()
    branches = fields.List(fields.String())
    skip_branches = fields.List(fields.String())
    run_if_changed = fields.String()
    ignore_changes = fields.String()
    always_run = fields.Boolean()
    require_run = fields.Boolean()
    optional = fields.Boolean()
    trigger = fields.String()
    rerun_command = fields.String()
    jenkins_spec = fields.Dict(allow_none=True)

    @post_load
    def make_instance(self, data, **_):
        utility_config = self.pop_utility_config(data)
        return Presubmit(
            brancher=_pop_brancher(data),
            change_matcher=_pop_change_matcher(data),
            utility_config=utility_config,
            **data,
        )


class PostsubmitSchema(JobBaseSchema):
    context = fields.String()
    skip_report = fields.Boolean()
    branches = fields.List(fields.String())
    skip_branches = fields.List(fields.String())
    run_if_changed = fields.String()
    ignore_changes = fields.String()
    jenkins_spec = fields.Dict(allow_none=True)

    @post_load
    def make_instance(self, data, **_):
        utility_config = self.pop_utility_config(data)
        return Postsubmit(
            brancher=_pop_brancher(data),
            change_matcher=_pop_change_matcher(data),
            utility_config=utility_config,
            **data,
        )


class PeriodicSchema(JobBaseSchema):
    cron = fields.String(required=True)
    tags = fields.List(fields.String())

    @post_load
    def make_instance(self, data, **_):
        utility_config = self.pop_utility_config(data)
        return Periodic(utility_config=utility_config, **data)


class DeploymentSchema(JobBaseSchema):
    context = fields.String()
    skip_report = fields.Boolean()
    state = fields.String()
    environment = fields.String()

    @post_load
    def make_instance(self, data, **_):
        utility_config = self.pop_utility_config(data)
        return Deployment(utility_config=utility_config, **data)


class PresetSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    labels = fields.Dict(keys=fields.String(), values=fields.String())
    env = fields.List(fields.Dict())
    volumes = fields.List(fields.Dict())
    volume_mounts = fields.List(fields.Dict(), data_key="volumeMounts")

    @post_load
    def make_instance(self, data, **_):
        return Preset(**data)


def _jobs_by_repo(schema) -> fields.Dict:
    return fields.Dict(
        keys=fields.String(),
        values=fields.List(fields.Nested(schema)),
        load_default=dict,
    )


class JobConfigSchema(Schema):
    """The global job catalog."""

    class Meta:
        unknown = EXCLUDE

    presubmits = _jobs_by_repo(PresubmitSchema)
    postsubmits = _jobs_by_repo(PostsubmitSchema)
    deployments = _jobs_by_repo(DeploymentSchema)
    periodics = fields.List(fields.Nested(PeriodicSchema), load_default=list)
    presets = fields.List(fields.Nested(PresetSchema), load_default=list)

    @post_load
    def make_instance(self, data, **_):
        # required to avoid circular imports
        from lighthouse_service.jobs.config import JobConfig

        return JobConfig(**data)


class TriggerConfigSpecSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    presubmits = fields.List(fields.Nested(PresubmitSchema), load_default=list)
    postsubmits = fields.List(fields.Nested(PostsubmitSchema), load_default=list)
    periodics = fields.List(fields.Nested(PeriodicSchema), load_default=list)
    deployments = fields.List(fields.Nested(DeploymentSchema), load_default=list)


class TriggerConfigSchema(Schema):
    """`.lighthouse/**/triggers.yaml` stored in the repositories."""

    class Meta:
        unknown = EXCLUDE

    api_version = fields.String(data_key="apiVersion")
    kind = fields.String()
    spec = fields.Nested(TriggerConfigSpecSchema, load_default=dict)
