# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import typing

from marshmallow import EXCLUDE, Schema, ValidationError, fields, post_load

from lighthouse_service.config import (
    ApproveConfig,
    Deployment,
    LgtmConfig,
    OwnersDirExcludes,
    ServiceConfig,
    TriggerConfig,
)


class DeploymentField(fields.Field):
    def _serialize(self, value: typing.Any, attr: str, obj: typing.Any, **kwargs):
        raise NotImplementedError

    def _deserialize(
        self,
        value: typing.Any,
        attr: typing.Optional[str],
        data: typing.Optional[typing.Mapping[str, typing.Any]],
        **kwargs,
    ) -> Deployment:
        if not isinstance(value, str):
            raise ValidationError("Invalid data provided. str required")

        try:
            return Deployment(value)
        except ValueError as ex:
            raise ValidationError(f"Unknown deployment: {value}") from ex


class TriggerConfigSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    repos = fields.List(fields.String(), load_default=list)
    trusted_org = fields.String(load_default="")
    trusted_apps = fields.List(fields.String(), load_default=list)
    join_org_url = fields.String(load_default="")
    only_org_members = fields.Bool(load_default=False)
    ignore_ok_to_test = fields.Bool(load_default=False)
    elide_skipped_contexts = fields.Bool(load_default=False)
    skip_draft_pr = fields.Bool(load_default=False)

    @post_load
    def make_instance(self, data, **_):
        return TriggerConfig(**data)


class ApproveConfigSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    repos = fields.List(fields.String(), load_default=list)
    issue_required = fields.Bool(load_default=False)
    require_self_approval = fields.Bool(load_default=None, allow_none=True)
    lgtm_acts_as_approve = fields.Bool(load_default=False)
    ignore_review_state = fields.Bool(load_default=None, allow_none=True)

    @post_load
    def make_instance(self, data, **_):
        return ApproveConfig(**data)


class LgtmConfigSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    repos = fields.List(fields.String(), load_default=list)
    review_acts_as_lgtm = fields.Bool(load_default=False)

    @post_load
    def make_instance(self, data, **_):
        return LgtmConfig(**data)


class OwnersDirExcludesSchema(Schema):
    repos = fields.Dict(
        keys=fields.String(),
        values=fields.List(fields.String()),
        load_default=dict,
    )
    default = fields.List(fields.String(), load_default=list)

    @post_load
    def make_instance(self, data, **_):
        return OwnersDirExcludes(**data)


class ServiceConfigSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    deployment = DeploymentField(required=True)
    webhook_secret = fields.String()
    gitlab_token_secret = fields.String()
    validate_webhooks = fields.Bool()
    bot_name = fields.String()
    authentication = fields.Dict()
    job_config_path = fields.String(allow_none=True)
    in_repo_config = fields.Bool()
    plugins = fields.Dict(keys=fields.String(), values=fields.List(fields.String()))
    triggers = fields.List(fields.Nested(TriggerConfigSchema))
    approve = fields.List(fields.Nested(ApproveConfigSchema))
    lgtm = fields.List(fields.Nested(LgtmConfigSchema))
    owners_dir_excludes = fields.Nested(OwnersDirExcludesSchema)
    enable_md_yaml = fields.Bool()
    skip_collaborators = fields.List(fields.String())
    launcher_namespace = fields.String()
    git_cache_dir = fields.String()
    periodic_resync_interval = fields.Integer()
    docker_registry = fields.String()
    admins = fields.List(fields.String())

    @post_load
    def make_instance(self, data, **kwargs):
        return ServiceConfig(**data)
