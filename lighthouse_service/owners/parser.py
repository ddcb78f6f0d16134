# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import re
from dataclasses import dataclass, field
from typing import Optional

from marshmallow import EXCLUDE, Schema, ValidationError, fields, post_load
from yaml import YAMLError, safe_load

from lighthouse_service.exceptions import ConfigError

MD_FRONT_MATTER_RE = re.compile(r"(?s)^---\r?\n(.*?)\r?\n---")

# the catch-all filter pattern is stored as the base section
FILTER_MATCH_ALL = ".*"


def norm_login(login: str) -> str:
    """`@Alice ` -> `alice`"""
    return login.strip().lower().removeprefix("@")


@dataclass
class Section:
    approvers: list[str] = field(default_factory=list)
    reviewers: list[str] = field(default_factory=list)
    required_reviewers: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    minimum_reviewers: int = 0

    def is_empty(self) -> bool:
        return not (
            self.approvers or self.reviewers or self.required_reviewers or self.labels
        ) and not self.minimum_reviewers


@dataclass
class DirOptions:
    no_parent_owners: bool = False


@dataclass
class OwnersFile:
    """
    Content of a single OWNERS file (or markdown front matter).

    `filters` is keyed by the regex the section applies to, `None`
    stands for the section applying to every file.
    """

    filters: dict[Optional[str], Section] = field(default_factory=dict)
    options: DirOptions = field(default_factory=DirOptions)


class SectionSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    approvers = fields.List(fields.String(), load_default=list)
    reviewers = fields.List(fields.String(), load_default=list)
    required_reviewers = fields.List(fields.String(), load_default=list)
    labels = fields.List(fields.String(), load_default=list)
    minimum_reviewers = fields.Integer(load_default=0)

    @post_load
    def make_instance(self, data, **_):
        return Section(**data)


class DirOptionsSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    no_parent_owners = fields.Bool(load_default=False)

    @post_load
    def make_instance(self, data, **_):
        return DirOptions(**data)


class OwnersFileSchema(SectionSchema):
    options = fields.Nested(DirOptionsSchema, load_default=DirOptions)
    filters = fields.Dict(
        keys=fields.String(),
        values=fields.Nested(SectionSchema),
        load_default=dict,
    )

    @post_load
    def make_instance(self, data, **_):
        options = data.pop("options")
        filters = data.pop("filters")
        base = Section(**data)
        if not base.is_empty():
            # the simple format wins, filters are ignored then
            return OwnersFile(filters={None: base}, options=options)
        return OwnersFile(
            filters={
                (None if pattern == FILTER_MATCH_ALL else pattern): section
                for pattern, section in filters.items()
            },
            options=options,
        )


class AliasesFileSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    aliases = fields.Dict(
        keys=fields.String(),
        values=fields.List(fields.String()),
        load_default=dict,
        allow_none=True,
    )
    foreign_aliases = fields.List(
        fields.Dict(keys=fields.String(), values=fields.String()),
        data_key="foreignAliases",
        load_default=list,
        allow_none=True,
    )


def _load_yaml(content: str, what: str):
    try:
        return safe_load(content) or {}
    except YAMLError as ex:
        raise ConfigError(f"Cannot parse {what}: {ex}") from ex


def parse_owners(content: str, what: str = "OWNERS") -> OwnersFile:
    raw = _load_yaml(content, what)
    try:
        return OwnersFileSchema().load(raw)
    except ValidationError as ex:
        raise ConfigError(f"Invalid {what}: {ex.messages}") from ex


def parse_md_front_matter(content: str, what: str) -> Optional[OwnersFile]:
    """OWNERS stored as the YAML front matter of a markdown file, if any."""
    match = MD_FRONT_MATTER_RE.match(content)
    if not match:
        return None
    return parse_owners(match.group(1), what)


def parse_aliases(content: str) -> tuple[dict[str, set[str]], list[dict[str, str]]]:
    """
    Returns:
        aliases (lower-cased name -> lower-cased logins) and the list of
        foreign aliases to resolve (`name`, optional `org` and `ref`)
    """
    raw = _load_yaml(content, "OWNERS_ALIASES")
    try:
        data = AliasesFileSchema().load(raw)
    except ValidationError as ex:
        raise ConfigError(f"Invalid OWNERS_ALIASES: {ex.messages}") from ex

    aliases: dict[str, set[str]] = {}
    for name, members in (data["aliases"] or {}).items():
        aliases.setdefault(name.strip().lower(), set()).update(
            norm_login(member) for member in members or []
        )
    return aliases, data["foreign_aliases"] or []
