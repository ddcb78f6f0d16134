# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import pytest

from lighthouse_service.exceptions import ConfigError
from lighthouse_service.owners.parser import (
    Section,
    norm_login,
    parse_aliases,
    parse_md_front_matter,
    parse_owners,
)
from lighthouse_service.owners.repo_owners import (
    RepoAliases,
    RepoOwners,
    load_aliases_file,
    load_repo_owners_from_dir,
)


def test_norm_login():
    assert norm_login(" @Alice ") == "alice"


def test_parse_owners_simple():
    owners = parse_owners(
        """
approvers:
  - Alice
reviewers:
  - bob
labels:
  - area/docs
options:
  no_parent_owners: true
""",
    )
    assert owners.filters == {
        None: Section(approvers=["Alice"], reviewers=["bob"], labels=["area/docs"]),
    }
    assert owners.options.no_parent_owners


def test_parse_owners_filters():
    owners = parse_owners(
        """
filters:
  ".*":
    approvers: [alice]
  "\\\\.go$":
    approvers: [gopher]
    minimum_reviewers: 2
""",
    )
    assert owners.filters[None].approvers == ["alice"]
    assert owners.filters["\\.go$"] == Section(approvers=["gopher"], minimum_reviewers=2)
    assert not owners.options.no_parent_owners


def test_parse_owners_simple_format_wins():
    owners = parse_owners(
        """
approvers: [alice]
filters:
  "\\\\.go$":
    approvers: [gopher]
""",
    )
    assert list(owners.filters) == [None]


@pytest.mark.parametrize(
    "content",
    [
        pytest.param("approvers: [alice", id="yaml"),
        pytest.param("approvers: 42", id="schema"),
    ],
)
def test_parse_owners_invalid(content):
    with pytest.raises(ConfigError):
        parse_owners(content)


def test_parse_md_front_matter():
    content = "---\napprovers:\n  - alice\n---\n# Docs\n"
    assert parse_md_front_matter(content, "docs/README.md").filters[None].approvers == ["alice"]
    assert parse_md_front_matter("# no front matter\n", "README.md") is None


def test_parse_aliases():
    aliases, foreign = parse_aliases(
        """
aliases:
  Sig-Docs:
    - Alice
    - "@bob"
foreignAliases:
  - name: sig-infra
    org: other
""",
    )
    assert aliases == {"sig-docs": {"alice", "bob"}}
    assert foreign == [{"name": "sig-infra", "org": "other"}]


def test_repo_aliases_expand():
    aliases = RepoAliases({"sig-docs": {"alice", "bob"}})
    assert aliases.expand_aliases(["SIG-docs", "carol"]) == {"alice", "bob", "carol"}


@pytest.fixture()
def repo_owners() -> RepoOwners:
    """
    /            approvers: root, reviewers: root-reviewer
    docs/        approvers: writers (alias), labels: area/docs
    docs/api/    approvers: api
    vendor/      approvers: vendorer, no_parent_owners
    pkg/         .go files need gopher, minimum 2 reviewers
    """
    owners = RepoOwners(aliases=RepoAliases({"writers": {"alice", "bob"}}))
    owners.apply_owners_file(
        "",
        parse_owners("approvers: [root]\nreviewers: [root-reviewer]"),
    )
    owners.apply_owners_file("docs", parse_owners("approvers: [writers]\nlabels: [area/docs]"))
    owners.apply_owners_file("docs/api", parse_owners("approvers: [api]"))
    owners.apply_owners_file(
        "vendor",
        parse_owners("approvers: [vendorer]\noptions:\n  no_parent_owners: true"),
    )
    owners.apply_owners_file(
        "pkg",
        parse_owners(
            'filters:\n  "\\\\.go$":\n    approvers: [gopher]\n    minimum_reviewers: 2',
        ),
    )
    return owners


def test_approvers_union_to_root(repo_owners):
    assert repo_owners.approvers("docs/api/index.md") == {"api", "alice", "bob", "root"}
    assert repo_owners.leaf_approvers("docs/api/index.md") == {"api"}
    assert repo_owners.approvers("README.md") == {"root"}


def test_no_parent_owners(repo_owners):
    assert repo_owners.is_no_parent_owners("vendor")
    assert repo_owners.approvers("vendor/lib/a.c") == {"vendorer"}


def test_filters(repo_owners):
    assert repo_owners.approvers("pkg/main.go") == {"gopher", "root"}
    assert repo_owners.approvers("pkg/README.md") == {"root"}
    assert repo_owners.minimum_reviewers_for_file("pkg/main.go") == 2
    assert repo_owners.minimum_reviewers_for_file("pkg/README.md") == 1


def test_find_approver_owners_for_file(repo_owners):
    assert repo_owners.find_approver_owners_for_file("docs/api/index.md") == "docs/api"
    assert repo_owners.find_approver_owners_for_file("docs/guide.md") == "docs"
    assert repo_owners.find_approver_owners_for_file("src/main.c") == ""


def test_labels_and_reviewers(repo_owners):
    assert repo_owners.find_labels_for_file("docs/api/index.md") == {"area/docs"}
    assert repo_owners.reviewers("docs/guide.md") == {"root-reviewer"}


def test_collaborators_limit_approvers():
    owners = RepoOwners()
    owners.apply_owners_file(
        "",
        parse_owners("approvers: [alice, mallory]\nrequired_reviewers: [mallory]"),
        collaborators={"alice"},
    )
    assert owners.approvers("a.txt") == {"alice"}
    # required reviewers are never filtered
    assert owners.required_reviewers("a.txt") == {"mallory"}


def test_invalid_filter_regex():
    with pytest.raises(ConfigError):
        RepoOwners().apply_owners_file("", parse_owners('filters:\n  "[":\n    approvers: [a]'))


def test_load_repo_owners_from_dir(tmp_path):
    (tmp_path / "OWNERS").write_text("approvers: [root]\n")
    (tmp_path / "OWNERS_ALIASES").write_text("aliases:\n  docs: [alice]\n")
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "OWNERS").write_text("approvers: [docs]\n")
    (tmp_path / "docs" / "guide.md").write_text("---\napprovers: [carol]\n---\n# Guide\n")
    (tmp_path / "third_party").mkdir()
    (tmp_path / "third_party" / "OWNERS").write_text("approvers: [ignored]\n")
    (tmp_path / "broken").mkdir()
    (tmp_path / "broken" / "OWNERS").write_text("approvers: [oops\n")

    aliases, foreign = load_aliases_file(str(tmp_path))
    assert foreign == []
    owners = load_repo_owners_from_dir(
        str(tmp_path),
        aliases=aliases,
        dir_excludes=["^third_party$"],
        enable_md_yaml=True,
    )

    assert owners.approvers("docs/OWNERS") == {"alice", "root"}
    assert owners.approvers("docs/guide.md") == {"carol", "alice", "root"}
    assert owners.approvers("third_party/x.c") == {"root"}
    assert owners.approvers("broken/x.c") == {"root"}


def test_load_aliases_file_missing(tmp_path):
    assert load_aliases_file(str(tmp_path)) == (None, [])
