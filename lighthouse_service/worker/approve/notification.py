# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
The approval notification comment the bot keeps on pull requests.
"""

import json
import posixpath
import re
from urllib.parse import quote

from lighthouse_service.constants import COMMAND_PREFIX, DOCS_CHATOPS_URL, PR_PROCESS_URL
from lighthouse_service.scm.base import ProviderType, SCMClient
from lighthouse_service.worker.approve.approvers import Approvers

APPROVAL_NOTIFICATION_NAME = "ApprovalNotifier"
OWNERS_FILE_NAME = "OWNERS"

NOTIFICATION_RE = re.compile(
    rf"^\[{APPROVAL_NOTIFICATION_NAME}\] *?([^\n]*)(?:\n\n(.*))?",
    re.IGNORECASE | re.DOTALL,
)


def owners_file_path(directory: str) -> str:
    if directory.endswith(".md"):
        return directory
    return posixpath.join(directory, OWNERS_FILE_NAME)


def render_files(approvers: Approvers, scm: SCMClient, org: str, repo: str, branch: str) -> str:
    """Bullet per OWNERS file, the approved ones struck through."""
    files_approvers = approvers.get_files_approvers()
    lines = []
    for directory in sorted(approvers.owners.get_owners_set()):
        path = owners_file_path(directory)
        link = scm.file_link(org, repo, branch, path)
        if approved_by := files_approvers.get(directory):
            lines.append(f"- ~~[{path}]({link})~~ [{','.join(sorted(approved_by))}]\n")
        else:
            lines.append(f"- **[{path}]({link})**\n")
    return "".join(lines)


def _issue_section(approvers: Approvers, prefix: str) -> str:
    if not approvers.require_issue:
        return ""
    if approvers.associated_issue:
        return f"Associated issue: *#{approvers.associated_issue}*\n\n"
    if approvers.no_issue_approvers():
        bypassed_by = ", ".join(str(a) for a in approvers.list_no_issue_approvals())
        return f"Associated issue requirement bypassed by: {bypassed_by}\n\n"
    if approvers.manually_approved():
        return "*No associated issue*. Requirement bypassed by manually added approval.\n\n"
    return (
        "*No associated issue*. Update pull-request body to add a reference to an issue, "
        f"or get approval with `/{prefix}approve no-issue`\n\n"
    )


def notification(name: str, arguments: str, context: str) -> str:
    result = f"[{name.upper()}]"
    if arguments := arguments.strip():
        result += f" {arguments}"
    if context := context.strip():
        result += f"\n\n{context}"
    return result


def get_message(approvers: Approvers, scm: SCMClient, org: str, repo: str, branch: str) -> str:
    """
    Body of the notification:
        * who approved the pull request
        * whom to assign to get it approved
        * the associated issue requirement
        * the OWNERS files needing approval, with links
        * how to approve or cancel the approval
    """
    prefix = COMMAND_PREFIX if scm.provider_type == ProviderType.gitlab else ""
    manually_approved = approvers.manually_approved()
    files_approved = approvers.are_files_approved()
    ccs = approvers.get_ccs()

    message = ""
    if not approvers.requirements_met() and manually_approved:
        message += "Approval requirements bypassed by manually added approval.\n\n"

    message += "This pull-request has been approved by:"
    message += "".join(
        f"{', ' if index else ' '}{approval}"
        for index, approval in enumerate(approvers.list_approvals())
    )

    if not files_approved and not manually_approved:
        assign = " ".join(f"@{scm.quote_author_for_comment(cc)}" for cc in ccs)
        message += (
            f"\nTo complete the [pull request process]({PR_PROCESS_URL}), please assign "
            + ", ".join(f"**{cc}**" for cc in ccs)
            + f"\nYou can assign the PR to them by writing `/{prefix}assign {assign}` "
            "in a comment when ready."
        )

    message += "\n\n" + _issue_section(approvers, prefix)
    message += (
        "The full list of commands accepted by this bot can be found "
        f"[here]({DOCS_CHATOPS_URL}?repo={quote(f'{org}/{repo}', safe='')}).\n\n"
    )
    if files_approved or manually_approved:
        message += f"The pull request process is described [here]({PR_PROCESS_URL})\n\n"

    open_attr = "open" if not files_approved and not manually_approved else ""
    message += (
        f"<details {open_attr}>\n"
        "Needs approval from an approver in each of these files:\n\n"
        f"{render_files(approvers, scm, org, repo, branch)}\n"
        f"Approvers can indicate their approval by writing `/{prefix}approve` in a comment\n"
        f"Approvers can cancel approval by writing `/{prefix}approve cancel` in a comment\n"
        "</details>"
    )
    message += f"\n<!-- META={json.dumps({'approvers': ccs}, separators=(',', ':'))} -->"

    title = f"This PR is **{'' if approvers.is_approved() else 'NOT '}APPROVED**"
    return notification(APPROVAL_NOTIFICATION_NAME, title, message)
