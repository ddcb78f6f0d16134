# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Replies of the bot to the comments of the users.
"""

from lighthouse_service.constants import DOCS_CHATOPS_URL

ABOUT_THIS_BOT = (
    "Instructions for interacting with me using PR comments are available "
    f"[here]({DOCS_CHATOPS_URL}). "
    "If you have questions or suggestions related to my behavior, please file an issue "
    "against the [jenkins-x/lighthouse](https://github.com/jenkins-x/lighthouse/issues/new) "
    "repository."
)


def quote(body: str) -> str:
    """Markdown quote of every line of the body."""
    return "\n".join(f"> {line}" for line in body.splitlines())


def format_response(body: str, link: str, author: str, response: str) -> str:
    """
    The response addressed to `author` (already quoted by the SCM client)
    with the original comment collapsed below it.
    """
    return (
        f"@{author}: {response}\n\n"
        "<details>\n\n"
        f"In response to [this]({link}):\n\n"
        f"{quote(body)}\n\n\n"
        f"{ABOUT_THIS_BOT}\n"
        "</details>"
    )
