# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from lighthouse_service.scm.base import (
    Change,
    CombinedStatus,
    Comment,
    IssueEvent,
    ProviderType,
    PullRequest,
    Review,
    ReviewState,
    SCMClient,
    Status,
    StatusState,
)

__all__ = [
    Change.__name__,
    CombinedStatus.__name__,
    Comment.__name__,
    IssueEvent.__name__,
    ProviderType.__name__,
    PullRequest.__name__,
    Review.__name__,
    ReviewState.__name__,
    SCMClient.__name__,
    Status.__name__,
    StatusState.__name__,
]
