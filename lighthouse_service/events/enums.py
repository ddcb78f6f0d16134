# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from enum import Enum


class PullRequestAction(Enum):
    opened = "opened"
    reopened = "reopened"
    synchronize = "synchronize"
    edited = "edited"
    labeled = "labeled"
    unlabeled = "unlabeled"
    ready_for_review = "ready_for_review"
    converted_to_draft = "converted_to_draft"
    closed = "closed"


class CommentAction(Enum):
    created = "created"
    edited = "edited"
    deleted = "deleted"


class ReviewAction(Enum):
    submitted = "submitted"
    edited = "edited"
    dismissed = "dismissed"
