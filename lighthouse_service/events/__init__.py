# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from . import comment, deployment, enums, pr, push, review
from .event import Event, RepoEvent, event_from_dict

__all__ = [
    Event.__name__,
    RepoEvent.__name__,
    comment.__name__,
    deployment.__name__,
    enums.__name__,
    event_from_dict.__name__,
    pr.__name__,
    push.__name__,
    review.__name__,
]
