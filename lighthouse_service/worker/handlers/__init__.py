# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

# If you have some problems with the imports between files in this directory,
# try using absolute import.
# Example:
# from lighthouse_service.worker.handlers.trigger import something
# instead of
# from lighthouse_service.worker.handlers import something


from lighthouse_service.worker.handlers.abstract import (
    Handler,
    JobHandler,
)
from lighthouse_service.worker.handlers.approve import ApproveHandler
from lighthouse_service.worker.handlers.assign import AssignHandler
from lighthouse_service.worker.handlers.labels import HoldHandler, WipHandler
from lighthouse_service.worker.handlers.lgtm import LgtmHandler
from lighthouse_service.worker.handlers.override import OverrideHandler
from lighthouse_service.worker.handlers.trigger import (
    TriggerCommentHandler,
    TriggerDeploymentHandler,
    TriggerPullRequestHandler,
    TriggerPushHandler,
)

__all__ = [
    Handler.__name__,
    JobHandler.__name__,
    ApproveHandler.__name__,
    AssignHandler.__name__,
    HoldHandler.__name__,
    WipHandler.__name__,
    LgtmHandler.__name__,
    OverrideHandler.__name__,
    TriggerCommentHandler.__name__,
    TriggerDeploymentHandler.__name__,
    TriggerPullRequestHandler.__name__,
    TriggerPushHandler.__name__,
]
