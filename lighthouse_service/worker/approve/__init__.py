# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from lighthouse_service.worker.approve.approvers import Approval, Approvers
from lighthouse_service.worker.approve.notification import get_message
from lighthouse_service.worker.approve.owners import Owners

__all__ = [Approval.__name__, Approvers.__name__, Owners.__name__, get_message.__name__]
