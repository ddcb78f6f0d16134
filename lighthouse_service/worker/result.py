# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from typing import Any, Optional

from lighthouse_service.events.event import Event


class TaskResults(dict):
    """
    Job handler results.
    Inherit from dict to be JSON serializable.
    """

    def __init__(self, success: bool, details: Optional[dict[str, Any]] = None):
        """
        Args:
            success: Represents the resulting state of the job handler.
                `True`, if we processed the event; `False` an error occurred
                while processing it (usually an exception)
            details: More information provided by the handler. Optionally
                contains the `msg` key with message from the handler.
        """
        super().__init__(self, success=success, details=details or {})

    @classmethod
    def create_from(cls, success: bool, msg: str, event: Event, **extra):
        details = {"msg": msg, "event": event.get_dict()}
        details.update(extra)
        return cls(success=success, details=details)
