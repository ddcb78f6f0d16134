# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Generic/abstract event classes.
"""

import copy
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from logging import getLogger
from typing import Any, Optional, Union

from lighthouse_service.scm.base import ProviderType

logger = getLogger(__name__)


class Event(ABC):
    actor: Optional[str]

    def __init__(self, created_at: Optional[Union[int, float, str]] = None):
        self.created_at: datetime
        if created_at:
            if isinstance(created_at, (int, float)):
                self.created_at = datetime.fromtimestamp(created_at, timezone.utc)
            elif isinstance(created_at, str):
                created_at = created_at.replace("Z", "+00:00")
                self.created_at = datetime.fromisoformat(created_at)
        else:
            self.created_at = datetime.now(timezone.utc)

    @classmethod
    @abstractmethod
    def event_type(cls) -> str:
        """
        `<module>.<class>` of the event, used to re-create the event
        from its dictionary in the Celery tasks.
        """
        ...

    @staticmethod
    def make_serializable(d: dict, skip: list) -> dict:
        """We need a JSON serializable dict (because of redis and celery tasks)
        This method will copy everything from dict except the specified
        non serializable keys.
        """
        return {k: copy.deepcopy(v) for k, v in d.items() if k not in skip}

    def get_non_serializable_attributes(self) -> list[str]:
        """Attributes which are skipped when serializing the event."""
        return []

    def get_dict(self, default_dict: Optional[dict] = None) -> dict:
        d = default_dict or self.__dict__
        # whole dict has to be JSON serializable because of redis
        d = self.make_serializable(d, self.get_non_serializable_attributes())
        d["event_type"] = self.__class__.event_type()
        d["created_at"] = int(d["created_at"].timestamp())
        return d

    def pre_check(self) -> bool:
        """
        Returns:
            `False` when we can ignore the event, `True` otherwise (for handling).
        """
        return True

    def __str__(self):
        return str(self.get_dict())

    def __repr__(self):
        return f"{self.__class__.__name__}({self.get_dict()})"


class RepoEvent(Event):
    """Event which happened in a repository of a forge."""

    def __init__(
        self,
        org: str,
        repo: str,
        provider: Union[ProviderType, str] = ProviderType.github,
        actor: Optional[str] = None,
        event_guid: str = "",
        repo_link: str = "",
        clone_url: str = "",
        created_at: Optional[Union[int, float, str]] = None,
    ):
        super().__init__(created_at)
        self.org = org
        self.repo = repo
        self.provider = ProviderType(provider)
        self.actor = actor
        # delivery ID of the webhook, labels the launched jobs
        self.event_guid = event_guid
        self.repo_link = repo_link
        self.clone_url = clone_url

    @property
    def full_name(self) -> str:
        return f"{self.org}/{self.repo}"

    def get_dict(self, default_dict: Optional[dict] = None) -> dict:
        result = super().get_dict(default_dict)
        result["provider"] = self.provider.value
        return result


def event_from_dict(event: dict[str, Any]) -> Event:
    """
    Re-create the event serialized by `Event.get_dict()`.
    """
    event_submodule, event_kls_member = event["event_type"].rsplit(".", maxsplit=1)
    mod = __import__(
        f"lighthouse_service.events.{event_submodule}",
        fromlist=[event_kls_member],
    )
    event_kls = getattr(mod, event_kls_member)

    kwargs = copy.copy(event)
    kwargs.pop("event_type", None)
    return event_kls(**kwargs)
