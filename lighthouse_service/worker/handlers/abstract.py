# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
This file defines generic plugin handler
"""

import enum
import logging
import re
from collections import defaultdict
from datetime import datetime

from celery import signature
from celery.canvas import Signature

from lighthouse_service.config import ServiceConfig
from lighthouse_service.constants import COMMAND_PREFIX, Plugin
from lighthouse_service.events.event import Event, RepoEvent, event_from_dict
from lighthouse_service.sentry_integration import push_scope_to_sentry
from lighthouse_service.worker.mixin import ConfigFromEventMixin
from lighthouse_service.worker.monitoring import Pushgateway
from lighthouse_service.worker.result import TaskResults

logger = logging.getLogger(__name__)

SUPPORTED_EVENTS_FOR_HANDLER: dict[type["JobHandler"], set[type["Event"]]] = defaultdict(set)
MAP_COMMENT_TO_HANDLER: dict[str, set[type["JobHandler"]]] = defaultdict(set)

# `/cmd` or `/lh-cmd` at the beginning of a line
COMMAND_NAME_RE = re.compile(rf"(?m)^/(?:{COMMAND_PREFIX})?([\w-]+)")


def get_commands_from_comment(body: str) -> list[str]:
    """Lower-cased names of the commands in the comment, in order."""
    return [match.lower() for match in COMMAND_NAME_RE.findall(body or "")]


def reacts_to(event: type["Event"]):
    """
    [class decorator]
    Specify an event for which we want to use this handler.
    Matching is done via `isinstance` so you can use some abstract class as well.

    Multiple decorators are allowed.

    Example:
    ```
    @reacts_to(pr.Action)
    @reacts_to(comment.Comment)
    class ApproveHandler(JobHandler):
    ```
    """

    def _add_to_mapping(kls: type["JobHandler"]):
        SUPPORTED_EVENTS_FOR_HANDLER[kls].add(event)
        return kls

    return _add_to_mapping


def run_for_comment(command: str):
    """
    [class decorator]
    Specify a command for which we want to run a handler.
    e.g. for `/hold cancel` we need to add `hold`

    Handlers without any command react to every comment.
    Multiple decorators are allowed.

    Don't forget to specify valid comment events
    using @reacts_to decorator.
    """

    def _add_to_mapping(kls: type["JobHandler"]):
        MAP_COMMENT_TO_HANDLER[command].add(kls)
        return kls

    return _add_to_mapping


def commands_for_handler(kls: type["JobHandler"]) -> set[str]:
    return {command for command, handlers in MAP_COMMENT_TO_HANDLER.items() if kls in handlers}


class TaskName(str, enum.Enum):
    trigger_pull_request = "task.run_trigger_pull_request_handler"
    trigger_comment = "task.run_trigger_comment_handler"
    trigger_push = "task.run_trigger_push_handler"
    trigger_deployment = "task.run_trigger_deployment_handler"
    approve = "task.run_approve_handler"
    hold = "task.run_hold_handler"
    wip = "task.run_wip_handler"
    lgtm = "task.run_lgtm_handler"
    override = "task.run_override_handler"
    assign = "task.run_assign_handler"
    periodic_tick = "task.periodic.tick"
    periodic_resync = "task.periodic.resync"
    periodic_launch = "task.periodic.launch"


class Handler(ConfigFromEventMixin):
    event: RepoEvent

    def run(self) -> TaskResults:
        raise NotImplementedError("This should have been implemented.")

    def get_tag_info(self) -> dict:
        return {
            "handler": self.__class__.__name__,
            # repository info for easier filtering events that were grouped based on event type
            "repository": self.event.repo,
            "namespace": self.event.org,
            "provider": self.event.provider.value,
        }

    def run_n_clean(self) -> TaskResults:
        try:
            with push_scope_to_sentry() as scope:
                for k, v in self.get_tag_info().items():
                    scope.set_tag(k, v)
                return self.run()
        except Exception as ex:
            logger.info(f"Failed to run the handler: {ex}")
            raise
        finally:
            self.clean()

    def clean(self):
        """Forget the per-event clients, the caches are kept."""
        self._scm = None
        self._git_client = None


class JobHandler(Handler):
    """A plugin reacting to one kind of forge events."""

    task_name: TaskName
    plugin: Plugin

    def __init__(self, event: dict):
        self.event = event_from_dict(event)
        self.data = event
        self.pushgateway = Pushgateway()

    def __str__(self):
        return f"{self.__class__.__name__}({self.event})"

    @classmethod
    def handles(cls, event: RepoEvent) -> bool:
        """Cheap check on the payload whether the event is interesting at all."""
        return True

    @classmethod
    def pre_check(cls, event: RepoEvent, service_config: ServiceConfig) -> bool:
        """
        Returns
            bool: False if we have to skip the handler for the event.
        """
        if not service_config.is_plugin_enabled(cls.plugin.value, event.org, event.repo):
            logger.debug(f"Plugin {cls.plugin.value} is not enabled for {event.full_name}.")
            return False
        return cls.handles(event)

    def run_job(self):
        """
        Run the handler.
        :return: Dict [str, TaskResults]
        """
        logger.debug(f"Running handler {self!s}.")
        current_time = datetime.now().strftime("%Y-%m-%d-%H:%M:%S.%f")
        job_results: dict[str, TaskResults] = {
            f"{self.plugin.value}-{current_time}": self.run_n_clean(),
        }
        logger.debug("Job finished!")

        # push the metrics from job
        self.pushgateway.push()

        return job_results

    @classmethod
    def get_signature(cls, event: Event) -> Signature:
        """
        Get the signature of a Celery task which will run the handler.
        https://docs.celeryq.dev/en/stable/userguide/canvas.html#signatures
        :param event: event which triggered the task
        """
        logger.debug(f"Getting signature of a Celery task {cls.task_name}.")
        return signature(cls.task_name.value, kwargs={"event": event.get_dict()})

    def run(self) -> TaskResults:
        raise NotImplementedError("This should have been implemented.")
