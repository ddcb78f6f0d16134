# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
We love you, Steve Jobs.
"""

import logging
from functools import cached_property
from typing import Optional

import celery

# the handlers register themselves by their decorators
import lighthouse_service.worker.handlers  # noqa: F401
from lighthouse_service.config import ServiceConfig
from lighthouse_service.events import comment
from lighthouse_service.events.event import Event, RepoEvent
from lighthouse_service.utils import nested_get
from lighthouse_service.worker.handlers.abstract import (
    MAP_COMMENT_TO_HANDLER,
    SUPPORTED_EVENTS_FOR_HANDLER,
    JobHandler,
    commands_for_handler,
    get_commands_from_comment,
)
from lighthouse_service.worker.monitoring import Pushgateway
from lighthouse_service.worker.parser import Parser
from lighthouse_service.worker.result import TaskResults

logger = logging.getLogger(__name__)


def get_handlers_for_comment(body: str) -> set[type[JobHandler]]:
    """
    Handlers of all the commands in the comment; a single comment
    may carry several commands (e.g. `/lgtm` and `/approve`).
    """
    handlers: set[type[JobHandler]] = set()
    for command in get_commands_from_comment(body):
        if command_handlers := MAP_COMMENT_TO_HANDLER.get(command):
            handlers |= command_handlers
        else:
            logger.debug(f"Command {command} not supported.")
    return handlers


class SteveJobs:
    """
    Steve makes sure all the jobs are done with precision.
    """

    pushgateway = Pushgateway()

    def __init__(self, event: Optional[RepoEvent] = None) -> None:
        self.event = event

    @cached_property
    def service_config(self) -> ServiceConfig:
        return ServiceConfig.get_service_config()

    @classmethod
    def process_message(
        cls,
        event: dict,
        source: Optional[str] = None,
        event_type: Optional[str] = None,
        event_guid: str = "",
    ) -> list[TaskResults]:
        """
        Entrypoint for message processing.

        For values of 'source' and 'event_type' see Parser.MAPPING.

        Args:
            event: Dict with the webhook payload.
            source: Source of the event, for example: "github".
            event_type: Type of the event (`X-GitHub-Event`, `X-Gitlab-Event`).
            event_guid: Delivery ID of the webhook, labels the launched jobs.

        Returns:
            List of results of the processing tasks.
        """
        parser = nested_get(
            Parser.MAPPING,
            source,
            event_type,
            default=Parser.parse_event,
        )
        event_object: Optional[Event] = parser(event)

        cls.pushgateway.events_processed.inc()
        pre_check_failed = False
        if event_not_handled := not event_object:
            cls.pushgateway.events_not_handled.inc()
        elif pre_check_failed := not event_object.pre_check():
            cls.pushgateway.events_pre_check_failed.inc()
        cls.pushgateway.push()

        if event_not_handled or pre_check_failed:
            return []

        if event_guid:
            event_object.event_guid = event_guid
        return cls(event_object).process()

    def process(self) -> list[TaskResults]:
        """
        Find the handlers interested in the event and create
        a Celery task for each of them.

        Returns:
            List of processing task results.
        """
        handlers = self.get_handlers_for_event()
        if not handlers:
            event_name = self.event.__class__.__name__
            logger.debug(f"No handler for {event_name} of {self.event.full_name}.")
            return []
        return self.create_tasks(handlers)

    def create_tasks(self, handlers: set[type[JobHandler]]) -> list[TaskResults]:
        processing_results: list[TaskResults] = []
        signatures = []
        # sorted to send the tasks in a stable order
        for handler_kls in sorted(handlers, key=lambda kls: kls.__name__):
            signatures.append(handler_kls.get_signature(event=self.event))
            logger.debug(f"Got signature for handler={handler_kls.__name__}.")
            processing_results.append(
                TaskResults.create_from(
                    success=True,
                    msg="Job created.",
                    event=self.event,
                    handler=handler_kls.__name__,
                ),
            )
        logger.debug("Signatures are going to be sent to Celery.")
        # https://docs.celeryq.dev/en/stable/userguide/canvas.html#groups
        celery.group(signatures).apply_async()
        logger.debug("Signatures were sent to Celery.")
        return processing_results

    def is_handler_matching_the_event(
        self,
        handler: type[JobHandler],
        allowed_handlers: Optional[set[type[JobHandler]]],
    ) -> bool:
        """
        The handler reacts to the kind of the event and, for comments,
        to one of the commands in it (handlers without any command
        react to every comment).
        """
        if not isinstance(self.event, tuple(SUPPORTED_EVENTS_FOR_HANDLER[handler])):
            return False
        if allowed_handlers is None or not commands_for_handler(handler):
            return True
        return handler in allowed_handlers

    def get_handlers_for_event(self) -> set[type[JobHandler]]:
        """
        Get all handlers that we need to run for the given event.

        We need to return all handler classes that:
        - can react to the given event **and**
        - are enabled for the repository and pass their pre-check.

        Returns:
            Set of handler classes that we need to run for the given event.
        """
        allowed_handlers = None
        if isinstance(self.event, comment.Comment):
            allowed_handlers = get_handlers_for_comment(self.event.body)

        matching_handlers: set[type[JobHandler]] = set()
        for handler in SUPPORTED_EVENTS_FOR_HANDLER:
            if not self.is_handler_matching_the_event(handler, allowed_handlers):
                continue
            if handler.pre_check(self.event, self.service_config):
                matching_handlers.add(handler)
            else:
                logger.debug(f"Pre-check of {handler.__name__} failed for {self.event.full_name}.")

        logger.debug(f"Matching handlers: {matching_handlers}")
        return matching_handlers
