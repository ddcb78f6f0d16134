# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
import logging.handlers
import socket
from datetime import datetime
from os import getenv
from typing import ClassVar, Optional

from celery import Task, signature
from celery._state import get_current_task
from celery.signals import after_setup_logger
from kubernetes import __version__ as kubernetes_version
from ogr import __version__ as ogr_version
from syslog_rfc5424_formatter import RFC5424Formatter

from lighthouse_service import __version__ as ls_version
from lighthouse_service.celerizer import celery_app
from lighthouse_service.config import ServiceConfig
from lighthouse_service.constants import (
    CELERY_DEFAULT_MAIN_TASK_NAME,
    DEFAULT_RETRY_BACKOFF,
    DEFAULT_RETRY_LIMIT,
)
from lighthouse_service.exceptions import TransientSCMError
from lighthouse_service.launcher import KubernetesLauncher
from lighthouse_service.utils import log_package_versions, utc_now
from lighthouse_service.worker.handlers import (
    ApproveHandler,
    AssignHandler,
    HoldHandler,
    LgtmHandler,
    OverrideHandler,
    TriggerCommentHandler,
    TriggerDeploymentHandler,
    TriggerPullRequestHandler,
    TriggerPushHandler,
    WipHandler,
)
from lighthouse_service.worker.handlers.abstract import TaskName
from lighthouse_service.worker.jobs import SteveJobs
from lighthouse_service.worker.monitoring import Pushgateway
from lighthouse_service.worker.periodics import PeriodicScheduler, launch_periodic
from lighthouse_service.worker.result import TaskResults

logger = logging.getLogger(__name__)


@after_setup_logger.connect
def setup_loggers(logger, *args, **kwargs):
    # debug logs of these are super-duper verbose
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("github").setLevel(logging.WARNING)
    logging.getLogger("gitlab").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    # info is just enough
    logging.getLogger("ogr").setLevel(logging.INFO)
    # easier debugging
    logging.getLogger("lighthouse_service").setLevel(logging.DEBUG)

    class CustomFormatter(logging.Formatter):
        def format(self, record):
            task = get_current_task()
            if task and task.request:
                record.__dict__["task_info"] = f" {task.name}[{task.request.id}]"
            else:
                record.__dict__["task_info"] = ""
            return super().format(record)

    # add task name and id to log messages from tasks
    logger.handlers[0].setFormatter(
        CustomFormatter(
            "[%(asctime)s: %(levelname)s/%(processName)s]%(task_info)s %(message)s",
        ),
    )

    syslog_host = getenv("SYSLOG_HOST", "fluentd")
    syslog_port = int(getenv("SYSLOG_PORT", 5140))
    logger.info(f"Setup logging to syslog -> {syslog_host}:{syslog_port}")
    try:
        handler = logging.handlers.SysLogHandler(address=(syslog_host, syslog_port))
    except (ConnectionRefusedError, socket.gaierror):
        logger.info(f"{syslog_host}:{syslog_port} not available")
    else:
        handler.setLevel(logging.DEBUG)
        project = getenv("PROJECT", "lighthouse")
        handler.setFormatter(RFC5424Formatter(msgid=project))
        logger.addHandler(handler)

    package_versions = [
        ("OGR", ogr_version),
        ("Kubernetes client", kubernetes_version),
        ("Lighthouse Service", ls_version),
    ]
    log_package_versions(package_versions)


class TaskWithRetry(Task):
    # permanent errors (4xx, invalid config) won't get better by retrying
    autoretry_for = (TransientSCMError,)
    max_retries = int(getenv("CELERY_RETRY_LIMIT", DEFAULT_RETRY_LIMIT))
    retry_kwargs: ClassVar[dict] = {"max_retries": max_retries}
    retry_backoff = int(getenv("CELERY_RETRY_BACKOFF", DEFAULT_RETRY_BACKOFF))
    # https://docs.celeryq.dev/en/stable/userguide/tasks.html#Task.acks_late
    # retry if worker gets obliterated during execution
    acks_late = True


@celery_app.task(
    name=getenv("CELERY_MAIN_TASK_NAME") or CELERY_DEFAULT_MAIN_TASK_NAME,
    bind=True,
    # set a lower time limit for process message as for other tasks
    # https://docs.celeryq.dev/en/stable/reference/celery.app.task.html#celery.app.task.Task.time_limit
    time_limit=300,
    base=TaskWithRetry,
)
def process_message(
    self,
    event: dict,
    source: Optional[str] = None,
    event_type: Optional[str] = None,
    event_guid: str = "",
) -> list[TaskResults]:
    """
    Main celery task for processing messages.

    For values of 'source' and 'event_type' see Parser.MAPPING.

    Args:
        event: event data
        source: Source of the event, for example: "github"
        event_type: Type of the event, for example: "pull_request"
        event_guid: delivery ID of the webhook

    Returns:
        task results
    """
    return SteveJobs.process_message(
        event=event,
        source=source,
        event_type=event_type,
        event_guid=event_guid,
    )


def get_handlers_task_results(results: dict, event: dict) -> dict:
    # include original event to provide more info
    return {"job": results, "event": event}


# tasks for running the handlers
@celery_app.task(name=TaskName.trigger_pull_request, base=TaskWithRetry)
def run_trigger_pull_request_handler(event: dict):
    handler = TriggerPullRequestHandler(event=event)
    return get_handlers_task_results(handler.run_job(), event)


@celery_app.task(name=TaskName.trigger_comment, base=TaskWithRetry)
def run_trigger_comment_handler(event: dict):
    handler = TriggerCommentHandler(event=event)
    return get_handlers_task_results(handler.run_job(), event)


@celery_app.task(name=TaskName.trigger_push, base=TaskWithRetry)
def run_trigger_push_handler(event: dict):
    handler = TriggerPushHandler(event=event)
    return get_handlers_task_results(handler.run_job(), event)


@celery_app.task(name=TaskName.trigger_deployment, base=TaskWithRetry)
def run_trigger_deployment_handler(event: dict):
    handler = TriggerDeploymentHandler(event=event)
    return get_handlers_task_results(handler.run_job(), event)


@celery_app.task(name=TaskName.approve, base=TaskWithRetry)
def run_approve_handler(event: dict):
    handler = ApproveHandler(event=event)
    return get_handlers_task_results(handler.run_job(), event)


@celery_app.task(name=TaskName.hold, base=TaskWithRetry)
def run_hold_handler(event: dict):
    handler = HoldHandler(event=event)
    return get_handlers_task_results(handler.run_job(), event)


@celery_app.task(name=TaskName.wip, base=TaskWithRetry)
def run_wip_handler(event: dict):
    handler = WipHandler(event=event)
    return get_handlers_task_results(handler.run_job(), event)


@celery_app.task(name=TaskName.lgtm, base=TaskWithRetry)
def run_lgtm_handler(event: dict):
    handler = LgtmHandler(event=event)
    return get_handlers_task_results(handler.run_job(), event)


@celery_app.task(name=TaskName.override, base=TaskWithRetry)
def run_override_handler(event: dict):
    handler = OverrideHandler(event=event)
    return get_handlers_task_results(handler.run_job(), event)


@celery_app.task(name=TaskName.assign, base=TaskWithRetry)
def run_assign_handler(event: dict):
    handler = AssignHandler(event=event)
    return get_handlers_task_results(handler.run_job(), event)


# Periodic tasks


@celery_app.task(name=TaskName.periodic_tick)
def periodic_tick() -> list[str]:
    """Spawn a launch task for every periodic with a tick in the last minute."""
    scheduler = PeriodicScheduler.get_instance()
    if not scheduler.registrations:
        scheduler.load()

    now = utc_now()
    launched = []
    for registration in scheduler.due(now):
        signature(
            TaskName.periodic_launch.value,
            kwargs={
                "name": registration.periodic.name,
                "org": registration.org,
                "repo": registration.repo,
                "now": now.isoformat(),
            },
        ).apply_async()
        launched.append(registration.key)
    if launched:
        logger.info(f"Launching periodics {launched}.")
    return launched


@celery_app.task(name=TaskName.periodic_resync)
def periodic_resync() -> int:
    """Reload the periodics from the catalog and the repositories."""
    scheduler = PeriodicScheduler.get_instance()
    scheduler.load()
    return len(scheduler.registrations)


@celery_app.task(name=TaskName.periodic_launch, base=TaskWithRetry)
def periodic_launch(name: str, now: str, org: str = "", repo: str = "") -> Optional[str]:
    scheduler = PeriodicScheduler.get_instance()
    registration = scheduler.get(name, org, repo)
    if not registration:
        # the tick may have been spawned by a worker which knows more periodics
        scheduler.load()
        registration = scheduler.get(name, org, repo)
    if not registration:
        logger.warning(f"Periodic {name} is not scheduled anymore.")
        return None

    pushgateway = Pushgateway()
    job = launch_periodic(
        registration.periodic,
        KubernetesLauncher(namespace=ServiceConfig.get_service_config().launcher_namespace),
        now=datetime.fromisoformat(now),
        refs=scheduler.refs_of(registration),
        pushgateway=pushgateway,
    )
    pushgateway.push()
    return job.name if job else None
