# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
from contextlib import contextmanager
from os import getenv

import sentry_sdk
from sentry_sdk.integrations import Integration
from sentry_sdk.integrations.logging import LoggingIntegration

from lighthouse_service.utils import only_once

logger = logging.getLogger(__name__)


def traces_sampler(sampling_context: dict) -> float:
    """
    Compute sample rate or sampling decision for a transaction.
    https://docs.sentry.io/platforms/python/configuration/sampling

    Args:
        sampling_context: context data

    Returns: traces sample rate (between 0 and 1)
    """
    if rate := getenv("SENTRY_TRACES_SAMPLE_RATE"):
        return float(rate)
    return 0.1 if getenv("DEPLOYMENT") == "prod" else 0.25


@only_once
def configure_sentry(
    runner_type: str,
    celery_integration: bool = False,
    flask_integration: bool = False,
) -> None:
    logger.debug(
        f"Setup sentry for {runner_type}: "
        f"celery_integration={celery_integration}, "
        f"flask_integration={flask_integration}",
    )

    secret_key = getenv("SENTRY_SECRET")
    if not secret_key:
        return

    integrations: list[Integration] = []

    if celery_integration:
        # https://docs.sentry.io/platforms/python/integrations/celery/
        from sentry_sdk.integrations.celery import CeleryIntegration

        integrations.append(CeleryIntegration())

    if flask_integration:
        # https://docs.sentry.io/platforms/python/integrations/flask/
        from sentry_sdk.integrations.flask import FlaskIntegration

        integrations.append(FlaskIntegration())

    integrations.append(
        LoggingIntegration(
            level=logging.DEBUG,
            event_level=logging.ERROR,
        ),
    )

    sentry_sdk.init(
        secret_key,
        integrations=integrations,
        environment=getenv("DEPLOYMENT"),
        traces_sampler=traces_sampler,
        # crawlers sending requests with a wrong method
        ignore_errors=["MethodNotAllowed"],
    )
    sentry_sdk.set_tag("runner-type", runner_type)


def send_to_sentry(ex):
    sentry_sdk.capture_exception(ex)


@contextmanager
def push_scope_to_sentry():
    with sentry_sdk.new_scope() as scope:
        yield scope
