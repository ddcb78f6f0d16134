# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
Accept a message from commandline and process it directly - bypass the webhook service
"""

import json
import logging
import sys
from pathlib import Path

import click

from lighthouse_service.worker.jobs import SteveJobs

logger = logging.getLogger(__name__)


@click.command("process-message")
@click.argument("path", nargs=1, required=False)
@click.option("--source", help="Forge the payload comes from, e.g. github or gitlab.")
@click.option("--event-type", help="X-GitHub-Event or X-Gitlab-Event of the payload.")
@click.option("--event-guid", default="", help="Delivery ID labelling the launched jobs.")
def process_message(path, source, event_type, event_guid):
    """
    Accept a webhook payload from commandline and dispatch it to the handlers.

    Either provide a filename with the payload or pipe it:
      cat event.json | lighthouse-service process-message --source github
    """
    if path:
        logger.info(f"reading the message from file {path}")
        event = json.loads(Path(path).read_text())
    else:
        logger.info("reading the message from stdin")
        event = json.loads(sys.stdin.read())
    results = SteveJobs.process_message(
        event=event,
        source=source,
        event_type=event_type,
        event_guid=event_guid,
    )
    click.echo(f"{len(results)} handler tasks created.")
