# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging

import click

from lighthouse_service import __version__
from lighthouse_service.cli.process_message import process_message
from lighthouse_service.cli.validate_jobs import validate_jobs
from lighthouse_service.utils import set_logging


@click.group("lighthouse-service")
@click.version_option(version=__version__ or "dev", message="%(version)s")
@click.option("-d", "--debug", is_flag=True, help="Enable debug logs.")
def lighthouse_base(debug):
    set_logging(logger_name="lighthouse_service", level=logging.DEBUG if debug else logging.INFO)


lighthouse_base.add_command(process_message)
lighthouse_base.add_command(validate_jobs)

if __name__ == "__main__":
    lighthouse_base()
