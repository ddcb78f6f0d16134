# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
import logging.handlers
from os import getenv
from socket import gaierror

from flask import Flask

# Mypy errors out with Module 'flask' has no attribute '__version__'.
# Python can find flask's version but mypy cannot.
# So we use "type: ignore" to cause mypy to ignore that line.
from flask import __version__ as flask_version  # type: ignore
from flask_cors import CORS
from flask_restx import __version__ as restx_version
from flask_talisman import Talisman
from lazy_object_proxy import Proxy
from prometheus_client import make_wsgi_app as prometheus_app
from syslog_rfc5424_formatter import RFC5424Formatter
from werkzeug.middleware.dispatcher import DispatcherMiddleware

from lighthouse_service import __version__ as ls_version
from lighthouse_service.config import ServiceConfig
from lighthouse_service.sentry_integration import configure_sentry
from lighthouse_service.service.api import blueprint
from lighthouse_service.utils import log_package_versions, set_logging

set_logging(logger_name="lighthouse_service", level=logging.DEBUG)


def get_flask_application():
    configure_sentry(
        runner_type="lighthouse-service",
        celery_integration=True,
        flask_integration=True,
    )
    app = Flask(__name__)
    app.register_blueprint(blueprint)
    service_config = ServiceConfig.get_service_config()
    # https://flask.palletsprojects.com/en/stable/config/#SERVER_NAME
    # also needs to contain port if it's not 443
    app.config["SERVER_NAME"] = service_config.server_name
    app.config["PREFERRED_URL_SCHEME"] = "https"
    if getenv("DEPLOYMENT") in ("dev", "stg"):
        app.config["DEBUG"] = True

    app.logger.setLevel(logging.DEBUG)
    logger = logging.getLogger("lighthouse_service")

    syslog_host = getenv("SYSLOG_HOST", "fluentd")
    syslog_port = int(getenv("SYSLOG_PORT", 5140))
    logger.info(f"Setup logging to syslog -> {syslog_host}:{syslog_port}")
    try:
        handler = logging.handlers.SysLogHandler(address=(syslog_host, syslog_port))
    except (ConnectionRefusedError, gaierror):
        logger.info(f"{syslog_host}:{syslog_port} not available")
    else:
        handler.setLevel(logging.DEBUG)
        project = getenv("PROJECT", "lighthouse")
        handler.setFormatter(RFC5424Formatter(msgid=project))
        logger.addHandler(handler)

    logger.info(
        f"server name = {service_config.server_name}, all HTTP requests need to use this URL!",
    )

    package_versions = [
        ("Flask", flask_version),
        ("Flask RestX", restx_version),
        ("Lighthouse Service", ls_version),
    ]
    log_package_versions(package_versions)

    logger.debug(f"URL map = {app.url_map}")
    return app


lighthouse_as_a_service = Proxy(get_flask_application)

CORS(lighthouse_as_a_service)

INLINE = [
    "'unsafe-inline'",
    "'self'",
]
Talisman(
    lighthouse_as_a_service,
    # https://github.com/wntrblm/flask-talisman#options
    content_security_policy={
        "default-src": "'self'",
        "object-src": "'none'",
        "img-src": ["'self'", "data:"],
        # https://github.com/python-restx/flask-restx/issues/252
        "style-src": INLINE,
        "script-src": INLINE,
    },
)

# Make Prometheus Client serve the /metrics endpoint
application = DispatcherMiddleware(lighthouse_as_a_service, {"/metrics": prometheus_app()})
