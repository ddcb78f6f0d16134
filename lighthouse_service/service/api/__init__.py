# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from flask import Blueprint
from flask_restx import Api

from lighthouse_service.service.api.healthz import ns as healthz_ns
from lighthouse_service.service.api.webhooks import ns as webhooks_ns

# https://flask-restx.readthedocs.io/en/latest/scaling.html
blueprint = Blueprint("api", __name__, url_prefix="/api")
api = Api(
    app=blueprint,
    version="1.0",
    title="Lighthouse Service API",
    description="ChatOps and CI orchestration for pull requests",
)

api.add_namespace(healthz_ns)
api.add_namespace(webhooks_ns)
