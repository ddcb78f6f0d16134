# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from http import HTTPStatus
from logging import getLogger

from flask.json import jsonify
from flask_restx import Namespace, Resource

logger = getLogger("lighthouse_service")

ns = Namespace("healthz", description="Health checks")


@ns.route("")
class HealthCheck(Resource):
    @ns.response(HTTPStatus.OK.value, "Healthy")
    def get(self):
        """Health check"""
        resp = jsonify({"status": "We are healthy!"})
        resp.status_code = HTTPStatus.OK.value
        return resp

    @ns.response(HTTPStatus.OK.value, "Healthy")
    def head(self):
        """Health check (no body)"""
        # HEAD is identical to GET except that it MUST NOT return a message-body in the response
