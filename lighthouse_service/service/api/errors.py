# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from lighthouse_service.exceptions import LighthouseException


class ValidationFailed(LighthouseException):
    """Signature or token of the webhook is not valid."""
