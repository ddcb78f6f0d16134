# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("lighthouse-service")
except PackageNotFoundError:
    # package is not installed
    __version__ = None
