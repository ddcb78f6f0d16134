# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT
