# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

import logging
import os

from prometheus_client import CollectorRegistry, Counter, push_to_gateway

logger = logging.getLogger(__name__)


class Pushgateway:
    def __init__(self):
        self.pushgateway_address = os.getenv(
            "PUSHGATEWAY_ADDRESS",
            "http://pushgateway",
        )
        # so that workers don't overwrite each other's metrics,
        # the job name corresponds to worker name (e.g. lighthouse-worker-0)
        self.worker_name = os.getenv("HOSTNAME")
        self.registry = CollectorRegistry()

        self.events_processed = Counter(
            "events_processed",
            "The number of events processed from the Celery queue",
            registry=self.registry,
        )

        self.events_not_handled = Counter(
            "events_not_handled",
            "The number of events resulting in a Celery task, but then dropped during processing",
            registry=self.registry,
        )

        self.events_pre_check_failed = Counter(
            "events_pre_check_failed",
            "The number of events for which pre_check() failed",
            registry=self.registry,
        )

        self.jobs_launched = Counter(
            "jobs_launched",
            "Number of LighthouseJobs handed to the launcher",
            ["job_type"],
            registry=self.registry,
        )

        self.jobs_skipped = Counter(
            "jobs_skipped",
            "Number of presubmits reported as skipped",
            registry=self.registry,
        )

        self.jobs_failed = Counter(
            "jobs_failed",
            "Number of LighthouseJobs the launcher failed to create",
            ["job_type"],
            registry=self.registry,
        )

        self.periodic_jobs_created = Counter(
            "periodic_jobs_created",
            "Number of periodic LighthouseJobs created by the scheduler",
            registry=self.registry,
        )

        self.approval_notifications = Counter(
            "approval_notifications",
            "Number of approval notifications (re)created",
            registry=self.registry,
        )

    def push(self):
        if not (self.pushgateway_address and self.worker_name):
            logger.debug("Pushgateway address or worker name not defined.")
            return

        logger.info("Pushing the metrics to pushgateway.")
        push_to_gateway(
            self.pushgateway_address,
            job=self.worker_name,
            registry=self.registry,
        )
