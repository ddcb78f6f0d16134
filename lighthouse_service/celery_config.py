# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT
from os import getenv

import lighthouse_service.constants

# https://docs.celeryq.dev/en/stable/userguide/configuration.html#std-setting-task_default_queue
task_default_queue = lighthouse_service.constants.CELERY_TASK_DEFAULT_QUEUE

# do not store task results by default
task_ignore_result = True

imports = ("lighthouse_service.worker.tasks",)

# https://docs.celeryq.dev/en/stable/userguide/periodic-tasks.html
beat_schedule = {
    "periodic-tick": {
        "task": "task.periodic.tick",
        "schedule": 60.0,
    },
    "periodic-resync": {
        "task": "task.periodic.resync",
        "schedule": float(
            getenv(
                "PERIODIC_RESYNC_INTERVAL",
                lighthouse_service.constants.DEFAULT_PERIODIC_RESYNC_INTERVAL,
            ),
        ),
    },
}

worker_send_task_events = True
task_send_sent_event = True

# https://docs.celeryq.dev/en/stable/userguide/configuration.html#std-setting-task_time_limit
task_time_limit = 900  # 15 min
