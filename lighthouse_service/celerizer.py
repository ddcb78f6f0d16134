# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from os import getenv

from celery import Celery
from lazy_object_proxy import Proxy

from lighthouse_service.sentry_integration import configure_sentry


class Celerizer:
    def __init__(self):
        self._celery_app = None

    @property
    def celery_app(self):
        if self._celery_app is None:
            host = getenv("REDIS_SERVICE_HOST", "redis")
            password = getenv("REDIS_PASSWORD", "")
            port = getenv("REDIS_SERVICE_PORT", "6379")
            db = getenv("REDIS_SERVICE_DB", "0")
            backend_db = getenv("REDIS_CELERY_BACKEND", "1")
            broker_url = f"redis://:{password}@{host}:{port}/{db}"
            backend_url = f"redis://:{password}@{host}:{port}/{backend_db}"

            self._celery_app = Celery(
                "lighthouse_service",
                backend=backend_url,
                broker=broker_url,
            )
            self._celery_app.config_from_object("lighthouse_service.celery_config")

        return self._celery_app


def get_celery_application():
    app = Celerizer().celery_app
    configure_sentry(runner_type="lighthouse-worker", celery_integration=True)
    return app


celery_app: Celery = Proxy(get_celery_application)
