"""Celery application for GDPR Guard background work.

Long-running folder scans and report generation run as Celery tasks so that
callers get a task id immediately and can poll progress.

The broker and result backend both use Redis (``settings.redis_url``).  All
tasks are routed to the ``gdprguard`` queue.

Starting a worker::

    celery -A gdprguard.celery_app worker --loglevel=info -Q gdprguard
"""

from celery import Celery

from gdprguard.config import get_settings

_settings = get_settings()

#: Shared Celery application instance.  Import this in task modules.
celery_app = Celery(
    "gdprguard",
    broker=_settings.redis_url,
    backend=_settings.redis_url,
    include=["gdprguard.workers.scan_worker"],
)

celery_app.conf.update(
    # Serialisation
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone="UTC",
    enable_utc=True,
    task_default_queue="gdprguard",
    # Report PROGRESS state while a folder scan runs
    task_track_started=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Keep results for 24 h
    result_expires=86400,
)
