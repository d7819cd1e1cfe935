from __future__ import annotations

import json
import logging
from datetime import datetime

from celery import Celery
from celery.signals import task_failure, task_retry

from movemarket.services import get_services

logger = logging.getLogger("movemarket.celery")

TASK_MODULE = "movemarket.tasks.notification_tasks"

_observers_connected = False


def _trace_of(args, kwargs) -> str:
    trace_id = ""
    if isinstance(kwargs, dict):
        trace_id = str(kwargs.get("trace_id") or "").strip()
    if not trace_id and isinstance(args, (list, tuple)):
        trace_id = next((a.strip() for a in args if isinstance(a, str) and a.strip().startswith("trace_")), "")
    return trace_id


def _log_task_event(level: int, event: str, **fields) -> None:
    fields["event"] = event
    fields["timestamp"] = datetime.utcnow().isoformat()
    logger.log(level, json.dumps(fields, default=str))


def _connect_observers() -> None:
    global _observers_connected
    if _observers_connected:
        return

    @task_failure.connect(weak=False)
    def _task_failed(sender=None, task_id=None, exception=None, args=None, kwargs=None, einfo=None, **_):
        _log_task_event(
            logging.ERROR,
            "celery_task_failure",
            task_name=getattr(sender, "name", "") or "",
            task_id=str(task_id or ""),
            trace_id=_trace_of(args, kwargs),
            exception=str(exception or ""),
            einfo=str(einfo) if einfo is not None else None,
        )

    @task_retry.connect(weak=False)
    def _task_retried(request=None, reason=None, **_):
        _log_task_event(
            logging.WARNING,
            "celery_task_retry",
            task_name=str(getattr(request, "task", "") or ""),
            task_id=str(getattr(request, "id", "") or ""),
            trace_id=_trace_of(getattr(request, "args", None), getattr(request, "kwargs", None)),
            reason=str(reason or ""),
            retry_count=int(getattr(request, "retries", 0) or 0),
        )

    _observers_connected = True


def beat_schedule(settings) -> dict:
    return {
        "notification-dispatcher": {
            "task": f"{TASK_MODULE}.dispatch_notifications",
            "schedule": float(settings.notification_dispatch_interval_seconds),
        },
        "rider-assignment-sweep": {
            "task": f"{TASK_MODULE}.assign_pending_riders",
            "schedule": float(settings.rider_sweep_interval_seconds),
        },
    }


def create_celery_app(flask_app) -> Celery:
    """Bind a Celery app to ``flask_app`` so every task runs inside its app context."""
    with flask_app.app_context():
        settings = get_services().settings

    celery = Celery(
        flask_app.import_name,
        broker=settings.celery_broker_url,
        backend=settings.celery_result_backend,
        include=[TASK_MODULE],
    )
    celery.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        task_track_started=True,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        broker_connection_retry_on_startup=True,
        timezone="UTC",
        enable_utc=True,
        beat_schedule=beat_schedule(settings),
    )

    class AppContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with flask_app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = AppContextTask
    celery.set_default()
    _connect_observers()
    return celery
