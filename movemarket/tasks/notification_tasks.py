from __future__ import annotations

import json
import time
from datetime import datetime

from celery import shared_task
from flask import current_app

from movemarket.services import get_services


def _task_log(task_name: str, *, status: str, started_at: float, trace_id: str = "", **extra):
    elapsed = max(0.0, time.perf_counter() - float(started_at))
    payload = {
        "task_name": task_name,
        "status": status,
        "duration_ms": int(elapsed * 1000.0),
        "trace_id": str(trace_id or ""),
        "timestamp": datetime.utcnow().isoformat(),
    }
    payload.update(extra)
    current_app.logger.info(json.dumps(payload, default=str))


def _retry_countdown(retries: int) -> int:
    return int(min(900, max(5, 5 * (2 ** int(max(0, retries))))))


def _can_retry(task) -> bool:
    return int(task.request.retries or 0) < int(task.max_retries or 0)


def _retry(task, task_name: str, exc: Exception, *, started_at: float, trace_id: str, **extra):
    countdown = _retry_countdown(int(task.request.retries or 0))
    _task_log(
        task_name,
        status="retrying",
        started_at=started_at,
        trace_id=trace_id,
        detail=str(exc),
        countdown=countdown,
        **extra,
    )
    return task.retry(exc=exc, countdown=countdown)


@shared_task(bind=True, name="movemarket.tasks.notification_tasks.dispatch_notifications", max_retries=3)
def dispatch_notifications_task(self, *, trace_id: str = "", limit: int | None = None):
    from movemarket.jobs.notification_dispatcher import dispatch_pending_notifications

    started = time.perf_counter()
    services = get_services()
    batch = int(limit or services.settings.notification_dispatch_limit)
    try:
        result = dispatch_pending_notifications(services, limit=batch)
    except Exception as exc:
        if _can_retry(self):
            raise _retry(self, "dispatch_notifications", exc, started_at=started, trace_id=trace_id)
        _task_log("dispatch_notifications", status="failed", started_at=started, trace_id=trace_id, detail=str(exc))
        raise
    _task_log(
        "dispatch_notifications",
        status="ok",
        started_at=started,
        trace_id=trace_id,
        limit=batch,
        sent=result["sent"],
        retrying=result["retrying"],
        failed=result["failed"],
    )
    return result


@shared_task(bind=True, name="movemarket.tasks.notification_tasks.assign_pending_riders", max_retries=2)
def assign_pending_riders_task(self, *, trace_id: str = ""):
    from movemarket.jobs.rider_assignment_sweep import assign_pending_riders

    started = time.perf_counter()
    try:
        result = assign_pending_riders(get_services())
    except Exception as exc:
        if _can_retry(self):
            raise _retry(self, "assign_pending_riders", exc, started_at=started, trace_id=trace_id)
        raise
    _task_log(
        "assign_pending_riders",
        status="ok",
        started_at=started,
        trace_id=trace_id,
        scanned=result["scanned"],
        assigned=result["assigned"],
    )
    return result
