from __future__ import annotations

import json
import logging
from datetime import datetime

from movemarket.extensions import db
from movemarket.models import JobRun

logger = logging.getLogger(__name__)


def record_job_run(
    *,
    job_name: str,
    ok: bool,
    started_at: datetime,
    summary: dict | None = None,
    error: str | None = None,
) -> JobRun | None:
    duration_ms = max(0, int((datetime.utcnow() - started_at).total_seconds() * 1000))
    try:
        row = JobRun(
            job_name=(job_name or "unknown").strip()[:64],
            ran_at=datetime.utcnow(),
            ok=bool(ok),
            duration_ms=duration_ms,
            summary_json=json.dumps(summary or {}, separators=(",", ":"), default=str),
            error=(error or "")[:1000] or None,
        )
        db.session.add(row)
        db.session.commit()
        return row
    except Exception:
        db.session.rollback()
        logger.exception("job_run_record_failed job=%s", job_name)
        return None
