from __future__ import annotations

import logging
from datetime import datetime

from movemarket.errors import MarketplaceError
from movemarket.models import Order, OrderStatus
from movemarket.utils.job_runs import record_job_run

logger = logging.getLogger(__name__)

JOB_NAME = "rider_assignment_sweep"


def assign_pending_riders(services=None, *, limit: int = 200) -> dict:
    """Retry automatic matching for parcel orders parked for manual assignment."""
    if services is None:
        from movemarket.services import get_services

        services = get_services()

    started = datetime.utcnow()
    summary = {"scanned": 0, "assigned": 0, "unassigned": 0, "skipped": []}
    pending = (
        Order.query.filter(
            Order.status == OrderStatus.PENDING_RIDER_ASSIGNMENT,
            Order.rider_id.is_(None),
        )
        .order_by(Order.created_at.asc())
        .limit(max(1, int(limit)))
        .all()
    )
    order_ids = [o.id for o in pending]
    for order_id in order_ids:
        summary["scanned"] += 1
        try:
            rider = services.delivery.assign_rider_to_delivery(order_id)
        except MarketplaceError as e:
            summary["skipped"].append({"order_id": order_id, "code": e.code, "message": e.message})
            logger.info("rider_sweep_skip order_id=%s code=%s", order_id, e.code)
            continue
        if rider is None:
            summary["unassigned"] += 1
        else:
            summary["assigned"] += 1

    record_job_run(job_name=JOB_NAME, ok=True, started_at=started, summary=summary)
    logger.info(
        "rider_sweep_done scanned=%s assigned=%s unassigned=%s skipped=%s",
        summary["scanned"],
        summary["assigned"],
        summary["unassigned"],
        len(summary["skipped"]),
    )
    return {"ok": True, **summary}
