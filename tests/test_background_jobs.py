from __future__ import annotations

import json
import os
import tempfile
import unittest

from movemarket.celery_app import create_celery_app
from movemarket.extensions import db
from movemarket.models import JobRun, Notification, Order, OrderStatus, Pincode, Rider, RiderStatus
from movemarket.tasks.notification_tasks import _retry_countdown
from ops.reconcile_payments import reconcile
from tests.base import MarketplaceTestCase


class BackgroundJobsTestCase(MarketplaceTestCase):
    def test_celery_app_schedules_dispatcher(self):
        celery = create_celery_app(self.app)
        schedule = celery.conf.beat_schedule["notification-dispatcher"]
        self.assertEqual(schedule["task"], "movemarket.tasks.notification_tasks.dispatch_notifications")
        self.assertGreaterEqual(schedule["schedule"], 5.0)
        ours = sorted(name for name in celery.tasks if name.startswith("movemarket."))
        self.assertEqual(
            ours,
            [
                "movemarket.tasks.notification_tasks.assign_pending_riders",
                "movemarket.tasks.notification_tasks.dispatch_notifications",
            ],
        )
        sweep = celery.conf.beat_schedule["rider-assignment-sweep"]
        self.assertEqual(sweep["task"], "movemarket.tasks.notification_tasks.assign_pending_riders")

    def test_task_retry_countdown(self):
        self.assertEqual(_retry_countdown(0), 5)
        self.assertEqual(_retry_countdown(2), 20)
        self.assertEqual(_retry_countdown(20), 900)

    def test_dispatch_cli_prints_summary(self):
        self.services.notifications.enqueue(f"cli{self._suffix()}@example.com", "Hi", "Body", event_type="cli_test")
        db.session.commit()
        result = self.app.test_cli_runner().invoke(args=["dispatch-notifications", "--limit", "500"])
        self.assertEqual(result.exit_code, 0, result.output)
        summary = json.loads(result.stdout.strip().splitlines()[-1])
        self.assertTrue(summary["ok"])
        self.assertGreaterEqual(summary["sent"], 1)
        self.assertEqual(Notification.query.filter_by(event_type="cli_test", status="pending").count(), 0)

    def test_seed_pincodes_cli(self):
        code = f"7{self._suffix()[-5:]}"
        with tempfile.NamedTemporaryFile("w", suffix=".csv", delete=False, encoding="utf-8") as fh:
            fh.write("code,city,state,latitude,longitude\n")
            fh.write(f"{code},Chennai,TN,13.0827,80.2707\n")
            path = fh.name
        try:
            result = self.app.test_cli_runner().invoke(args=["seed-pincodes", path])
        finally:
            os.unlink(path)
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("added=1", result.stdout)
        pin = db.session.get(Pincode, code)
        self.assertEqual(pin.city, "Chennai")
        self.assertAlmostEqual(pin.latitude, 13.0827)

    def test_assign_pending_riders_cli_retries_parked_orders(self):
        Rider.query.update({Rider.status: RiderStatus.OFFLINE}, synchronize_session=False)
        db.session.commit()
        order = self.make_paid_parcel(pickup_lat=12.9716, pickup_lon=77.5946)
        order_id = order.id
        self.assertIsNone(self.services.delivery.assign_rider_to_delivery(order_id))
        rider_id = self.make_rider(12.98, 77.59).id

        result = self.app.test_cli_runner().invoke(args=["assign-pending-riders"])
        self.assertEqual(result.exit_code, 0, result.output)
        summary = json.loads(result.stdout.strip().splitlines()[-1])
        self.assertEqual((summary["scanned"], summary["assigned"]), (1, 1))
        self.assertEqual(db.session.get(Order, order_id).rider_id, rider_id)
        run = JobRun.query.filter_by(job_name="rider_assignment_sweep").order_by(JobRun.id.desc()).first()
        self.assertTrue(run.ok)

        jobs = self.client.get("/api/health").get_json()["jobs"]
        self.assertEqual(jobs["rider_assignment_sweep"]["summary"]["assigned"], 1)

    def test_reconcile_reports_status_drift(self):
        order = self.make_order()
        vendor = self.make_vendor()
        self.services.quotes.submit_quote(order.id, vendor.id, 900)
        self.pay(order, vendor)
        broken = self.make_order()
        self.services.orders.update(broken.id, status=OrderStatus.PAID)

        summary = reconcile()
        self.assertIn(broken.id, summary["paid_without_payment"])
        self.assertNotIn(order.id, summary["paid_without_payment"])
        self.assertFalse(summary["ok"])


if __name__ == "__main__":
    unittest.main()
