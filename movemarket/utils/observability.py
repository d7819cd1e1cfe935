from __future__ import annotations

import hashlib
import json
import logging
import os
import time
import uuid
from datetime import datetime

from flask import g, has_app_context, request

access_logger = logging.getLogger("movemarket.access")

REDACTED = "[REDACTED]"
SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "set-cookie", "x-razorpay-signature"})
# Payment proofs and customer contact details never reach the error tracker.
SENSITIVE_FIELDS = frozenset(
    {"razorpay_signature", "signature", "customer_email", "user_email", "phone", "whatsapp_number"}
)


def get_request_id() -> str:
    if not has_app_context():
        return ""
    return getattr(g, "request_id", "") or ""


def _ip_fingerprint(ip: str, salt: str) -> str:
    return hashlib.sha256(f"{salt}:{ip or ''}".encode("utf-8")).hexdigest()[:16]


def _sample_rate() -> float:
    try:
        rate = float((os.getenv("SENTRY_TRACES_SAMPLE_RATE") or "0").strip())
    except ValueError:
        rate = 0.0
    return max(0.0, min(rate, 1.0))


def init_sentry(app) -> None:
    dsn = (os.getenv("SENTRY_DSN") or "").strip()
    if not dsn:
        app.logger.info("sentry_disabled_no_dsn")
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.celery import CeleryIntegration
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=dsn,
            environment=os.getenv("SENTRY_ENVIRONMENT") or os.getenv("MOVEMARKET_ENV") or "dev",
            release=os.getenv("GIT_SHA") or "unknown",
            integrations=[FlaskIntegration(), CeleryIntegration()],
            send_default_pii=False,
            traces_sample_rate=_sample_rate(),
            before_send=_before_send_scrub,
        )
    except Exception as e:
        app.logger.warning("sentry_init_failed err=%s", e)
        return
    app.logger.info("sentry_enabled")


def _before_send_scrub(event, hint):
    req = event.setdefault("request", {})
    headers = req.get("headers") or {}
    req["headers"] = {k: (REDACTED if k.lower() in SENSITIVE_HEADERS else v) for k, v in headers.items()}
    data = req.get("data")
    if isinstance(data, dict):
        req["data"] = {k: (REDACTED if k in SENSITIVE_FIELDS else v) for k, v in data.items()}
    return event


def install_request_observers(app) -> None:
    salt = app.config.get("SECRET_KEY") or "movemarket"

    @app.before_request
    def _start_request_clock():
        g.request_id = (request.headers.get("X-Request-Id") or "").strip() or uuid.uuid4().hex
        g.request_started_at = time.perf_counter()

    @app.after_request
    def _write_access_log(response):
        rid = getattr(g, "request_id", "") or uuid.uuid4().hex
        response.headers["X-Request-Id"] = rid
        started = getattr(g, "request_started_at", None)
        view_args = request.view_args or {}
        access_logger.info(
            json.dumps(
                {
                    "ts": datetime.utcnow().isoformat(),
                    "request_id": rid,
                    "method": request.method,
                    "path": request.path,
                    "endpoint": request.endpoint,
                    "order_id": view_args.get("order_id"),
                    "status": int(response.status_code),
                    "latency_ms": round((time.perf_counter() - started) * 1000.0, 2) if started else None,
                    "user_id": getattr(g, "auth_user_id", None),
                    "role": getattr(g, "auth_role", None),
                    "ip_hash": _ip_fingerprint(request.headers.get("X-Forwarded-For", request.remote_addr or ""), salt),
                }
            )
        )
        return response
