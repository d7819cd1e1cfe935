import csv
import json
import os
import subprocess
from pathlib import Path

import click
from flask import Flask, g, jsonify, request
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from movemarket.config import check_production_settings, load_settings
from movemarket.errors import MarketplaceError
from movemarket.extensions import cors, db, migrate
from movemarket.integrations.messaging.factory import messaging_health
from movemarket.integrations.payments.factory import payment_health
from movemarket.models import JobRun, Pincode, User
from movemarket.segments.segment_affiliate import affiliate_bp
from movemarket.segments.segment_delivery import delivery_bp
from movemarket.segments.segment_notifications import notifications_bp
from movemarket.segments.segment_orders import orders_bp
from movemarket.segments.segment_payments import payments_bp
from movemarket.services import EXTENSION_KEY, build_services
from movemarket.utils.jwt_utils import decode_token, get_bearer_token
from movemarket.utils.observability import init_sentry, install_request_observers


def _resolve_alembic_head() -> str:
    try:
        from alembic.config import Config
        from alembic.script import ScriptDirectory

        migrations_dir = Path(__file__).resolve().parents[1] / "migrations"
        cfg = Config(str(migrations_dir / "alembic.ini"))
        cfg.set_main_option("script_location", str(migrations_dir))
        script = ScriptDirectory.from_config(cfg)
        heads = script.get_heads()
        return heads[0] if heads else "unknown"
    except Exception:
        return "unknown"


def _resolve_git_sha() -> str:
    val = (os.getenv("GIT_SHA") or "").strip()
    if val:
        return val
    try:
        repo_root = Path(__file__).resolve().parents[1]
        out = subprocess.check_output(
            ["git", "rev-parse", "HEAD"],
            cwd=str(repo_root),
            stderr=subprocess.DEVNULL,
        )
        return out.decode().strip()
    except (OSError, subprocess.CalledProcessError):
        return "unknown"


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        value = int(raw) if raw else int(default)
    except ValueError:
        value = int(default)
    return max(minimum, min(value, maximum))


def _error_payload(payload: dict) -> dict:
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return payload


def create_app():
    app = Flask(__name__)
    init_sentry(app)

    settings = load_settings()
    env = settings.env

    # Production safety checks
    check_production_settings(settings)

    # Basic config
    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    # Database config
    database_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
    if not database_url:
        instance_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "instance"))
        os.makedirs(instance_dir, exist_ok=True)
        database_url = f"sqlite:///{os.path.join(instance_dir, 'movemarket.db').replace(os.sep, '/')}"
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    engine_options = {"pool_pre_ping": True}
    if not database_url.startswith("sqlite://"):
        engine_options.update(
            {
                "pool_recycle": _env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
                "pool_size": _env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200),
                "max_overflow": _env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500),
                "pool_timeout": _env_int("DB_POOL_TIMEOUT_SECONDS", 30, minimum=1, maximum=300),
            }
        )
        app.logger.info(
            "db_pooling_enabled pool_size=%s max_overflow=%s",
            engine_options["pool_size"],
            engine_options["max_overflow"],
        )
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    # CORS configuration
    cors_origins = (os.getenv("CORS_ORIGINS") or "").strip()
    if settings.is_production:
        origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
    else:
        origins = ["*"] if not cors_origins else [o.strip() for o in cors_origins.split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db)
    install_request_observers(app)
    app.extensions[EXTENSION_KEY] = build_services(settings)

    @app.errorhandler(MarketplaceError)
    def _api_marketplace_error(error: MarketplaceError):
        try:
            db.session.rollback()
        except Exception:
            app.logger.exception("session_rollback_failed path=%s", request.path)
        app.logger.info(
            "request_rejected path=%s code=%s status=%s message=%s",
            request.path,
            error.code,
            error.status_code,
            error.message,
        )
        return jsonify(_error_payload(error.to_dict())), int(error.status_code)

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        # Keep API failures JSON-only for predictable frontend handling.
        if not request.path.startswith("/api/"):
            return error
        payload = {
            "ok": False,
            "error": error.name,
            "message": error.description or error.name,
            "status": int(error.code or 500),
        }
        return jsonify(_error_payload(payload)), int(error.code or 500)

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s", request.path)
        payload = {
            "ok": False,
            "error": "InternalServerError",
            "message": "Internal server error",
            "status": 500,
        }
        return jsonify(_error_payload(payload)), 500

    # Register API routes
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(delivery_bp)
    app.register_blueprint(affiliate_bp)
    app.register_blueprint(notifications_bp)

    def _job_status() -> dict:
        jobs = {}
        for name in ("notification_dispatcher", "rider_assignment_sweep"):
            try:
                run = JobRun.latest(name)
            except Exception:
                db.session.rollback()
                run = None
            jobs[name] = run.to_dict() if run is not None else None
        return jobs

    # Health check
    @app.get("/api/health")
    def health():
        db_state = "ok"
        db_error = None
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            db_state = "fail"
            msg = str(e)
            if msg:
                db_error = (msg[:300] + "...") if len(msg) > 300 else msg
        payload = {
            "ok": True,
            "service": "movemarket-backend",
            "env": env,
            "db": db_state,
            "git_sha": _resolve_git_sha(),
            "alembic_head": _resolve_alembic_head(),
            "payments": payment_health(settings),
            "messaging": messaging_health(settings),
            "jobs": _job_status(),
        }
        if db_error:
            payload["db_error"] = db_error
        return jsonify(payload)

    @app.get("/")
    def root():
        return jsonify({"ok": True, "service": "movemarket-backend", "env": env})

    @app.before_request
    def _reset_db_session():
        try:
            db.session.rollback()
        except Exception:
            app.logger.exception("session_reset_failed path=%s", request.path)

    @app.before_request
    def _capture_auth_context():
        g.auth_user_id = None
        g.auth_role = None
        token = get_bearer_token(request.headers.get("Authorization", ""))
        if not token:
            return
        payload = decode_token(token)
        if not payload:
            return
        try:
            uid = int(payload.get("sub"))
        except (TypeError, ValueError):
            return
        g.auth_user_id = uid
        user = db.session.get(User, uid)
        if user:
            g.auth_role = (getattr(user, "role", None) or "customer").strip().lower()
            try:
                import sentry_sdk

                sentry_sdk.set_user({"id": str(uid)})
                sentry_sdk.set_tag("auth_role", g.auth_role)
            except ImportError:
                pass

    @app.teardown_request
    def _cleanup_db_session(exc):
        try:
            if exc is not None:
                db.session.rollback()
        finally:
            db.session.remove()

    @app.cli.command("dispatch-notifications")
    @click.option("--limit", "limit", type=int, default=None, help="Maximum rows to deliver")
    def dispatch_notifications_command(limit: int | None):
        from movemarket.jobs.notification_dispatcher import dispatch_pending_notifications

        result = dispatch_pending_notifications(app.extensions[EXTENSION_KEY], limit=limit)
        click.echo(json.dumps(result))

    @app.cli.command("seed-pincodes")
    @click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
    def seed_pincodes_command(csv_path: str):
        """Load pincode coordinates from a CSV with code,city,state,latitude,longitude columns."""
        added = updated = 0
        with open(csv_path, newline="", encoding="utf-8") as fh:
            for row in csv.DictReader(fh):
                code = "".join(ch for ch in str(row.get("code") or "") if ch.isdigit())
                if not code:
                    continue
                try:
                    lat = float(row.get("latitude"))
                    lon = float(row.get("longitude"))
                except (TypeError, ValueError):
                    raise click.ClickException(f"Invalid coordinates for pincode {code}")
                pin = db.session.get(Pincode, code)
                if pin is None:
                    pin = Pincode(code=code)
                    db.session.add(pin)
                    added += 1
                else:
                    updated += 1
                pin.city = (row.get("city") or "").strip() or None
                pin.state = (row.get("state") or "").strip() or None
                pin.latitude = lat
                pin.longitude = lon
        db.session.commit()
        click.echo(f"pincodes_seeded added={added} updated={updated}")

    @app.cli.command("assign-pending-riders")
    @click.option("--limit", "limit", type=int, default=200, help="Maximum orders to retry")
    def assign_pending_riders_command(limit: int):
        from movemarket.jobs.rider_assignment_sweep import assign_pending_riders

        result = assign_pending_riders(app.extensions[EXTENSION_KEY], limit=limit)
        for skip in result["skipped"]:
            click.echo(f"skip order_id={skip['order_id']} code={skip['code']} message={skip['message']}")
        click.echo(json.dumps(result))

    return app
