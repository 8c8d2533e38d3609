"""
Application factory and global configuration.

Creates the Flask app, applies security headers, configures rate limiting,
registers the JSON API blueprint, schedules garden cache cleanup and wires the
CLI commands. This file keeps startup/config concerns together and avoids
domain logic here.
"""

from __future__ import annotations
import os
from flask import Flask, Response
from dotenv import load_dotenv  # <-- ensure .env is loaded for local dev
from .extensions import limiter
from .routes.api import api_bp
from .services import garden_cache, supabase_client


def _validate_production_security(app: Flask, cfg_path: str) -> None:
    """
    Validate critical security settings in production environments.

    Raises RuntimeError if production security requirements are not met.
    This prevents the app from starting with insecure configurations.

    Checks:
    - SECRET_KEY must be set and strong (>= 32 characters)
    - DEBUG must be False (no debug mode in production)
    - PREFERRED_URL_SCHEME should be "https"

    Args:
        app: Flask application instance
        cfg_path: Config path being used (e.g., "planthealth.config.ProdConfig")
    """
    is_production = "ProdConfig" in cfg_path
    is_test = app.config.get("TESTING", False)

    if not is_production or is_test:
        return

    errors = []

    secret_key = app.config.get("SECRET_KEY", "")
    if not secret_key:
        errors.append(
            "SECRET_KEY is not set. Set FLASK_SECRET_KEY environment variable. "
            "Generate with: python -c 'import secrets; print(secrets.token_hex(32))'"
        )
    elif len(secret_key) < 32:
        errors.append(
            f"SECRET_KEY is too weak ({len(secret_key)} chars). "
            "Must be at least 32 characters for production security."
        )

    if app.config.get("DEBUG", False):
        errors.append(
            "DEBUG must be False in production. Debug mode exposes sensitive information "
            "and should never be enabled in production environments."
        )

    if app.config.get("PREFERRED_URL_SCHEME", "http") != "https":
        errors.append(
            "PREFERRED_URL_SCHEME should be 'https' in production. "
            "Set PREFERRED_URL_SCHEME=https environment variable."
        )

    if errors:
        error_msg = "\n\n[ERROR] PRODUCTION SECURITY VALIDATION FAILED:\n\n" + "\n\n".join(f"  * {err}" for err in errors)
        error_msg += "\n\n[WARNING] The application will not start until these security issues are resolved.\n"
        raise RuntimeError(error_msg)

    app.logger.info("[OK] Production security validation passed")


def _start_cache_cleanup(app: Flask) -> None:
    """Purge expired garden aggregates on an interval (skipped in tests)."""
    try:
        from apscheduler.schedulers.background import BackgroundScheduler

        scheduler = BackgroundScheduler()
        minutes = app.config.get("CACHE_CLEANUP_INTERVAL_MINUTES", 5)

        # APScheduler runs jobs in background threads without app context
        def run_cache_cleanup():
            with app.app_context():
                garden_cache.purge_expired()

        scheduler.add_job(
            func=run_cache_cleanup,
            trigger="interval",
            minutes=minutes,
            id="garden_cache_cleanup",
            name="Purge Expired Garden Aggregates",
            replace_existing=True
        )
        scheduler.start()
        app.logger.info(f"[Scheduler] Garden cache cleanup scheduled every {minutes} minute(s)")

        import atexit
        atexit.register(lambda: scheduler.shutdown())

    except Exception as e:
        app.logger.warning(f"[Scheduler] Failed to initialize cache cleanup scheduler: {e}")


def create_app() -> Flask:
    # override=False so production env vars are not overwritten by a stale .env file
    load_dotenv(override=False)

    app = Flask(__name__)

    # Allow APP_CONFIG to override (e.g., planthealth.config.DevConfig)
    cfg_path = os.getenv("APP_CONFIG", "planthealth.config.ProdConfig")
    try:
        app.config.from_object(cfg_path)
    except (ImportError, AttributeError) as e:
        app.logger.warning(f"Could not load config object {cfg_path}: {e}")

    _validate_production_security(app, cfg_path)

    limiter.init_app(app)

    if not app.config.get("RATELIMIT_ENABLED", True):
        limiter.enabled = False

    if not app.secret_key:
        app.secret_key = app.config.get("SECRET_KEY", "")

    supabase_client.init_supabase(app)

    @app.after_request
    def apply_security_headers(resp: Response) -> Response:
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Cache-Control"] = "no-store"
        return resp

    app.register_blueprint(api_bp, url_prefix="/api/v1")

    if not app.config.get("TESTING", False):  # Skip scheduler in test mode
        _start_cache_cleanup(app)

    from planthealth.cli import plant_evolution_command, recompute_health_scores_command
    app.cli.add_command(recompute_health_scores_command)
    app.cli.add_command(plant_evolution_command)

    return app
