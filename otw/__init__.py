import os
import logging

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from otw.config import config_by_name
from otw.errors import ServiceError
from otw.extensions import db, migrate, login_manager, limiter

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from otw import models  # noqa: F401

    # --- Rate limiter ---
    from otw.services.rate_limit_service import build_rate_limiter
    from otw.middleware.rate_limit import init_rate_limit_middleware

    rate_limiter = build_rate_limiter(app.config)
    app.extensions["rate_limiter"] = rate_limiter
    if app.config.get("RATE_LIMIT_ENABLED") and app.config.get("RATE_LIMIT_SWEEP_INTERVAL", 0) > 0:
        rate_limiter.start_sweeper(app.config["RATE_LIMIT_SWEEP_INTERVAL"])
    init_rate_limit_middleware(app)

    # --- Register blueprints ---
    from otw.blueprints.admin import admin_bp
    from otw.blueprints.checkout import checkout_bp
    from otw.blueprints.deliveries import deliveries_bp
    from otw.blueprints.drivers import drivers_bp
    from otw.blueprints.orders import orders_bp
    from otw.blueprints.webhooks import webhooks_bp

    app.register_blueprint(admin_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(deliveries_bp)
    app.register_blueprint(drivers_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(webhooks_bp)

    # --- Health check ---
    @app.route("/")
    def index():
        return jsonify({"service": "otw", "status": "ok"})

    # --- Local file serving (dev only) ---
    if app.debug:
        @app.route("/uploads/<path:filepath>")
        def serve_upload(filepath):
            """Serve uploaded screenshots from instance/uploads in dev mode."""
            from flask import send_from_directory
            upload_dir = os.path.join(app.instance_path, "uploads")
            return send_from_directory(upload_dir, filepath)

    # --- Error handlers ---
    @app.errorhandler(ServiceError)
    def service_error(e):
        if e.status_code >= 500:
            logger.error(f"{e.code}: {e.message}")
        response = jsonify(e.to_dict())
        response.status_code = e.status_code
        if getattr(e, "retry_after", None):
            response.headers["Retry-After"] = str(e.retry_after)
        return response

    @app.errorhandler(HTTPException)
    def http_error(e):
        response = jsonify({
            "error": e.description,
            "code": (e.name or "error").upper().replace(" ", "_"),
        })
        response.status_code = e.code
        return response

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # JSON API: nothing to load, nothing to frame
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none';"
        )
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-demo")
    @click.option("--admin-email", default="admin@otw.local", help="Admin email")
    def seed_demo(admin_email):
        """Create demo users, a driver and a starter menu, then print tokens.

        Usage:
            flask seed-demo
            flask seed-demo --admin-email ops@example.com
        """
        from decimal import Decimal

        from otw.models.driver import Driver
        from otw.models.menu_item import MenuItem
        from otw.models.user import User
        from otw.services.identity_service import issue_token

        def _user(email, name, role):
            user = User.query.filter_by(email=email).first()
            if user:
                click.echo(f"User already exists: {email}")
                return user
            user = User(email=email, full_name=name, role=role)
            db.session.add(user)
            db.session.flush()
            click.echo(f"Created {role}: {email}")
            return user

        # --- 1. Users ---
        admin = _user(admin_email, "Admin", "admin")
        operator = _user("operator@otw.local", "Dispatch Operator", "operator")
        driver_user = _user("driver@otw.local", "Demo Driver", "driver")

        # --- 2. Driver profile ---
        driver = Driver.query.filter_by(user_id=driver_user.id).first()
        if driver is None:
            driver = Driver(
                user_id=driver_user.id,
                name=driver_user.full_name,
                phone="5555550100",
                is_available=True,
            )
            db.session.add(driver)

        # --- 3. Menu ---
        if MenuItem.query.count() == 0:
            db.session.add_all([
                MenuItem(name="Broski Burger", price=Decimal("12.99"),
                         category="Burgers", type="classic", source="broskis"),
                MenuItem(name="Loaded Fries", price=Decimal("6.50"),
                         category="Sides", type="classic", source="broskis"),
                MenuItem(name="Partner Wings (10pc)", price=Decimal("14.00"),
                         category="Wings", type="classic", source="partner"),
            ])
            click.echo("Created demo menu")

        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo("Seed data created successfully!")
        click.echo("=" * 60)
        for user in (admin, operator, driver_user):
            click.echo(f"  {user.role:<9} {user.email}")
            click.echo(f"            Bearer {issue_token(user)}")
        click.echo("=" * 60)

    @app.cli.command("issue-token")
    @click.option("--email", required=True, help="Email of an existing user")
    def issue_token_command(email):
        """Print a bearer token for an existing user.

        Usage:
            flask issue-token --email operator@otw.local
        """
        from otw.models.user import User
        from otw.services.identity_service import issue_token

        user = User.query.filter_by(email=email).first()
        if user is None:
            raise click.ClickException(f"No user with email {email}")
        if not user.is_active:
            raise click.ClickException(f"User {email} is deactivated")
        click.echo(issue_token(user))

    @app.cli.command("notify-drivers")
    def notify_drivers_command():
        """Re-run driver fanout for paid deliveries nobody was told about.

        Usage:
            flask notify-drivers
        """
        from otw.errors import FanoutError
        from otw.services.notification_service import (
            deliveries_awaiting_fanout,
            notify_available_drivers,
        )

        deliveries = deliveries_awaiting_fanout()
        if not deliveries:
            click.echo("No paid deliveries awaiting driver fanout")
            return

        failed = 0
        for delivery in deliveries:
            try:
                notified = notify_available_drivers(delivery)
            except FanoutError as e:
                failed += 1
                click.echo(f"  {delivery.id}: {e.message}")
                continue
            click.echo(f"  {delivery.id}: notified {notified} driver(s)")

        if failed:
            raise click.ClickException(f"Fanout failed for {failed} deliveries")
