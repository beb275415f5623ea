import os
import json
import logging

import click
from flask import Flask, jsonify

from app.config import config_by_name
from app.extensions import db, migrate


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

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from app import models  # noqa: F401

    # --- Register blueprints ---
    from app.blueprints.webhooks import webhooks_bp

    app.register_blueprint(webhooks_bp)

    # --- Error handlers ---
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "Internal server error"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)
    if not app.config.get("STRIPE_WEBHOOK_SECRET"):
        app.logger.warning(
            "STRIPE_WEBHOOK_SECRET is not set — webhook signatures will NOT be verified"
        )

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-user")
    @click.option("--email", default="buyer@example.local", help="User email")
    @click.option("--name", default="Test Buyer", help="Display name")
    def seed_user(email, name):
        """Create a user to attribute local webhook purchases to.

        Put the printed id in a test checkout's metadata.userId.

        Usage:
            flask seed-user
            flask seed-user --email me@example.com --name "Me"
        """
        from app.models.user import User

        user = User.query.filter_by(email=email).first()
        if user:
            click.echo(f"User already exists: {email}")
        else:
            user = User(email=email, name=name)
            db.session.add(user)
            db.session.commit()
            click.echo(f"Created user: {email}")
        click.echo(f"  userId: {user.id}")

    @app.cli.command("show-purchases")
    @click.argument("user_id")
    def show_purchases(user_id):
        """Print a user's purchases as JSON (the persisted purchase shape)."""
        from app.services.purchase_service import list_purchases

        click.echo(json.dumps(list_purchases(user_id), indent=2))

    @app.cli.command("notify-purchase")
    @click.argument("user_id")
    @click.argument("purchase_id")
    def notify_purchase(user_id, purchase_id):
        """Email a user the current status of one of their purchases.

        Usage:
            flask notify-purchase <user_id> cs_test_123
        """
        from app.services.notification_service import notify_purchase_status_change
        from app.services.purchase_service import get_purchase

        purchase = get_purchase(user_id, purchase_id)
        if not purchase:
            click.echo(f"ERROR: no purchase {purchase_id} for user {user_id}")
            return

        if notify_purchase_status_change(user_id, purchase_id, purchase.status):
            click.echo(f"Notification queued: {purchase_id} -> {purchase.status}")
        else:
            click.echo("Notification not sent (see logs).")

    @app.cli.command("list-webhooks")
    @click.option("--limit", default=50, help="How many deliveries to show (max 200).")
    def list_webhooks(limit):
        """Show the most recent webhook deliveries and their outcomes."""
        from app.services.stripe_service import list_recent_deliveries

        deliveries = list_recent_deliveries(limit)
        if not deliveries:
            click.echo("No webhook deliveries recorded.")
            return
        for delivery in deliveries:
            received = delivery.received_at.isoformat() if delivery.received_at else "-"
            click.echo(
                f"{received}  {delivery.stripe_event_id}  {delivery.event_type}  "
                f"{delivery.outcome}  root={delivery.root_id or '-'}"
            )
