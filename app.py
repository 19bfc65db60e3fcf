import logging

import click
from flask import Flask, g, jsonify
from flask_migrate import Migrate

from config import Config, PaymentSettings
from models import db
from models.user import Role, User
from routes import ALL_BLUEPRINTS
from services import init_booking_payments
from services.errors import BookingError
from utils.auth_context import load_current_user
from utils.seed import seed_locations, seed_roles

logger = logging.getLogger(__name__)


def configure_logging(app):
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    app.logger.setLevel(level)


def create_app(config_object=Config, gateway=None):
    """
    Build the app. ``gateway`` overrides the Cashfree client (tests inject a fake).
    """
    app = Flask(__name__)
    app.config.from_object(config_object)
    configure_logging(app)

    for bp in ALL_BLUEPRINTS:
        app.register_blueprint(bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Payment settings are built once here and handed to the booking core
    settings = PaymentSettings.from_mapping(app.config)
    init_booking_payments(app, settings, gateway)
    if not settings.app_id or not settings.secret_key:
        logger.warning("Cashfree credentials not configured; payment orders will fail")

    with app.app_context():
        if app.config.get("AUTO_CREATE_TABLES"):
            db.create_all()
        seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(BookingError)
    def _booking_error(err: BookingError):
        user = getattr(g, "user", None)
        level = logging.ERROR if err.status_code >= 500 else logging.INFO
        logger.log(level, "Request failed (%s) for user=%s: %s", err.kind, user.id if user else None, err.message)
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(404)
    def _not_found(_err):
        return jsonify(error="API endpoint not found"), 404

    @app.errorhandler(405)
    def _method_not_allowed(_err):
        return jsonify(error="Method not allowed"), 405

    @app.errorhandler(500)
    def _internal_error(err):
        logger.error("Unhandled error: %s", err)
        return jsonify(error="Internal server error"), 500

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        admin_role = Role.query.filter_by(name="ADMIN").first()
        if not admin_role:
            admin_role = Role(name="ADMIN")
            db.session.add(admin_role)

        if admin_role not in user.roles:
            user.roles.append(admin_role)
        db.session.commit()

        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("seed-locations")
    def seed_locations_command():
        """Insert the default city list."""
        added = seed_locations()
        click.echo(f"{added} locations added")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5000)
