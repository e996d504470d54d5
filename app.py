from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import RequestEntityTooLarge

from config import Config
from routes import health_bp, auth_bp, shop_bp, booking_bp, payments_bp, uploads_bp

from models import db
from flask_migrate import Migrate
from services.errors import ServiceError
from utils.seed import seed_roles
from utils.auth_context import load_current_user


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(shop_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(uploads_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    with app.app_context():
        if app.config.get("AUTO_CREATE_TABLES"):
            db.create_all()
        seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(ServiceError)
    def _service_error(exc):
        db.session.rollback()
        return jsonify(error=exc.message), exc.status_code

    @app.errorhandler(SQLAlchemyError)
    def _database_error(exc):
        db.session.rollback()
        app.logger.exception("Database error", exc_info=exc)
        return jsonify(error="Internal server error"), 500

    @app.errorhandler(RequestEntityTooLarge)
    def _too_large(exc):
        limit_mb = app.config.get("MAX_CONTENT_LENGTH", 0) // (1024 * 1024)
        return jsonify(error=f"Upload too large (max {limit_mb}MB)"), 413

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        return resp

    register_cli(app)

    return app

#-------------------------
import click
from models.user import User
from models.shop import Shop
from services import queue_ledger
from utils.seed import DEFAULT_ROLES, get_or_create_role

def register_cli(app):
    @app.cli.command("grant-role")
    @click.argument("email")
    @click.argument("role", type=click.Choice(DEFAULT_ROLES, case_sensitive=False))
    def grant_role(email, role):
        """Give a user a role by email (e.g. bootstrap the first ADMIN)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        role_row = get_or_create_role(role.upper())
        if role_row not in user.roles:
            user.roles.append(role_row)
        db.session.commit()

        click.echo(f"{user.email} granted {role_row.name}")

    @app.cli.command("recount-queues")
    def recount_queues():
        """Rebuild every shop's queue length from its active bookings."""
        fixed = 0
        for shop in Shop.query.order_by(Shop.id).all():
            old, new = queue_ledger.recount(shop.id)
            if old != new:
                fixed += 1
                app.logger.warning("Shop %s queue length drifted: %s -> %s", shop.id, old, new)
                click.echo(f"shop {shop.id}: {old} -> {new}")
        db.session.commit()
        click.echo(f"{fixed} shop(s) corrected")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
