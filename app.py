import logging

import click
from flask import Flask, jsonify
from flask_migrate import Migrate
from sqlalchemy import func, or_
from werkzeug.middleware.proxy_fix import ProxyFix

from config import Config
from routes import health_bp, auth_bp, admin_bp

from models import db
from models.user import User, Role
from security.anomaly import AnomalyEngine, Thresholds
from security.block_ledger import BlockLedger
from security.credentials import CredentialService
from security.event_store import build_event_store
from security.gate import AuthenticationGate
from security.session import SessionService
from utils.seed import seed_roles
from utils.auth_context import load_current_user


def create_app(config_object=Config, event_store=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    x_for = app.config.get("PROXY_FIX_X_FOR", 0)
    if x_for:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=x_for)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Brute-force protection and auth collaborators
    ledger = BlockLedger()
    engine = AnomalyEngine(
        event_store or build_event_store(app.config),
        ledger,
        Thresholds.from_config(app.config),
    )
    credentials = CredentialService(bcrypt_rounds=app.config.get("BCRYPT_ROUNDS", 12))
    sessions = SessionService(
        lifetime_seconds=app.config.get("SESSION_LIFETIME_SECONDS", 24 * 60 * 60),
        idle_timeout_seconds=app.config.get("IDLE_TIMEOUT_SECONDS", 2 * 60 * 60),
    )
    app.extensions["block_ledger"] = ledger
    app.extensions["anomaly_engine"] = engine
    app.extensions["credential_service"] = credentials
    app.extensions["session_service"] = sessions
    app.extensions["auth_gate"] = AuthenticationGate(engine, credentials, sessions)

    with app.app_context():
        # Local/test databases; deployments run `flask db upgrade`
        if app.config.get("DB_AUTO_CREATE"):
            db.create_all()
        # Seed default roles at startup (safe & idempotent)
        seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    @app.errorhandler(404)
    def _not_found(_err):
        return jsonify(error="Not Found"), 404

    @app.errorhandler(500)
    def _server_error(err):
        app.logger.error("Application error: %s", getattr(err, "original_exception", err))
        return jsonify(error="Internal Server Error"), 500

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("identity")
    def make_admin(identity):
        """Promote a user to ADMIN by email or username (bootstrap)."""
        ident = identity.strip().lower()
        user = User.query.filter(
            or_(func.lower(User.email) == ident, func.lower(User.username) == ident)
        ).first()
        if not user:
            click.echo("User not found")
            return

        admin_role = Role.query.filter_by(name="ADMIN").first()
        if not admin_role:
            admin_role = Role(name="ADMIN")
            db.session.add(admin_role)
            db.session.commit()

        if admin_role not in user.roles:
            user.roles.append(admin_role)
            db.session.commit()

        click.echo(f"{user.email} promoted to ADMIN")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
