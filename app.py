from flask import Flask, jsonify
from config import Config
from routes import health_bp, booking_bp, driver_bp, vehicle_bp, webhook_bp, audit_bp

from models import db
from flask_migrate import Migrate
from services import events
from services.errors import BookingError
from utils.seed import seed_roles
from utils.auth_context import load_current_user


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(driver_bp)
    app.register_blueprint(vehicle_bp)
    app.register_blueprint(webhook_bp)
    app.register_blueprint(audit_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Seed default roles at startup (safe & idempotent)
    with app.app_context():
        if app.config.get("CREATE_TABLES"):
            db.create_all()
        seed_roles()

    # Lifecycle notifications (no-op until SMTP is configured)
    events.subscribe(events.email_customer)

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

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
import click
from models.user import User, Role
from security.session import issue_token

def register_cli(app):
    @app.cli.command("grant-role")
    @click.argument("email")
    @click.argument("role")
    def grant_role(email, role):
        """Give a user a role (CUSTOMER, AGENT, VERIFIER, ADMIN)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            print("User not found")
            return

        role_name = role.strip().upper()
        role_row = Role.query.filter_by(name=role_name).first()
        if not role_row:
            print(f"Unknown role {role_name}")
            return

        if role_row not in user.roles:
            user.roles.append(role_row)
            db.session.commit()

        print(f"{user.email} granted {role_name}")

    @app.cli.command("add-user")
    @click.argument("email")
    @click.option("--name", default=None, help="Full name")
    def add_user(email, name):
        """Register a user as CUSTOMER (accounts normally come from the auth service)."""
        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            print("User already exists")
            return
        user = User(email=email, full_name=name)
        customer = Role.query.filter_by(name="CUSTOMER").first()
        if customer:
            user.roles.append(customer)
        db.session.add(user)
        db.session.commit()
        print(f"{email} created")

    @app.cli.command("issue-token")
    @click.argument("email")
    def issue_token_cmd(email):
        """Print a session token for an existing user."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            print("User not found")
            return
        print(issue_token(user.id))

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
