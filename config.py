import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the code as carrental.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "carrental.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Tables are normally created by `flask db upgrade`
    CREATE_TABLES = False

    # Session token (cookie or Bearer header)
    AUTH_COOKIE_NAME = "carrental_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    # Cancellation policy (hours before pickup)
    CANCEL_FULL_REFUND_HOURS = 24
    CANCEL_PARTIAL_REFUND_HOURS = 6
    CANCEL_PARTIAL_REFUND_PERCENT = 50

    # Check-in opens this long before pickup
    CHECKIN_EARLY_MINUTES = 60

    # Accepted rounding difference between charged amount and total price
    PAYMENT_TOLERANCE = 0.01
    PAYMENT_CURRENCY = "usd"

    # Rental terms used when a booking does not carry its own
    DEFAULT_DAILY_MILEAGE_ALLOWANCE = 200
    DEFAULT_EXTRA_MILE_RATE = 0.5
    DEFAULT_CLEANING_FEE = 75

    # Refuel charge per quarter-tank level missing at return
    FUEL_LEVEL_CHARGE = 15

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

    # Email (SMTP) for lifecycle notifications
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Basic app settings
    DEBUG = False
