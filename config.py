import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as loginguard.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "loginguard.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Create tables on startup instead of running migrations (local dev only)
    DB_AUTO_CREATE = os.getenv("DB_AUTO_CREATE", "false").lower() == "true"

    # 24 hours session lifetime
    SESSION_LIFETIME_SECONDS = int(os.getenv("SESSION_LIFETIME_SECONDS", str(24 * 60 * 60)))

    # Idle timeout: 2 hours
    IDLE_TIMEOUT_SECONDS = int(os.getenv("IDLE_TIMEOUT_SECONDS", str(2 * 60 * 60)))

    # Password hashing cost
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Failed-attempt event store: "memory" (single process) or "redis"
    EVENT_STORE_BACKEND = os.getenv("EVENT_STORE_BACKEND", "memory")
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    REDIS_KEY_PREFIX = os.getenv("REDIS_KEY_PREFIX", "loginguard:attempt")
    REDIS_SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", "2.0"))

    # Brute-force protection
    ORIGIN_ATTEMPT_THRESHOLD = int(os.getenv("ORIGIN_ATTEMPT_THRESHOLD", "100"))   # permanent IP block
    ACCOUNT_ATTEMPT_THRESHOLD = int(os.getenv("ACCOUNT_ATTEMPT_THRESHOLD", "5"))   # temporary suspension
    ORIGIN_WINDOW_SECONDS = int(os.getenv("ORIGIN_WINDOW_SECONDS", str(15 * 60)))
    ACCOUNT_WINDOW_SECONDS = int(os.getenv("ACCOUNT_WINDOW_SECONDS", str(15 * 60)))

    # Admin anomaly stats look-back
    ANOMALY_STATS_WINDOW_SECONDS = int(os.getenv("ANOMALY_STATS_WINDOW_SECONDS", str(15 * 60)))

    # Number of trusted reverse proxies in front of the app (0 = none).
    # X-Forwarded-For is ignored unless this is set.
    PROXY_FIX_X_FOR = int(os.getenv("PROXY_FIX_X_FOR", "0"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False
