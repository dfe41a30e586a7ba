# app/config.py

import os


class Config:
    # Flask Secret Key
    SECRET_KEY = os.getenv('SECRET_KEY', 'your_secret_key')

    # Database Configuration
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URI',
        'postgresql://postgres:postgres@db:5432/settlement_db'
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Database connection pool configuration
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,       # Validate connections before using
        "pool_recycle": 1800,        # Recycle every 30 minutes
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 30,
        "connect_args": {
            "connect_timeout": 10,
            "options": "-c statement_timeout=30000"  # 30s query timeout
        }
    }

    # Mail Configuration
    MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.example.com")
    MAIL_PORT = int(os.getenv("MAIL_PORT", 587))
    MAIL_USE_TLS = os.getenv("MAIL_USE_TLS", "true").lower() in ("true", "1", "t")
    MAIL_USE_SSL = os.getenv("MAIL_USE_SSL", "false").lower() in ("true", "1", "t")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "no-reply@example.com")
    MAIL_MAX_EMAILS = None
    MAIL_ASCII_ATTACHMENTS = False

    # CORS
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
        if origin.strip()
    ]

    # Settlement rules
    SETTLEMENT_COMMISSION_PERCENT = os.getenv('SETTLEMENT_COMMISSION_PERCENT', '5.0')
    SETTLEMENT_MIN_AMOUNT = os.getenv('SETTLEMENT_MIN_AMOUNT', '100000')
    SETTLEMENT_HOLD_PERIOD_DAYS = int(os.getenv('SETTLEMENT_HOLD_PERIOD_DAYS', 3))

    # Optimistic-lock collisions are retried this many times before surfacing
    SETTLEMENT_RETRY_LIMIT = int(os.getenv('SETTLEMENT_RETRY_LIMIT', 3))
    SETTLEMENT_RETRY_BACKOFF_SECONDS = float(os.getenv('SETTLEMENT_RETRY_BACKOFF_SECONDS', 0.05))

    SETTLEMENT_NOTIFICATIONS_ENABLED = os.getenv(
        'SETTLEMENT_NOTIFICATIONS_ENABLED', 'true'
    ).lower() in ("true", "1", "t")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    MAIL_SUPPRESS_SEND = True
    SETTLEMENT_MIN_AMOUNT = '50000'
    SETTLEMENT_RETRY_BACKOFF_SECONDS = 0
