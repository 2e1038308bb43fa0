import os

from dotenv import load_dotenv

load_dotenv()


class Config:
    FLASK_ENV = os.getenv("FLASK_ENV", "production")
    FLASK_HOST = os.getenv("FLASK_HOST", "0.0.0.0")
    FLASK_PORT = int(os.getenv("FLASK_PORT", "6000"))

    DB_HOST = os.getenv("DB_HOST", "127.0.0.1")
    DB_PORT = int(os.getenv("DB_PORT", "5432"))
    DB_NAME = os.getenv("DB_NAME", "pos")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "postgres")

    SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"

    # Cache
    CACHE_BACKEND = os.getenv("CACHE_BACKEND", "memory")  # memory | redis
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    CACHE_PREFIX = os.getenv("CACHE_PREFIX", "reorder:")

    REORDER_LIST_TTL = int(os.getenv("REORDER_LIST_TTL", "300"))
    AUTO_REORDER_TTL = int(os.getenv("AUTO_REORDER_TTL", "180"))
    SUPPLIER_COMPARISON_TTL = int(os.getenv("SUPPLIER_COMPARISON_TTL", "300"))
    VELOCITY_TTL = int(os.getenv("VELOCITY_TTL", "3600"))
    SUPPLIER_SCORE_TTL = int(os.getenv("SUPPLIER_SCORE_TTL", "3600"))
    HISTORY_TTL = int(os.getenv("HISTORY_TTL", "1800"))

    # Reorder policy
    VELOCITY_WINDOW_DAYS = int(os.getenv("VELOCITY_WINDOW_DAYS", "30"))
    SUPPLIER_LOOKBACK_MONTHS = int(os.getenv("SUPPLIER_LOOKBACK_MONTHS", "6"))

    ALERT_RECIPIENTS = [
        r.strip() for r in os.getenv("ALERT_RECIPIENTS", "").split(",") if r.strip()
    ]

    @property
    def DATABASE_URL(self):
        override = os.getenv("DATABASE_URL")
        if override:
            return override
        return (
            f"postgresql+psycopg2://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


config = Config()
