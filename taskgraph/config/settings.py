# taskgraph/config/settings.py
# Runtime configuration for the task graph core and its HTTP surface

import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Environment driven settings"""

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./taskgraph.db")
    DB_SSLMODE = os.getenv("DB_SSLMODE")  # e.g. "require" on managed PostgreSQL
    SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # JWT
    SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
    ALGORITHM = os.getenv("ALGORITHM", "HS256")

    # Server
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", "8000"))
    RELOAD = os.getenv("RELOAD", "true").lower() == "true"
    CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if origin.strip()]

    @classmethod
    def engine_options(cls) -> dict:
        """Keyword arguments for create_engine based on the configured backend"""
        options = {"echo": cls.SQL_ECHO}
        if cls.DATABASE_URL.startswith("sqlite"):
            options["connect_args"] = {"check_same_thread": False}
        elif cls.DB_SSLMODE:
            options["connect_args"] = {"sslmode": cls.DB_SSLMODE}
        return options


settings = Settings()
