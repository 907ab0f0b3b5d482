import logging
import os
import sys

from flask import Flask
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

from . import models  # noqa: E402,F401
from .shared.certificates_layout import (  # noqa: E402
    BATCH_WORKERS_DEFAULT,
    DEADLINE_SECONDS_DEFAULT,
    MAX_TEMPLATE_PIXELS_DEFAULT,
)


def _configure_logging(level_name: str) -> None:
    logger = logging.getLogger("eventcerts")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, level_name.upper(), logging.INFO))


def create_app():
    app = Flask(__name__)
    app.secret_key = os.getenv("SECRET_KEY", "dev")

    DB_USER = os.getenv("DB_USER", "eventcerts")
    DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
    DB_HOST = os.getenv("DB_HOST", "db")
    DB_NAME = os.getenv("DB_NAME", "eventcerts")
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}/{DB_NAME}",
    )

    app.config["SQLALCHEMY_DATABASE_URI"] = DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    app.config["SITE_ROOT"] = os.getenv("SITE_ROOT", "/srv")
    app.config["VERIFY_BASE_URL"] = os.getenv(
        "VERIFY_BASE_URL", "http://localhost:10000"
    )
    app.config["CERT_FONT_DIR"] = os.getenv(
        "CERT_FONT_DIR", "/usr/share/fonts/truetype"
    )
    app.config["CERT_BATCH_WORKERS"] = int(
        os.getenv("CERT_BATCH_WORKERS", BATCH_WORKERS_DEFAULT)
    )
    app.config["CERT_DEADLINE_SECONDS"] = float(
        os.getenv("CERT_DEADLINE_SECONDS", DEADLINE_SECONDS_DEFAULT)
    )
    app.config["CERT_MAX_TEMPLATE_PIXELS"] = int(
        os.getenv("CERT_MAX_TEMPLATE_PIXELS", MAX_TEMPLATE_PIXELS_DEFAULT)
    )
    app.config["LOG_LEVEL"] = os.getenv("LOG_LEVEL", "INFO")
    _configure_logging(app.config["LOG_LEVEL"])

    db.init_app(app)

    @app.get("/health")
    def health():
        return "OK", 200

    return app
