# backend/stockledger/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate, cache

logger = logging.getLogger(__name__)

PROCESS_LOCAL_CACHES = {"SimpleCache", "simple"}


def _engine_options(uri: str, timeout: float) -> dict:
    """Bound every storage call by STORAGE_TIMEOUT_SECONDS."""
    if uri.startswith("sqlite"):
        # SQLite: how long a writer waits on the database lock
        return {"connect_args": {"timeout": timeout}}
    if uri.startswith("postgresql"):
        millis = int(timeout * 1000)
        return {
            "connect_args": {
                "connect_timeout": max(1, int(timeout)),
                "options": f"-c statement_timeout={millis} -c lock_timeout={millis}",
            },
            "pool_pre_ping": True,
        }
    return {"pool_pre_ping": True}


def _configure_cache(app: Flask) -> None:
    """
    Pick the cache backend. Every worker must see the same cache so that an
    invalidation after a commit reaches all readers.
    """
    redis_url = app.config.get("REDIS_URL")
    cache_type = app.config.get("CACHE_TYPE") or "NullCache"
    cache_config = {
        "CACHE_DEFAULT_TIMEOUT": int(app.config.get("LEDGER_CACHE_TTL_SECONDS", 180)),
        "CACHE_NO_NULL_WARNING": True,
    }

    if redis_url:
        cache_config["CACHE_TYPE"] = "RedisCache"
        cache_config["CACHE_REDIS_URL"] = redis_url
        logger.info("Redis cache configured for ledger reads")
    elif cache_type in PROCESS_LOCAL_CACHES and not (
        app.config.get("TESTING") or app.config.get("LEDGER_SINGLE_PROCESS")
    ):
        cache_config["CACHE_TYPE"] = "NullCache"
        logger.warning(
            "%s is process-local; ledger caching disabled (set REDIS_URL or LEDGER_SINGLE_PROCESS)",
            cache_type,
        )
    else:
        cache_config["CACHE_TYPE"] = cache_type

    app.config["CACHE_TYPE"] = cache_config["CACHE_TYPE"]
    cache.init_app(app, config=cache_config)


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.from_mapping(test_config)

    options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
    for key, value in _engine_options(
        app.config["SQLALCHEMY_DATABASE_URI"], float(app.config["STORAGE_TIMEOUT_SECONDS"])
    ).items():
        options.setdefault(key, value)
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = options

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    logging.getLogger("stockledger").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    _configure_cache(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.engine import InventoryEngine
    app.extensions["inventory_engine"] = InventoryEngine()

    # Register blueprints
    from .routes.ledger import ledger_bp
    app.register_blueprint(ledger_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
