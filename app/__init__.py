import logging
import os

from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect

from config import config

logger = logging.getLogger(__name__)

db = SQLAlchemy()
login_manager = LoginManager()
cache = Cache()
migrate = Migrate()
csrf = CSRFProtect()


def get_real_ip():
    """
    Get the real client IP address, accounting for reverse proxies.
    Checks X-Forwarded-For, X-Real-IP, and falls back to remote_addr.
    """
    # X-Forwarded-For: client, proxy1, proxy2, ...
    if request.headers.get("X-Forwarded-For"):
        return request.headers.get("X-Forwarded-For").split(",")[0].strip()
    if request.headers.get("X-Real-IP"):
        return request.headers.get("X-Real-IP")
    return get_remote_address()


def _limiter_storage(redis_url):
    """Redis storage URI when the server answers, in-memory storage otherwise"""
    if not redis_url:
        return "memory://"

    try:
        import redis
    except ImportError as e:
        logger.warning(f"Redis not available for rate limiter, using memory storage: {e}")
        return "memory://"

    try:
        redis.Redis.from_url(redis_url).ping()
    except redis.exceptions.ConnectionError as e:
        logger.warning(f"Redis not available for rate limiter, using memory storage: {e}")
        return "memory://"

    logger.info(f"Rate limiter using Redis storage at {redis_url}")
    return redis_url


# Use Redis in production for shared rate limiting across multiple workers
limiter_storage_uri = _limiter_storage(
    os.environ.get("REDIS_URL") or os.environ.get("CACHE_REDIS_URL")
)

limiter = Limiter(
    key_func=get_real_ip,
    default_limits=["10000 per day", "1000 per hour"],
    storage_uri=limiter_storage_uri,
)


def create_app(config_name=None):
    app = Flask(__name__)

    if config_name is None:
        config_name = os.environ.get("FLASK_CONFIG", "default")

    app.config.from_object(config[config_name]())

    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SECURE"] = (
        False
        if app.config.get("DEBUG")
        else app.config.get("FLASK_ENV") == "production"
    )
    app.config["PERMANENT_SESSION_LIFETIME"] = 86400  # 24 hours

    # Admin JSON clients send the token in X-CSRFToken
    app.config["WTF_CSRF_TIME_LIMIT"] = None
    app.config["WTF_CSRF_SSL_STRICT"] = False

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    cache.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    limiter.init_app(app)

    register_user_loader()

    from app.routes.admin import bp as admin_bp

    app.register_blueprint(admin_bp, url_prefix="/admin")

    from app.routes.api import bp as api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    register_error_handlers(app)

    from app.utils.performance import log_request_performance, track_request_performance

    app.before_request(track_request_performance)
    app.after_request(log_request_performance)

    from app.utils.logging_config import setup_logging

    setup_logging(app)

    show_config_warnings(app, config_name)

    with app.app_context():
        db.create_all()

    if not app.config.get("TESTING", False):
        from app.services.scheduler_service import scheduler_service

        scheduler_service.init_app(app)

    return app


def register_user_loader():
    """Load admin users for Flask-Login; login itself happens elsewhere"""
    from app.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Authentication required"}), 401


def show_config_warnings(app, config_name):
    """Log configuration warnings and status"""
    import warnings

    logger.info(f"CFB Pick'em starting with '{config_name}' configuration")

    if config_name == "production" and app.config.get("DEBUG"):
        warnings.warn("DEBUG mode is enabled in production!", UserWarning)

    db_url = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if "sqlite" in db_url:
        if "memory" in db_url:
            logger.info("Using SQLite database (in-memory)")
        else:
            logger.info("Using SQLite database (app.db file)")
    elif "postgresql" in db_url:
        # Extract host and database name for display (hide password)
        import re

        match = re.search(r"postgresql.*?://.*?@([^:/]+):?(\d+)?/([^?]+)", db_url)
        if match:
            host, port, dbname = match.groups()
            logger.info(f"Using PostgreSQL database {dbname} at {host}:{port or '5432'}")
        else:
            logger.info("Using PostgreSQL database")
    else:
        logger.info(
            f"Using database: {db_url.split('://')[0] if '://' in db_url else 'Unknown'}"
        )


def register_error_handlers(app):
    """Register global error handlers"""
    from flask_wtf.csrf import CSRFError

    from app.models import SeasonAlreadyArchivedError
    from app.services.scoring_service import ScoringInProgressError, ScoringRunError
    from app.utils.game_classification import InvalidGameTypeError

    @app.after_request
    def after_request(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"

        if not app.config.get("DEBUG"):
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'"
        )
        return response

    @app.errorhandler(CSRFError)
    def handle_csrf_error(error):
        app.logger.warning(f"CSRF Error: {error.description} - Path: {request.path}")
        return jsonify({"error": "Invalid or missing CSRF token"}), 400

    @app.errorhandler(ScoringRunError)
    def handle_scoring_run_error(error):
        db.session.rollback()
        app.logger.error(f"Scoring run aborted: {error}")
        return jsonify({"error": str(error), **error.progress()}), 500

    @app.errorhandler(ScoringInProgressError)
    def handle_scoring_in_progress(error):
        return jsonify({"error": str(error)}), 409

    @app.errorhandler(InvalidGameTypeError)
    def handle_invalid_game_type(error):
        return jsonify({"error": str(error)}), 400

    @app.errorhandler(SeasonAlreadyArchivedError)
    def handle_already_archived(error):
        return jsonify({"error": str(error)}), 400

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"error": "Resource not found"}), 404

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500

    @app.errorhandler(403)
    def forbidden_error(error):
        return jsonify({"error": "Access forbidden"}), 403

    @app.errorhandler(400)
    def bad_request_error(error):
        app.logger.warning(
            f"400 Bad Request: {str(error)} - Path: {request.path} - Method: {request.method}"
        )
        return jsonify({"error": getattr(error, "description", None) or "Bad request"}), 400

    @app.errorhandler(429)
    def too_many_requests_error(error):
        return jsonify({"error": "Too many requests"}), 429


from app import models  # noqa: F401, E402 - imported for model registration
