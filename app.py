"""
Flask application entry point for the ship change-control service.
"""
import logging
import os
import sqlite3
from flask import Flask, jsonify, request
from flask_login import LoginManager
from flask_wtf.csrf import CSRFError, CSRFProtect
from sqlalchemy import event as sa_event
from sqlalchemy.engine import Engine
from werkzeug.exceptions import HTTPException
from database import db, init_db
import config
from services import bootstrap
from services.background_jobs import configure as configure_jobs
from services.errors import ConflictError, NotFoundError, ValidationError
from services.logging_setup import configure_error_monitoring, configure_logging
from services.retention import start_retention_sweep

logger = logging.getLogger(__name__)

csrf = CSRFProtect()
login_manager = LoginManager()


@sa_event.listens_for(Engine, 'connect')
def _set_sqlite_pragma(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()


def _error(message: str, status: int, **extra):
    payload = {'error': message}
    payload.update(extra)
    return jsonify(payload), status


def register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def handle_validation(exc):
        return _error(exc.message, 400, field=exc.field)

    @app.errorhandler(NotFoundError)
    def handle_not_found(exc):
        return _error(str(exc), 404)

    @app.errorhandler(ConflictError)
    def handle_conflict(exc):
        return _error(str(exc), 409)

    @app.errorhandler(CSRFError)
    def handle_csrf(exc):
        return _error(exc.description, 400)

    @app.errorhandler(HTTPException)
    def handle_http(exc):
        return _error(exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        db.session.rollback()
        logger.exception('Unhandled error on %s %s', request.method, request.path)
        return _error('Internal server error', 500)


def create_app(config_object=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object or config.get_config())
    config.validate_runtime(app.config)
    configure_logging(bool(app.config.get('STRUCTURED_LOGGING', True)))
    configure_error_monitoring(app.config.get('SENTRY_DSN', ''), app.config.get('ENV_NAME'))
    configure_jobs(int(app.config.get('JOB_MAX_WORKERS', 2)))

    init_db(app)

    csrf.init_app(app)
    login_manager.init_app(app)

    from models.user import User

    @login_manager.user_loader
    def load_user(user_id: str):
        if not user_id:
            return None
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return _error('Authentication required', 401)

    from routes.auth import auth_bp
    from routes.change_requests import change_requests_bp, typed_blueprints
    from routes.audit import audit_bp

    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(change_requests_bp, url_prefix='/change-requests')
    for url_prefix, blueprint in typed_blueprints():
        app.register_blueprint(blueprint, url_prefix=url_prefix)
    app.register_blueprint(audit_bp, url_prefix='/audit')

    register_error_handlers(app)

    @app.before_request
    def seed_defaults():
        """Roles and the administrator exist before the first request is served."""
        bootstrap.ensure_default_admin()

    start_retention_sweep(app)
    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    app = create_app()
    app.run(host='0.0.0.0', port=port, debug=False)
