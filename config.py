"""Configuration constants and runtime profiles for the app."""
import os


def _normalized_database_url() -> str:
    url = os.environ.get('DATABASE_URL', 'sqlite:///change_control.db')
    if url.startswith('postgres://'):
        return url.replace('postgres://', 'postgresql://', 1)
    return url


class BaseConfig:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-key-change-in-production')
    SQLALCHEMY_DATABASE_URI = _normalized_database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {'pool_pre_ping': True}
    STRUCTURED_LOGGING = os.environ.get('STRUCTURED_LOGGING', '1') == '1'
    SENTRY_DSN = os.environ.get('SENTRY_DSN', '').strip()
    JOB_MAX_WORKERS = int(os.environ.get('JOB_MAX_WORKERS', '2'))
    REPORT_CACHE_TTL_SECONDS = int(os.environ.get('REPORT_CACHE_TTL_SECONDS', '60'))

    # Retention sweep; interval 0 disables the background thread.
    AUDIT_RETENTION_DAYS = int(os.environ.get('AUDIT_RETENTION_DAYS', '365'))
    LOGIN_LOG_RETENTION_DAYS = int(os.environ.get('LOGIN_LOG_RETENTION_DAYS', '90'))
    RETENTION_SWEEP_INTERVAL_SECONDS = int(os.environ.get('RETENTION_SWEEP_INTERVAL_SECONDS', '86400'))

    REQUEST_NUMBER_MAX_RETRIES = int(os.environ.get('REQUEST_NUMBER_MAX_RETRIES', '5'))

    DEFAULT_ADMIN_USERNAME = os.environ.get('DEFAULT_ADMIN_USERNAME', 'admin')
    DEFAULT_ADMIN_PASSWORD = os.environ.get('DEFAULT_ADMIN_PASSWORD', 'admin123')

    SUSPICIOUS_FAILED_LOGINS = int(os.environ.get('SUSPICIOUS_FAILED_LOGINS', '5'))
    SUSPICIOUS_WINDOW_MINUTES = int(os.environ.get('SUSPICIOUS_WINDOW_MINUTES', '15'))


class DevelopmentConfig(BaseConfig):
    ENV_NAME = 'development'


class ProductionConfig(BaseConfig):
    ENV_NAME = 'production'


class TestingConfig(BaseConfig):
    ENV_NAME = 'testing'
    TESTING = True
    STRUCTURED_LOGGING = False
    SENTRY_DSN = ''
    WTF_CSRF_ENABLED = False
    RETENTION_SWEEP_INTERVAL_SECONDS = 0
    REPORT_CACHE_TTL_SECONDS = 1


def get_config():
    env = os.environ.get('FLASK_ENV', '').strip().lower()
    if env == 'production' or os.environ.get('PRODUCTION', '').strip() == '1':
        return ProductionConfig
    return DevelopmentConfig


def validate_runtime(app_config: dict) -> None:
    """Fail fast for production misconfiguration."""
    env_name = app_config.get('ENV_NAME', 'development')
    if env_name != 'production':
        return

    secret = app_config.get('SECRET_KEY') or ''
    weak_values = {'dev-key-change-in-production', 'changeme', 'secret', 'default'}
    if len(secret) < 16 or secret.lower() in weak_values:
        raise RuntimeError('Invalid SECRET_KEY for production. Set a strong random secret.')

    admin_password = app_config.get('DEFAULT_ADMIN_PASSWORD') or ''
    if admin_password == BaseConfig.DEFAULT_ADMIN_PASSWORD or len(admin_password) < 8:
        raise RuntimeError('Set DEFAULT_ADMIN_PASSWORD to a strong value before running in production.')


# Roles seeded on first run.
DEFAULT_ROLES = [
    ('Administrator', 'Full system access'),
    ('Manager', 'Management access'),
    ('Engineer', 'Engineering access'),
    ('Reviewer', 'Review access'),
]
