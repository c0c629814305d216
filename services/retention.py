"""Retention sweep for audit and login log rows."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from database import db
from models import AuditLog, LoginLog
from services import audit, background_jobs

logger = logging.getLogger(__name__)

SWEEP_LABEL = 'retention-sweep'
SWEEP_ACTION = 'RETENTION_SWEEP'


def purge_expired_logs(now: datetime | None = None, audit_days: int | None = None,
                       login_days: int | None = None) -> dict:
    """Delete rows older than the configured windows and record the sweep."""
    now = now or datetime.utcnow()
    config = current_app.config
    audit_days = audit_days if audit_days is not None else int(config.get('AUDIT_RETENTION_DAYS', 365))
    login_days = login_days if login_days is not None else int(config.get('LOGIN_LOG_RETENTION_DAYS', 90))
    audit_cutoff = now - timedelta(days=audit_days)
    login_cutoff = now - timedelta(days=login_days)

    try:
        audit_deleted = (
            AuditLog.query
            .filter(AuditLog.timestamp < audit_cutoff)
            .delete(synchronize_session=False)
        )
        login_deleted = (
            LoginLog.query
            .filter(LoginLog.timestamp < login_cutoff)
            .delete(synchronize_session=False)
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception('Retention sweep failed')
        raise

    result = {
        'audit_deleted': audit_deleted,
        'login_deleted': login_deleted,
        'audit_cutoff': audit_cutoff.isoformat(),
        'login_cutoff': login_cutoff.isoformat(),
    }
    logger.info('Retention sweep removed %d audit and %d login rows', audit_deleted, login_deleted)
    audit.record(
        'AuditLog', SWEEP_ACTION, 'retention',
        entity_name='Retention sweep',
        info=f'Removed {audit_deleted} audit rows before {audit_cutoff:%Y-%m-%d} '
             f'and {login_deleted} login rows before {login_cutoff:%Y-%m-%d}',
        table_name=AuditLog.__tablename__,
    )
    return result


def run_in_app(app) -> dict:
    with app.app_context():
        try:
            return purge_expired_logs()
        finally:
            db.session.remove()


def start_retention_sweep(app) -> bool:
    interval = int(app.config.get('RETENTION_SWEEP_INTERVAL_SECONDS', 0))
    return background_jobs.schedule_every(SWEEP_LABEL, interval, run_in_app, app)


def submit_sweep(app) -> str:
    """Queue a one-off sweep and return its job id."""
    return background_jobs.submit(SWEEP_LABEL, run_in_app, app)
