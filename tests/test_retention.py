from datetime import datetime, timedelta
from database import db
from models import AuditLog, LoginLog
from services import background_jobs
from services.retention import SWEEP_ACTION, purge_expired_logs, start_retention_sweep


def test_sweep_removes_expired_rows(ctx):
    now = datetime(2025, 6, 1)
    db.session.add_all([
        AuditLog(entity_type='Ship', action='UPDATE', entity_id='1', timestamp=now - timedelta(days=400)),
        AuditLog(entity_type='Ship', action='UPDATE', entity_id='1', timestamp=now - timedelta(days=10)),
        LoginLog(username='eng', action='LOGIN', is_successful=True, timestamp=now - timedelta(days=100)),
        LoginLog(username='eng', action='LOGIN', is_successful=True, timestamp=now - timedelta(days=5)),
    ])
    db.session.commit()
    # Seeding rows are timestamped with the real clock, well after `now`.
    before = AuditLog.query.count()

    result = purge_expired_logs(now=now)

    assert result['audit_deleted'] == 1
    assert result['login_deleted'] == 1
    assert LoginLog.query.count() == 1
    sweep = AuditLog.query.filter_by(action=SWEEP_ACTION).one()
    assert 'Removed 1 audit rows' in sweep.additional_info
    assert AuditLog.query.count() == before


def test_sweep_disabled_in_testing(app):
    assert start_retention_sweep(app) is False
    assert 'retention-sweep' not in background_jobs.scheduled()


def test_schedule_every_ignores_non_positive_interval():
    assert background_jobs.schedule_every('noop', 0, lambda: None) is False
    assert background_jobs.cancel('noop') is False
