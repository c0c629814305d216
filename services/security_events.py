"""
Read-side projection of authentication events into the audit view.

Projected rows are transient AuditLog instances under the ``Security``
entity type. They are never added to the session.
"""
from __future__ import annotations

from datetime import datetime
from sqlalchemy import func
from database import db
from models import AuditLog, LoginLog

SECURITY_ENTITY_TYPE = 'Security'
SECURITY_ID_OFFSET = 1_000_000


def status_label(log: LoginLog) -> str:
    return 'SUCCESS' if log.is_successful else 'FAILED'


def describe(log: LoginLog) -> str | None:
    """Failure reason, address and session duration, in that order."""
    parts = []
    if log.failure_reason:
        parts.append(f'Reason: {log.failure_reason}')
    if log.ip_address:
        parts.append(f'IP: {log.ip_address}')
    if log.session_duration_minutes is not None:
        parts.append(f'Duration: {log.session_duration_minutes} minutes')
    return ', '.join(parts) or None


def id_offset() -> int:
    """Offset for projected ids, kept above every stored audit id."""
    max_real = db.session.query(func.max(AuditLog.id)).scalar() or 0
    if max_real < SECURITY_ID_OFFSET:
        return SECURITY_ID_OFFSET
    return max_real + 1


def project(log: LoginLog, offset: int = SECURITY_ID_OFFSET) -> AuditLog:
    return AuditLog(
        id=offset + log.id,
        entity_type=SECURITY_ENTITY_TYPE,
        action=f'{log.action} - {status_label(log)}',
        entity_id=str(log.user_id) if log.user_id is not None else log.username,
        entity_name=log.username,
        table_name=LoginLog.__tablename__,
        timestamp=log.timestamp,
        user_id=log.user_id,
        user_name=log.username,
        ip_address=log.ip_address,
        user_agent=log.user_agent,
        additional_info=describe(log),
    )


def _matches_action(projected: AuditLog, raw_action: str, action: str | None) -> bool:
    if not action:
        return True
    return action in (projected.action, raw_action)


def project_events(action: str | None = None, user_id: int | None = None,
                   start: datetime | None = None, end: datetime | None = None) -> list[AuditLog]:
    """Project login log rows matching the filters, newest first."""
    query = LoginLog.query
    if user_id is not None:
        query = query.filter(LoginLog.user_id == user_id)
    if start:
        query = query.filter(LoginLog.timestamp >= start)
    if end:
        query = query.filter(LoginLog.timestamp <= end)
    logs = query.order_by(LoginLog.timestamp.desc(), LoginLog.id.desc()).all()

    offset = id_offset()
    projected = []
    for log in logs:
        row = project(log, offset)
        if _matches_action(row, log.action, action):
            projected.append(row)
    return projected
