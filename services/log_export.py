"""
Audit and login log export to CSV and Excel.
"""
from __future__ import annotations

import io
import pandas as pd
from models import AuditLog, LoginLog

AUDIT_COLUMNS = [
    ('id', 'ID'),
    ('timestamp', 'Timestamp'),
    ('entity_type', 'Entity Type'),
    ('entity_id', 'Entity ID'),
    ('entity_name', 'Entity'),
    ('action', 'Action'),
    ('user_name', 'User'),
    ('ip_address', 'IP Address'),
    ('additional_info', 'Details'),
    ('old_values', 'Old Values'),
    ('new_values', 'New Values'),
]

LOGIN_COLUMNS = [
    ('id', 'ID'),
    ('timestamp', 'Timestamp'),
    ('username', 'Username'),
    ('action', 'Action'),
    ('status', 'Status'),
    ('failure_reason', 'Failure Reason'),
    ('ip_address', 'IP Address'),
    ('session_duration_minutes', 'Session Minutes'),
    ('is_security_event', 'Security Event'),
]


def _audit_row(log: AuditLog) -> dict:
    return {
        'id': log.id,
        'timestamp': log.timestamp,
        'entity_type': log.entity_type,
        'entity_id': log.entity_id,
        'entity_name': log.entity_name,
        'action': log.action,
        'user_name': log.user_display,
        'ip_address': log.ip_address,
        'additional_info': log.additional_info,
        'old_values': log.old_values,
        'new_values': log.new_values,
    }


def _login_row(log: LoginLog) -> dict:
    return {
        'id': log.id,
        'timestamp': log.timestamp,
        'username': log.username,
        'action': log.action,
        'status': log.status_display,
        'failure_reason': log.failure_reason,
        'ip_address': log.ip_address,
        'session_duration_minutes': log.session_duration_minutes,
        'is_security_event': bool(log.is_security_event),
    }


def _frame(rows: list[dict], columns: list[tuple]) -> pd.DataFrame:
    df = pd.DataFrame(rows, columns=[key for key, _ in columns])
    return df.rename(columns=dict(columns))


def audit_frame(logs) -> pd.DataFrame:
    return _frame([_audit_row(log) for log in logs], AUDIT_COLUMNS)


def login_frame(logs) -> pd.DataFrame:
    return _frame([_login_row(log) for log in logs], LOGIN_COLUMNS)


def audit_logs_to_csv(logs) -> str:
    return audit_frame(logs).to_csv(index=False)


def logs_to_excel(audit_logs, login_logs=None) -> bytes:
    """Workbook with an Audit Trail sheet and, when given, a Login History sheet."""
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        audit_frame(audit_logs).to_excel(writer, sheet_name='Audit Trail', index=False)
        if login_logs is not None:
            login_frame(login_logs).to_excel(writer, sheet_name='Login History', index=False)
    return buffer.getvalue()
