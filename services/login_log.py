"""Authentication event logging and login statistics."""
from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from database import db
from models import LoginLog, User
from services import audit
from services.auth import request_origin

logger = logging.getLogger(__name__)

SUSPICIOUS_HOURLY_FAILURES = 3


def _write(entry: LoginLog) -> LoginLog | None:
    """Best-effort append; a failure is logged and never raised."""
    if entry.ip_address is None and entry.user_agent is None:
        entry.ip_address, entry.user_agent = request_origin()
    try:
        db.session.add(entry)
        db.session.commit()
        return entry
    except SQLAlchemyError:
        db.session.rollback()
        logger.error('Failed to write login log for %s (%s)', entry.username, entry.action, exc_info=True)
        return None


def _recent_failures(username: str, now: datetime) -> int:
    window = int(current_app.config.get('SUSPICIOUS_WINDOW_MINUTES', 15))
    return (
        LoginLog.query
        .filter(
            LoginLog.username == username,
            LoginLog.is_successful.is_(False),
            LoginLog.action == LoginLog.LOGIN_FAILED,
            LoginLog.timestamp >= now - timedelta(minutes=window),
        )
        .count()
    )


def log_login_attempt(username: str, success: bool, user: User | None = None,
                      failure_reason: str | None = None, now: datetime | None = None) -> LoginLog | None:
    now = now or datetime.utcnow()
    entry = LoginLog(
        user_id=user.id if user else None,
        username=username,
        action=LoginLog.LOGIN if success else LoginLog.LOGIN_FAILED,
        is_successful=success,
        failure_reason=None if success else (failure_reason or 'Invalid username or password'),
        timestamp=now,
    )
    if not success:
        threshold = int(current_app.config.get('SUSPICIOUS_FAILED_LOGINS', 5))
        failures = _recent_failures(username, now) + 1
        if failures >= threshold:
            entry.is_security_event = True
            entry.additional_info = f'{failures} failed attempts in a short window'
            logger.warning('Repeated failed logins for %s (%d attempts)', username, failures)
    return _write(entry)


def log_logout(user: User, session_minutes: int | None = None) -> LoginLog | None:
    return _write(LoginLog(
        user_id=user.id,
        username=user.username,
        action=LoginLog.LOGOUT,
        is_successful=True,
        session_duration_minutes=session_minutes,
        timestamp=datetime.utcnow(),
    ))


def log_password_change(user: User, success: bool = True, failure_reason: str | None = None) -> LoginLog | None:
    return _write(LoginLog(
        user_id=user.id,
        username=user.username,
        action=LoginLog.PASSWORD_CHANGED,
        is_successful=success,
        failure_reason=failure_reason,
        is_security_event=not success,
        timestamp=datetime.utcnow(),
    ))


def log_account_locked(user: User, by: User | None = None) -> LoginLog | None:
    return _write(LoginLog(
        user_id=user.id,
        username=user.username,
        action=LoginLog.ACCOUNT_LOCKED,
        is_successful=True,
        is_security_event=True,
        additional_info=f'Locked by {by.username}' if by else None,
        timestamp=datetime.utcnow(),
    ))


def log_account_unlocked(user: User, by: User | None = None) -> LoginLog | None:
    return _write(LoginLog(
        user_id=user.id,
        username=user.username,
        action=LoginLog.ACCOUNT_UNLOCKED,
        is_successful=True,
        additional_info=f'Unlocked by {by.username}' if by else None,
        timestamp=datetime.utcnow(),
    ))


def log_password_reset(user: User, by: str | None = None) -> LoginLog | None:
    """An administrative reset. Always a security event, and a successful one."""
    logger.info('Password reset for %s', user.username)
    return _write(LoginLog(
        user_id=user.id,
        username=user.username,
        action=LoginLog.PASSWORD_RESET,
        is_successful=True,
        is_security_event=True,
        additional_info=f'Reset by {by}' if by else None,
        timestamp=datetime.utcnow(),
    ))


def log_security_event(username: str, description: str, user: User | None = None) -> LoginLog | None:
    return _write(LoginLog(
        user_id=user.id if user else None,
        username=username,
        action=LoginLog.SECURITY_EVENT,
        is_successful=False,
        is_security_event=True,
        additional_info=(description or '')[:500],
        timestamp=datetime.utcnow(),
    ))


def get_all() -> list[LoginLog]:
    return LoginLog.query.order_by(LoginLog.timestamp.desc(), LoginLog.id.desc()).all()


def get_filtered(username: str | None = None, action: str | None = None,
                 success: bool | None = None, security_only: bool = False,
                 start: datetime | None = None, end: datetime | None = None) -> list[LoginLog]:
    query = LoginLog.query
    if username:
        query = query.filter(LoginLog.username.ilike(f'%{username}%'))
    if action:
        query = query.filter(LoginLog.action == action)
    if success is not None:
        query = query.filter(LoginLog.is_successful.is_(success))
    if security_only:
        query = query.filter(LoginLog.is_security_event.is_(True))
    if start:
        query = query.filter(LoginLog.timestamp >= start)
    if end:
        query = query.filter(LoginLog.timestamp <= end)
    return query.order_by(LoginLog.timestamp.desc(), LoginLog.id.desc()).all()


def get_statistics(days: int = 30, now: datetime | None = None) -> dict:
    """Login attempt counts over the trailing window."""
    since = (now or datetime.utcnow()) - timedelta(days=days)
    attempts = LoginLog.query.filter(
        LoginLog.timestamp >= since,
        LoginLog.action.in_([LoginLog.LOGIN, LoginLog.LOGIN_FAILED]),
    )
    total = attempts.count()
    successful = attempts.filter(LoginLog.is_successful.is_(True)).count()
    security_events = LoginLog.query.filter(
        LoginLog.timestamp >= since,
        LoginLog.is_security_event.is_(True),
    ).count()
    return {
        'days': days,
        'total_attempts': total,
        'successful': successful,
        'failed': total - successful,
        'security_events': security_events,
        'success_rate': round(successful * 100.0 / total, 1) if total else 0.0,
    }


def stats_by_action() -> dict:
    rows = db.session.query(LoginLog.action, func.count(LoginLog.id)).group_by(LoginLog.action).all()
    return dict(rows)


def stats_by_user(days: int = 30, now: datetime | None = None) -> dict:
    since = (now or datetime.utcnow()) - timedelta(days=days)
    rows = (
        db.session.query(LoginLog.username, func.count(LoginLog.id))
        .filter(LoginLog.timestamp >= since)
        .group_by(LoginLog.username)
        .all()
    )
    return dict(rows)


def trends_by_day(days: int = 30, now: datetime | None = None) -> dict:
    """Successful logins per calendar day, oldest first."""
    since = (now or datetime.utcnow()) - timedelta(days=days)
    stamps = (
        db.session.query(LoginLog.timestamp)
        .filter(
            LoginLog.timestamp >= since,
            LoginLog.action == LoginLog.LOGIN,
            LoginLog.is_successful.is_(True),
        )
        .all()
    )
    per_day = Counter(stamp.date() for (stamp,) in stamps)
    return dict(sorted(per_day.items()))


def failed_login_count(username: str, hours: int = 1, now: datetime | None = None) -> int:
    since = (now or datetime.utcnow()) - timedelta(hours=hours)
    return (
        LoginLog.query
        .filter(
            LoginLog.username == username,
            LoginLog.is_successful.is_(False),
            LoginLog.timestamp >= since,
        )
        .count()
    )


def top_failed_usernames(count: int = 10, hours: int = 24, now: datetime | None = None) -> list[str]:
    since = (now or datetime.utcnow()) - timedelta(hours=hours)
    failures = func.count(LoginLog.id)
    rows = (
        db.session.query(LoginLog.username, failures)
        .filter(LoginLog.is_successful.is_(False), LoginLog.timestamp >= since)
        .group_by(LoginLog.username)
        .order_by(failures.desc(), LoginLog.username.asc())
        .limit(count)
        .all()
    )
    return [username for username, _ in rows]


def unique_ip_addresses(username: str, days: int = 30, successful_only: bool = False,
                        now: datetime | None = None) -> list[str]:
    since = (now or datetime.utcnow()) - timedelta(days=days)
    query = db.session.query(LoginLog.ip_address).filter(
        LoginLog.username == username,
        LoginLog.timestamp >= since,
        LoginLog.ip_address.isnot(None),
        LoginLog.ip_address != '',
    )
    if successful_only:
        query = query.filter(LoginLog.is_successful.is_(True))
    return sorted(ip for (ip,) in query.distinct().all())


def is_login_suspicious(username: str, ip_address: str | None, now: datetime | None = None) -> bool:
    """Too many failures in the last hour, or an address never seen on a successful login."""
    if failed_login_count(username, hours=1, now=now) > SUSPICIOUS_HOURLY_FAILURES:
        return True
    return ip_address not in unique_ip_addresses(username, days=30, successful_only=True, now=now)


def last_successful_login(user_id: int) -> datetime | None:
    return (
        db.session.query(LoginLog.timestamp)
        .filter(
            LoginLog.user_id == user_id,
            LoginLog.action == LoginLog.LOGIN,
            LoginLog.is_successful.is_(True),
        )
        .order_by(LoginLog.timestamp.desc())
        .limit(1)
        .scalar()
    )


def last_failed_login(username: str) -> datetime | None:
    return (
        db.session.query(LoginLog.timestamp)
        .filter(LoginLog.username == username, LoginLog.is_successful.is_(False))
        .order_by(LoginLog.timestamp.desc())
        .limit(1)
        .scalar()
    )


def delete(log_id: int) -> bool:
    """Remove a single login log row; the removal itself is audited."""
    entry = db.session.get(LoginLog, log_id)
    if entry is None:
        return False
    username, action = entry.username, entry.action
    db.session.delete(entry)
    db.session.commit()
    audit.record('LoginLog', 'DELETE', log_id, entity_name=username, info=f'Removed {action} entry',
                 table_name=LoginLog.__tablename__)
    return True
