"""
First-run seeding of roles and the default administrator.

Runs at most once per process. The fast path skips the lock entirely once
seeding has completed; the flag is re-checked after acquiring the lock.
"""
from __future__ import annotations

import logging
import threading
from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from config import DEFAULT_ROLES
from database import db
from models import Role, User
from services import audit

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_done = False


def reset() -> None:
    """Forget that seeding ran. Tests use this between app instances."""
    global _done
    with _lock:
        _done = False


def ensure_default_admin() -> bool:
    """Seed roles and the administrator if missing. Returns True when anything was created."""
    global _done
    if _done:
        return False
    with _lock:
        if _done:
            return False
        try:
            created = _seed()
        except IntegrityError:
            # Another process seeded concurrently.
            db.session.rollback()
            logger.info('Default roles already seeded by another worker')
            created = False
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception('Failed to seed default roles and administrator')
            raise
        _done = True
        return created


def _seed() -> bool:
    created_roles = []
    for name, description in DEFAULT_ROLES:
        if Role.query.filter_by(name=name).first() is None:
            role = Role(name=name, description=description)
            db.session.add(role)
            created_roles.append(role)
    db.session.flush()

    admin_role = Role.query.filter_by(name=Role.ADMINISTRATOR).first()
    username = current_app.config.get('DEFAULT_ADMIN_USERNAME', 'admin')
    admin = None
    has_admin = User.query.filter_by(role_id=admin_role.id).first() is not None
    if not has_admin and User.query.filter_by(username=username).first() is None:
        admin = User(
            username=username,
            full_name='System Administrator',
            email='',
            role_id=admin_role.id,
            is_active_user=True,
        )
        admin.set_password(current_app.config.get('DEFAULT_ADMIN_PASSWORD', 'admin123'))
        db.session.add(admin)
    db.session.commit()

    for role in created_roles:
        audit.record_create(role, info='Seeded on first run')
    if admin is not None:
        logger.warning('Created default administrator %r; change its password', username)
        audit.record_create(admin, info='Seeded on first run')
    return bool(created_roles or admin)
