"""
Deletion strategies.

Reference data (ships, users) is deactivated so existing requests keep their
links. Change requests and their ledgers are purged outright, which is an
administrative override and is audited with the pre-deletion snapshot.
"""
from __future__ import annotations

import logging
from datetime import datetime
from sqlalchemy.exc import SQLAlchemyError
from database import db
from models import Ship, User
from services import audit

logger = logging.getLogger(__name__)

# Soft-delete flag per model.
ACTIVE_FLAGS = {
    Ship: 'is_active',
    User: 'is_active_user',
}


def _active_flag(entity) -> str:
    for klass in type(entity).__mro__:
        if klass in ACTIVE_FLAGS:
            return ACTIVE_FLAGS[klass]
    raise TypeError(f'{type(entity).__name__} does not support deactivation')


def _set_active(entity, active: bool, info: str | None) -> bool:
    flag = _active_flag(entity)
    if bool(getattr(entity, flag)) == active:
        return False
    before = audit.capture(entity)
    setattr(entity, flag, active)
    if hasattr(entity, 'updated_at'):
        entity.updated_at = datetime.utcnow()
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception('Failed to %s %r', 'activate' if active else 'deactivate', entity)
        raise
    audit.record_update(before, entity, action='ACTIVATE' if active else 'DEACTIVATE', info=info)
    return True


def deactivate(entity, info: str | None = None) -> bool:
    """Hide the entity from active lists. Returns False when already inactive."""
    return _set_active(entity, False, info)


def reactivate(entity, info: str | None = None) -> bool:
    return _set_active(entity, True, info)


def purge(entity, *dependents, info: str | None = None) -> None:
    """
    Hard-delete `entity` with rows that only exist for it, in one transaction.

    Only `entity` is audited; the dependents are named in the record's info.
    """
    snapshot = audit.capture(entity)
    dependent_names = [audit.capture(d).entity_type for d in dependents]
    try:
        for dependent in dependents:
            db.session.delete(dependent)
        db.session.delete(entity)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception('Failed to purge %s %s', snapshot.entity_type, snapshot.entity_id)
        raise
    if dependent_names and not info:
        info = 'Purged together with ' + ', '.join(dependent_names)
    audit.record_delete(snapshot, info=info)
