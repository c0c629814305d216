"""
Audit trail writer and read paths.

Writes are best-effort: a failed primary write is retried as a degraded
fallback record, and a failed fallback is logged at error severity. Neither
failure is raised to the business operation that triggered the write.

Call the writers after the business transaction has committed; a failed write
rolls back the session.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import inspect as sa_inspect
from database import db
from models import (AuditLog, ChangeRequest, HardwareChangeRequest, Role, Ship,
                    SoftwareChangeRequest, SystemChangePlan, User)
from services import security_events
from services.auth import SYSTEM_ACTOR, current_actor, request_origin
from services.errors import AuditWriteError

logger = logging.getLogger(__name__)

ERROR_RECOVERY_ACTOR = 'System (Error Recovery)'
UNKNOWN_ENTITY_ID = 'unknown'

NAME_FIELD_PRIORITY = (
    'name', 'full_name', 'title', 'subject', 'description',
    'request_number', 'request_no', 'username',
)
ID_FIELD_PRIORITY = ('id', 'request_number', 'request_no')


@dataclass(frozen=True)
class EntityKind:
    """How one model is identified, named and snapshotted in the trail."""
    entity_type: str
    table_name: str | None = None
    name_fields: tuple = NAME_FIELD_PRIORITY
    excluded_fields: frozenset = frozenset()


@dataclass
class EntitySnapshot:
    entity_type: str
    entity_id: str
    entity_name: str | None
    table_name: str | None = None
    values: dict = field(default_factory=dict)


_registry: dict[type, EntityKind] = {}


def register_entity(model, entity_type: str | None = None, name_fields=None, excluded_fields=()) -> EntityKind:
    kind = EntityKind(
        entity_type=entity_type or model.__name__,
        table_name=getattr(model, '__tablename__', None),
        name_fields=tuple(name_fields) if name_fields else NAME_FIELD_PRIORITY,
        excluded_fields=frozenset(excluded_fields),
    )
    _registry[model] = kind
    return kind


def entity_kind(entity) -> EntityKind:
    for klass in type(entity).__mro__:
        kind = _registry.get(klass)
        if kind is not None:
            return kind
    logger.warning('Auditing unregistered entity type %s', type(entity).__name__)
    return register_entity(type(entity))


def _scalar(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def _entity_id(entity) -> str:
    for name in ID_FIELD_PRIORITY:
        value = getattr(entity, name, None)
        if value not in (None, ''):
            return str(value)
    return UNKNOWN_ENTITY_ID


def _entity_name(entity, kind: EntityKind) -> str | None:
    for name in kind.name_fields:
        value = getattr(entity, name, None)
        if isinstance(value, str) and value.strip():
            return value.strip()[:200]
    return None


def capture(entity) -> EntitySnapshot:
    """Snapshot the scalar columns of a mapped entity. Relationships are never followed."""
    if isinstance(entity, EntitySnapshot):
        return entity
    kind = entity_kind(entity)
    mapper = sa_inspect(type(entity))
    values = {
        attr.key: _scalar(getattr(entity, attr.key))
        for attr in mapper.column_attrs
        if attr.key not in kind.excluded_fields
    }
    return EntitySnapshot(
        entity_type=kind.entity_type,
        entity_id=_entity_id(entity),
        entity_name=_entity_name(entity, kind),
        table_name=kind.table_name,
        values=values,
    )


def _serialize(values) -> str | None:
    if values is None:
        return None
    return json.dumps(values, ensure_ascii=False, sort_keys=True)


def _clip(value: str | None, length: int) -> str | None:
    if value is None:
        return None
    return value[:length]


def _persist(entry: AuditLog) -> None:
    db.session.add(entry)
    db.session.commit()


def record(entity_type: str, action: str, entity_id, entity_name: str | None = None,
           old_values: dict | None = None, new_values: dict | None = None,
           info: str | None = None, actor: User | None = None,
           table_name: str | None = None) -> AuditLog | None:
    """Append one audit row. Returns the stored row, the fallback row, or None."""
    entity_id = str(entity_id) if entity_id not in (None, '') else UNKNOWN_ENTITY_ID
    try:
        actor = actor if actor is not None else current_actor()
        ip_address, user_agent = request_origin()
        entry = AuditLog(
            entity_type=entity_type,
            action=action,
            entity_id=entity_id,
            entity_name=_clip(entity_name, 200),
            table_name=table_name,
            old_values=_serialize(old_values),
            new_values=_serialize(new_values),
            additional_info=_clip(info, 500),
            user_id=actor.id if actor else None,
            user_name=(actor.full_name or actor.username) if actor else SYSTEM_ACTOR,
            ip_address=ip_address,
            user_agent=user_agent,
            timestamp=datetime.utcnow(),
        )
        _persist(entry)
        return entry
    except Exception as exc:
        db.session.rollback()
        logger.warning(
            'Audit write failed for %s:%s %s; writing fallback record',
            entity_type, entity_id, action, exc_info=True,
        )
        return _record_fallback(entity_type, action, entity_id, entity_name, exc)


def _record_fallback(entity_type: str, action: str, entity_id: str,
                     entity_name: str | None, primary: Exception) -> AuditLog | None:
    try:
        entry = AuditLog(
            entity_type=entity_type,
            action=action,
            entity_id=entity_id,
            entity_name=_clip(entity_name, 200),
            additional_info=_clip(f'Audit logging error: {type(primary).__name__}: {primary}', 500),
            user_id=None,
            user_name=ERROR_RECOVERY_ACTOR,
            timestamp=datetime.utcnow(),
        )
        _persist(entry)
        return entry
    except Exception as exc:
        db.session.rollback()
        error = AuditWriteError(entity_type, action, entity_id, primary, exc)
        logger.error('%s', error, exc_info=True)
        return None


def _record_snapshot(snapshot: EntitySnapshot, action: str, old_values, new_values,
                     info: str | None, actor: User | None) -> AuditLog | None:
    return record(
        snapshot.entity_type,
        action,
        snapshot.entity_id,
        entity_name=snapshot.entity_name,
        old_values=old_values,
        new_values=new_values,
        info=info,
        actor=actor,
        table_name=snapshot.table_name,
    )


def _safe_capture(entity, action: str) -> EntitySnapshot:
    try:
        return capture(entity)
    except Exception:
        logger.warning('Could not snapshot %s for audit action %s', type(entity).__name__, action, exc_info=True)
        return EntitySnapshot(
            entity_type=type(entity).__name__,
            entity_id=_entity_id(entity),
            entity_name=None,
        )


def record_create(entity, info: str | None = None, actor: User | None = None) -> AuditLog | None:
    snapshot = _safe_capture(entity, 'CREATE')
    return _record_snapshot(snapshot, 'CREATE', None, snapshot.values, info, actor)


def record_update(before, after, action: str = 'UPDATE', info: str | None = None,
                  actor: User | None = None) -> AuditLog | None:
    """Record a change. `before` may be a snapshot taken before the mutation."""
    old = _safe_capture(before, action)
    new = _safe_capture(after, action)
    return _record_snapshot(new, action, old.values, new.values, info, actor)


def record_delete(entity, info: str | None = None, actor: User | None = None) -> AuditLog | None:
    """Record a deletion. Pass a snapshot when the row is already gone."""
    snapshot = _safe_capture(entity, 'DELETE')
    return _record_snapshot(snapshot, 'DELETE', snapshot.values, None, info, actor)


# ---------------------------------------------------------------------------
# Read paths
# ---------------------------------------------------------------------------

def _includes_security(entity_type: str | None) -> bool:
    return not entity_type or entity_type == security_events.SECURITY_ENTITY_TYPE


def get_filtered(entity_type: str | None = None, action: str | None = None,
                 user_id: int | None = None, start: datetime | None = None,
                 end: datetime | None = None, limit: int | None = None) -> list[AuditLog]:
    """
    Audit rows newest first.

    Projected security events are merged in when no entity type is given or
    the entity type is ``Security``; the remaining filters apply to them too.
    """
    rows = []
    if entity_type != security_events.SECURITY_ENTITY_TYPE:
        query = AuditLog.query
        if entity_type:
            query = query.filter(AuditLog.entity_type == entity_type)
        if action:
            query = query.filter(AuditLog.action == action)
        if user_id is not None:
            query = query.filter(AuditLog.user_id == user_id)
        if start:
            query = query.filter(AuditLog.timestamp >= start)
        if end:
            query = query.filter(AuditLog.timestamp <= end)
        rows = query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).all()

    if _includes_security(entity_type):
        rows.extend(security_events.project_events(action=action, user_id=user_id, start=start, end=end))
        rows.sort(key=lambda row: (row.timestamp, row.id), reverse=True)

    if limit:
        return rows[:limit]
    return rows


def get_all() -> list[AuditLog]:
    return get_filtered()


def get_by_entity_type(entity_type: str) -> list[AuditLog]:
    return get_filtered(entity_type=entity_type)


def get_by_action(action: str) -> list[AuditLog]:
    return get_filtered(action=action)


def get_by_user(user_id: int) -> list[AuditLog]:
    return get_filtered(user_id=user_id)


def get_by_date_range(start: datetime, end: datetime) -> list[AuditLog]:
    return get_filtered(start=start, end=end)


def get_for_entity(entity_type: str, entity_id) -> list[AuditLog]:
    """Stored history of a single entity, newest first."""
    return (
        AuditLog.query
        .filter_by(entity_type=entity_type, entity_id=str(entity_id))
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .all()
    )


def get_distinct_entity_types() -> list[str]:
    stored = {r[0] for r in db.session.query(AuditLog.entity_type).distinct().all() if r[0]}
    stored.add(security_events.SECURITY_ENTITY_TYPE)
    return sorted(stored)


def get_distinct_actions() -> list[str]:
    return [
        r[0] for r in db.session.query(AuditLog.action).distinct().order_by(AuditLog.action).all()
        if r[0]
    ]


register_entity(ChangeRequest, name_fields=('request_no', 'purpose'))
register_entity(HardwareChangeRequest)
register_entity(SoftwareChangeRequest)
register_entity(SystemChangePlan, name_fields=('request_number', 'requester_name'))
register_entity(User, excluded_fields=('password_hash',))
register_entity(Role)
register_entity(Ship, name_fields=('ship_name', 'imo_number'))
