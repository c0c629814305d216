"""
Change request state machine.

Draft -> Submitted -> Under Review -> Approved | Rejected -> Implemented.
Under Review is optional: Submitted may go straight to Approved or Rejected.
Every status change appends one Approval ledger row in the same transaction
and produces one audit record once committed.

The generic ChangeRequest owns the authoritative status and the ledger.
A specialized form (hardware, software, system plan) mirrors the status
of its ChangeRequest and carries the prepared/reviewed/approved stamps.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from sqlalchemy import func
from database import db
from models import (Approval, ChangeRequest, ChangeStatus, HardwareChangeRequest,
                    SoftwareChangeRequest, SystemChangePlan)
from services import audit
from services.deletion import purge
from services.errors import InvalidTransitionError, ValidationError
from services.locks import change_request_lock
from services.report_cache import invalidate_change_request_caches

logger = logging.getLogger(__name__)

FORM_MODELS = (HardwareChangeRequest, SoftwareChangeRequest, SystemChangePlan)

# Generic and specialized requests share one request-number space.
NUMBER_COLUMNS = (ChangeRequest.request_no,) + tuple(m.request_number for m in FORM_MODELS)


@dataclass(frozen=True)
class Transition:
    operation: str
    sources: frozenset
    target: int
    ledger_action: str
    audit_action: str


TRANSITIONS = {
    'submit': Transition(
        'submit', frozenset({ChangeStatus.DRAFT}),
        ChangeStatus.SUBMITTED, 'Submitted', 'SUBMIT',
    ),
    'review': Transition(
        'review', frozenset({ChangeStatus.SUBMITTED}),
        ChangeStatus.UNDER_REVIEW, 'Under Review', 'REVIEW',
    ),
    'approve': Transition(
        'approve', frozenset({ChangeStatus.SUBMITTED, ChangeStatus.UNDER_REVIEW}),
        ChangeStatus.APPROVED, 'Approved', 'APPROVE',
    ),
    'reject': Transition(
        'reject', frozenset({ChangeStatus.SUBMITTED, ChangeStatus.UNDER_REVIEW}),
        ChangeStatus.REJECTED, 'Rejected', 'REJECT',
    ),
    'implement': Transition(
        'implement', frozenset({ChangeStatus.APPROVED}),
        ChangeStatus.IMPLEMENTED, 'Implemented', 'IMPLEMENT',
    ),
}


def can_transition(operation: str, status_id: int) -> bool:
    return status_id in TRANSITIONS[operation].sources


def allowed_operations(status_id: int) -> list[str]:
    if status_id in ChangeStatus.TERMINAL:
        return []
    return [name for name, t in TRANSITIONS.items() if status_id in t.sources]


def deletable_statuses() -> list[int]:
    """Statuses a UI should offer deletion for. Purge itself ignores status."""
    return [ChangeStatus.DRAFT, ChangeStatus.REJECTED]


def can_purge(actor) -> bool:
    """Purging ignores status, so it is reserved for administrators."""
    return bool(actor and getattr(actor, 'can_purge_change_requests', False))


def next_stage(change_request_id: int) -> int:
    existing = (
        db.session.query(func.count(Approval.id))
        .filter(Approval.change_request_id == change_request_id)
        .scalar()
    )
    return (existing or 0) + 1


def apply_transition(change_request: ChangeRequest, operation: str, actor_id: int,
                     comment: str | None = None, now: datetime | None = None) -> Approval:
    """Move the request and append its ledger row. The caller commits."""
    transition = TRANSITIONS[operation]
    if change_request.status_id not in transition.sources:
        raise InvalidTransitionError(change_request.request_no, change_request.status_name, operation)
    approval = Approval(
        change_request_id=change_request.id,
        stage=next_stage(change_request.id),
        action=transition.ledger_action,
        action_by_id=actor_id,
        action_at=now or datetime.utcnow(),
        comment=comment,
    )
    change_request.status_id = transition.target
    db.session.add(approval)
    return approval


def require_fields(entity, fields, labels=None) -> None:
    """Raise ValidationError for the first blank required field."""
    labels = labels or {}
    for name in fields:
        value = getattr(entity, name, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            label = labels.get(name, name.replace('_', ' ').capitalize())
            raise ValidationError(name, f'{label} is required.')


def require_references(entity, references, labels=None) -> None:
    """Raise ValidationError for the first foreign key naming a missing row.

    `references` maps field name to model; unset fields are skipped.
    """
    labels = labels or {}
    for name, model in references.items():
        value = getattr(entity, name, None)
        if value is None:
            continue
        with db.session.no_autoflush:
            missing = db.session.get(model, value) is None
        if missing:
            label = labels.get(name, name.replace('_', ' ').capitalize())
            raise ValidationError(name, f'{label} {value} does not exist.')


def find_form(change_request_id: int, for_update: bool = False):
    """Specialized form mirrored by the given ChangeRequest, if any."""
    for model in FORM_MODELS:
        query = model.query.filter(model.change_request_id == change_request_id)
        if for_update:
            query = query.with_for_update()
        form = query.first()
        if form is not None:
            return form
    return None


def _stamp(change_request: ChangeRequest, form, operation: str, actor_id: int,
           comment: str | None, now: datetime) -> None:
    change_request.updated_at = now
    if operation == 'review':
        change_request.reviewed_by_id = actor_id
        change_request.reviewed_at = now
        change_request.review_comment = comment
    elif operation == 'reject':
        change_request.review_comment = comment

    if form is None:
        return
    form.status = change_request.status_name
    if operation == 'submit':
        form.prepared_by_user_id = actor_id
        form.prepared_at = now
    elif operation == 'review':
        form.reviewed_by_user_id = actor_id
        form.reviewed_at = now
        form.review_comment = comment
    elif operation == 'approve':
        form.approved_by_user_id = actor_id
        form.approved_at = now
    elif operation == 'reject':
        form.review_comment = comment
        if form.reviewed_by_user_id is None:
            form.reviewed_by_user_id = actor_id
            form.reviewed_at = now


class LifecycleService:
    """Transition machinery shared by the generic and the specialized services."""

    entity_label = 'ChangeRequest'
    deletable_statuses = staticmethod(deletable_statuses)

    def _change_request_id(self, request_id: int) -> int | None:
        raise NotImplementedError

    def _load_for_update(self, request_id: int):
        """Return (subject, change_request, form) locked for update."""
        raise NotImplementedError

    def _transition(self, request_id: int, operation: str, actor_id: int,
                    comment: str | None = None, now: datetime | None = None) -> bool:
        if request_id is None or actor_id is None:
            raise ValueError('request_id and actor_id are required')
        transition = TRANSITIONS[operation]
        change_request_id = self._change_request_id(request_id)
        if change_request_id is None:
            logger.info('%s %s not found; cannot %s', self.entity_label, request_id, operation)
            return False

        now = now or datetime.utcnow()
        with change_request_lock(change_request_id):
            try:
                subject, change_request, form = self._load_for_update(request_id)
                if subject is None or change_request is None:
                    db.session.rollback()
                    logger.info('%s %s not found; cannot %s', self.entity_label, request_id, operation)
                    return False
                before = audit.capture(subject)
                try:
                    approval = apply_transition(change_request, operation, actor_id, comment, now)
                except InvalidTransitionError as exc:
                    db.session.rollback()
                    logger.info('%s', exc)
                    return False
                _stamp(change_request, form, operation, actor_id, comment, now)
                db.session.commit()
            except Exception:
                db.session.rollback()
                logger.exception('Failed to %s %s %s', operation, self.entity_label, request_id)
                raise

        info = f'Stage {approval.stage}: {transition.ledger_action}'
        if comment:
            info = f'{info} - {comment}'
        audit.record_update(before, subject, action=transition.audit_action, info=info)
        invalidate_change_request_caches()
        return True

    def submit_for_approval(self, request_id: int, actor_id: int) -> bool:
        return self._transition(request_id, 'submit', actor_id)

    def review(self, request_id: int, reviewer_id: int, comment: str | None = None) -> bool:
        return self._transition(request_id, 'review', reviewer_id, comment)

    def approve(self, request_id: int, actor_id: int, comment: str | None = None) -> bool:
        return self._transition(request_id, 'approve', actor_id, comment)

    def reject(self, request_id: int, actor_id: int, reason: str) -> bool:
        if not reason or not reason.strip():
            logger.info('Rejection of %s %s refused: a reason is required', self.entity_label, request_id)
            return False
        return self._transition(request_id, 'reject', actor_id, reason.strip())

    def implement(self, request_id: int, actor_id: int) -> bool:
        return self._transition(request_id, 'implement', actor_id)

    def delete(self, request_id: int) -> bool:
        """Purge the request, its mirror and its ledger regardless of status."""
        change_request_id = self._change_request_id(request_id)
        if change_request_id is None:
            return False
        with change_request_lock(change_request_id):
            subject, change_request, form = self._load_for_update(request_id)
            if subject is None:
                db.session.rollback()
                return False
            dependents = [e for e in (form, change_request) if e is not None and e is not subject]
            purge(subject, *dependents)
        invalidate_change_request_caches()
        return True
