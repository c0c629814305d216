"""
Generic change request service.

Creation, editing and read paths for ChangeRequest. Lifecycle transitions and
deletion come from LifecycleService.
"""
from __future__ import annotations

import logging
from datetime import datetime
from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from database import db
from models import Approval, ChangeRequest, ChangeStatus, ChangeType, Ship, User
from services import audit, report_cache
from services.change_lifecycle import (NUMBER_COLUMNS, LifecycleService, find_form, require_fields,
                                       require_references)
from services.errors import ConflictError, NotFoundError, ValidationError
from services.request_numbers import insert_with_request_number, number_taken

logger = logging.getLogger(__name__)

STATISTICS_KEY = report_cache.CHANGE_REQUEST_PREFIX + 'statistics'


class ChangeRequestService(LifecycleService):
    """Service for the generic change request and its approval ledger."""

    entity_label = 'ChangeRequest'
    REQUIRED_FIELDS = ('purpose', 'requested_by_id')
    EDITABLE_FIELDS = ('ship_id', 'purpose', 'description')
    REFERENCES = {'ship_id': Ship, 'requested_by_id': User}
    FIELD_LABELS = {'requested_by_id': 'Requester', 'ship_id': 'Ship'}

    def _change_request_id(self, request_id):
        return db.session.query(ChangeRequest.id).filter(ChangeRequest.id == request_id).scalar()

    def _load_for_update(self, request_id):
        change_request = (
            ChangeRequest.query
            .filter(ChangeRequest.id == request_id)
            .with_for_update()
            .first()
        )
        if change_request is None:
            return None, None, None
        return change_request, change_request, find_form(change_request.id, for_update=True)

    def create(self, change_request: ChangeRequest, now: datetime | None = None) -> ChangeRequest:
        """Persist a new Draft request, numbering it unless a number was supplied."""
        if change_request is None:
            raise ValueError('change_request is required')
        require_fields(change_request, self.REQUIRED_FIELDS, self.FIELD_LABELS)
        require_references(change_request, self.REFERENCES, self.FIELD_LABELS)
        now = now or datetime.utcnow()
        change_request.status_id = ChangeStatus.DRAFT
        change_request.requested_at = change_request.requested_at or now
        change_request.created_at = now

        def build(number):
            change_request.request_no = number
            db.session.add(change_request)
            return change_request

        try:
            if change_request.request_no:
                build(change_request.request_no)
                db.session.commit()
            else:
                insert_with_request_number(
                    build, ChangeType.prefix_for(change_request.request_type_id), now, NUMBER_COLUMNS,
                )
        except IntegrityError as exc:
            db.session.rollback()
            if change_request.request_no and number_taken(change_request.request_no, NUMBER_COLUMNS):
                raise ConflictError(f'Request number {change_request.request_no} is already in use') from exc
            logger.exception('Failed to create change request %s', change_request.request_no)
            raise
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception('Failed to create change request %s', change_request.request_no)
            raise

        logger.info('Created change request %s', change_request.request_no)
        audit.record_create(change_request)
        report_cache.invalidate_change_request_caches()
        return change_request

    def update(self, request_id: int, **fields) -> ChangeRequest:
        change_request = db.session.get(ChangeRequest, request_id)
        if change_request is None:
            raise NotFoundError('ChangeRequest', request_id)
        unknown = set(fields) - set(self.EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(sorted(unknown)[0], 'Field cannot be edited.')

        before = audit.capture(change_request)
        for name, value in fields.items():
            setattr(change_request, name, value)
        try:
            require_fields(change_request, ('purpose',))
            require_references(change_request, self.REFERENCES, self.FIELD_LABELS)
        except ValidationError:
            db.session.rollback()
            raise
        change_request.updated_at = datetime.utcnow()
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception('Failed to update change request %s', request_id)
            raise

        audit.record_update(before, change_request)
        report_cache.invalidate_change_request_caches()
        return change_request

    # Read paths

    def get(self, request_id: int) -> ChangeRequest | None:
        return db.session.get(ChangeRequest, request_id)

    def get_by_request_no(self, request_no: str) -> ChangeRequest | None:
        return ChangeRequest.query.filter_by(request_no=request_no).first()

    def get_all(self) -> list[ChangeRequest]:
        return ChangeRequest.query.order_by(ChangeRequest.requested_at.desc(), ChangeRequest.id.desc()).all()

    def get_for_user(self, user: User) -> list[ChangeRequest]:
        if user.can_view_all_requests:
            return self.get_all()
        return (
            ChangeRequest.query
            .filter(ChangeRequest.requested_by_id == user.id)
            .order_by(ChangeRequest.requested_at.desc(), ChangeRequest.id.desc())
            .all()
        )

    def get_pending_approvals(self) -> list[ChangeRequest]:
        return (
            ChangeRequest.query
            .filter(ChangeRequest.status_id.in_([ChangeStatus.SUBMITTED, ChangeStatus.UNDER_REVIEW]))
            .order_by(ChangeRequest.requested_at.asc(), ChangeRequest.id.asc())
            .all()
        )

    def get_approvals(self, request_id: int) -> list[Approval]:
        return (
            Approval.query
            .filter(Approval.change_request_id == request_id)
            .order_by(Approval.stage.asc())
            .all()
        )

    def get_statistics(self) -> dict:
        ttl = int(current_app.config.get('REPORT_CACHE_TTL_SECONDS', 300))
        return report_cache.get_or_compute(STATISTICS_KEY, ttl, self._compute_statistics)

    @staticmethod
    def _compute_statistics() -> dict:
        counts = dict(
            db.session.query(ChangeRequest.status_id, func.count(ChangeRequest.id))
            .group_by(ChangeRequest.status_id)
            .all()
        )
        by_status = {name: counts.get(status_id, 0) for status_id, name in ChangeStatus.NAMES.items()}
        return {
            'total': sum(counts.values()),
            'by_status': by_status,
            'pending_approvals': counts.get(ChangeStatus.SUBMITTED, 0) + counts.get(ChangeStatus.UNDER_REVIEW, 0),
        }
