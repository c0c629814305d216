"""
Hardware, software and system-plan request services.

Each form is created together with a mirror ChangeRequest carrying the same
request number; the mirror holds the authoritative status and the approval
ledger, and the form copies the status name after every transition.
"""
from __future__ import annotations

import logging
from datetime import datetime
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from database import db
from models import (Approval, ChangeRequest, ChangeStatus, ChangeType, HardwareChangeRequest,
                    SoftwareChangeRequest, SystemChangePlan, User)
from services import audit, report_cache
from services.change_lifecycle import NUMBER_COLUMNS, LifecycleService, require_fields, require_references
from services.errors import ConflictError, NotFoundError, ValidationError
from services.request_numbers import insert_with_request_number, number_taken

logger = logging.getLogger(__name__)

COMMON_EDITABLE_FIELDS = (
    'department', 'position_title', 'requester_name',
    'installed_cbs', 'installed_component', 'reason',
    'work_description', 'security_review_comment',
)


class TypedRequestService(LifecycleService):
    """Lifecycle and CRUD for one specialized request model."""

    model = None
    REQUIRED_FIELDS = ('requester_name', 'requester_user_id')
    FIELD_LABELS = {'requester_name': 'Requester name', 'requester_user_id': 'Requester'}
    REFERENCES = {'requester_user_id': User}
    EXTRA_EDITABLE_FIELDS = ()

    @property
    def entity_label(self):
        return self.model.__name__

    @property
    def editable_fields(self) -> tuple:
        change_fields = tuple(name for pair in self.model.CHANGE_FIELDS for name in pair)
        return COMMON_EDITABLE_FIELDS + change_fields + self.EXTRA_EDITABLE_FIELDS

    def _change_request_id(self, request_id):
        row = db.session.query(self.model.change_request_id).filter(self.model.id == request_id).first()
        if row is None:
            return None
        if row[0] is None:
            logger.warning('%s %s has no linked change request', self.entity_label, request_id)
        return row[0]

    def _load_for_update(self, request_id):
        form = self.model.query.filter(self.model.id == request_id).with_for_update().first()
        if form is None or form.change_request_id is None:
            return form, None, form
        change_request = (
            ChangeRequest.query
            .filter(ChangeRequest.id == form.change_request_id)
            .with_for_update()
            .first()
        )
        return form, change_request, form

    @staticmethod
    def _mirror_purpose(form) -> str:
        text = form.reason or form.work_description or ChangeType.name_of(form.CHANGE_TYPE)
        return text[:500]

    def create(self, form, now: datetime | None = None):
        """Persist a Draft form with its mirror ChangeRequest in one transaction."""
        if form is None:
            raise ValueError('form is required')
        require_fields(form, self.REQUIRED_FIELDS, self.FIELD_LABELS)
        require_references(form, self.REFERENCES, self.FIELD_LABELS)
        now = now or datetime.utcnow()
        draft = ChangeStatus.name_of(ChangeStatus.DRAFT)
        form.status = draft
        form.created_date = now

        def build(number):
            mirror = ChangeRequest(
                request_no=number,
                request_type_id=form.CHANGE_TYPE,
                status_id=ChangeStatus.DRAFT,
                requested_by_id=form.requester_user_id,
                requested_at=now,
                purpose=self._mirror_purpose(form),
                description=form.work_description,
                created_at=now,
            )
            form.request_number = number
            form.change_request = mirror
            db.session.add(mirror)
            db.session.add(form)
            return form

        try:
            if form.request_number:
                build(form.request_number)
                db.session.commit()
            else:
                insert_with_request_number(build, ChangeType.prefix_for(form.CHANGE_TYPE), now, NUMBER_COLUMNS)
        except IntegrityError as exc:
            db.session.rollback()
            if form.request_number and number_taken(form.request_number, NUMBER_COLUMNS):
                raise ConflictError(f'Request number {form.request_number} is already in use') from exc
            logger.exception('Failed to create %s %s', self.entity_label, form.request_number)
            raise
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception('Failed to create %s %s', self.entity_label, form.request_number)
            raise

        logger.info('Created %s %s', self.entity_label, form.request_number)
        audit.record_create(form, info=f'Linked change request {form.change_request_id}')
        report_cache.invalidate_change_request_caches()
        return form

    def update(self, request_id: int, **fields):
        form = db.session.get(self.model, request_id)
        if form is None:
            raise NotFoundError(self.entity_label, request_id)
        unknown = set(fields) - set(self.editable_fields)
        if unknown:
            raise ValidationError(sorted(unknown)[0], 'Field cannot be edited.')

        before = audit.capture(form)
        for name, value in fields.items():
            setattr(form, name, value)
        try:
            require_fields(form, self.REQUIRED_FIELDS, self.FIELD_LABELS)
        except ValidationError:
            db.session.rollback()
            raise

        mirror = form.change_request
        if mirror is not None:
            mirror.purpose = self._mirror_purpose(form)
            mirror.description = form.work_description
            mirror.updated_at = datetime.utcnow()
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception('Failed to update %s %s', self.entity_label, request_id)
            raise

        audit.record_update(before, form)
        report_cache.invalidate_change_request_caches()
        return form

    # Read paths

    def get(self, request_id: int):
        return db.session.get(self.model, request_id)

    def get_by_request_number(self, request_number: str):
        return self.model.query.filter_by(request_number=request_number).first()

    def get_all(self) -> list:
        return self.model.query.order_by(self.model.created_date.desc(), self.model.id.desc()).all()

    def get_for_user(self, user: User) -> list:
        if user.can_view_all_requests:
            return self.get_all()
        return (
            self.model.query
            .filter(self.model.requester_user_id == user.id)
            .order_by(self.model.created_date.desc(), self.model.id.desc())
            .all()
        )

    def get_approvals(self, request_id: int) -> list[Approval]:
        change_request_id = self._change_request_id(request_id)
        if change_request_id is None:
            return []
        return (
            Approval.query
            .filter(Approval.change_request_id == change_request_id)
            .order_by(Approval.stage.asc())
            .all()
        )


class HardwareRequestService(TypedRequestService):
    model = HardwareChangeRequest


class SoftwareRequestService(TypedRequestService):
    model = SoftwareChangeRequest


class SystemPlanService(TypedRequestService):
    model = SystemChangePlan
    EXTRA_EDITABLE_FIELDS = ('plan_details',)
