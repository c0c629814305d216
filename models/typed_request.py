"""
Hardware, software and system-plan change request forms.

Each form is mirrored by a generic ChangeRequest (same request number) that
carries the approval ledger.
"""
from datetime import datetime
from sqlalchemy.orm import declared_attr
from database import db
from models.change_request import ChangeStatus, ChangeType


class TypedRequestMixin:
    """Columns shared by every specialized request form."""

    CHANGE_TYPE = None
    # (before, after) column pairs describing the change itself.
    CHANGE_FIELDS = ()

    id = db.Column(db.Integer, primary_key=True)
    request_number = db.Column(db.String(50), nullable=False, unique=True)
    created_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    department = db.Column(db.String(200), nullable=True)
    position_title = db.Column(db.String(200), nullable=True)
    requester_name = db.Column(db.String(200), nullable=True)

    installed_cbs = db.Column(db.String(500), nullable=True)
    installed_component = db.Column(db.String(500), nullable=True)
    reason = db.Column(db.String(1000), nullable=True)

    work_description = db.Column(db.String(2000), nullable=True)
    security_review_comment = db.Column(db.String(2000), nullable=True)
    review_comment = db.Column(db.String(1000), nullable=True)

    prepared_at = db.Column(db.DateTime, nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)

    status = db.Column(db.String(50), nullable=False, default=ChangeStatus.NAMES[ChangeStatus.DRAFT])

    @declared_attr
    def requester_user_id(cls):
        return db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    @declared_attr
    def prepared_by_user_id(cls):
        return db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    @declared_attr
    def reviewed_by_user_id(cls):
        return db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    @declared_attr
    def approved_by_user_id(cls):
        return db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    @declared_attr
    def change_request_id(cls):
        return db.Column(
            db.Integer, db.ForeignKey('change_requests.id', ondelete='SET NULL'), nullable=True
        )

    @declared_attr
    def change_request(cls):
        return db.relationship('ChangeRequest')

    def __repr__(self):
        return f'<{type(self).__name__} {self.request_number} ({self.status})>'

    @property
    def status_id(self):
        return ChangeStatus.id_of(self.status)

    def change_summary(self) -> str:
        parts = []
        for before, after in self.CHANGE_FIELDS:
            old, new = getattr(self, before), getattr(self, after)
            if old or new:
                parts.append(f'{old or "-"} -> {new or "-"}')
        return '; '.join(parts)

    def to_dict(self) -> dict:
        payload = {
            'id': self.id,
            'request_number': self.request_number,
            'request_type': ChangeType.name_of(self.CHANGE_TYPE),
            'created_date': self.created_date.isoformat() if self.created_date else None,
            'requester_user_id': self.requester_user_id,
            'department': self.department,
            'position_title': self.position_title,
            'requester_name': self.requester_name,
            'installed_cbs': self.installed_cbs,
            'installed_component': self.installed_component,
            'reason': self.reason,
            'work_description': self.work_description,
            'security_review_comment': self.security_review_comment,
            'review_comment': self.review_comment,
            'prepared_by_user_id': self.prepared_by_user_id,
            'reviewed_by_user_id': self.reviewed_by_user_id,
            'approved_by_user_id': self.approved_by_user_id,
            'prepared_at': self.prepared_at.isoformat() if self.prepared_at else None,
            'reviewed_at': self.reviewed_at.isoformat() if self.reviewed_at else None,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'status': self.status,
            'change_request_id': self.change_request_id,
        }
        for before, after in self.CHANGE_FIELDS:
            payload[before] = getattr(self, before)
            payload[after] = getattr(self, after)
        return payload


class HardwareChangeRequest(TypedRequestMixin, db.Model):
    """Replacement or modification of installed hardware."""

    __tablename__ = 'hardware_change_requests'

    CHANGE_TYPE = ChangeType.HARDWARE
    CHANGE_FIELDS = (
        ('before_hw_manufacturer_model', 'after_hw_manufacturer_model'),
        ('before_hw_name', 'after_hw_name'),
        ('before_hw_os', 'after_hw_os'),
    )

    before_hw_manufacturer_model = db.Column(db.String(255), nullable=True)
    before_hw_name = db.Column(db.String(255), nullable=True)
    before_hw_os = db.Column(db.String(255), nullable=True)
    after_hw_manufacturer_model = db.Column(db.String(255), nullable=True)
    after_hw_name = db.Column(db.String(255), nullable=True)
    after_hw_os = db.Column(db.String(255), nullable=True)


class SoftwareChangeRequest(TypedRequestMixin, db.Model):
    """Software update or configuration change."""

    __tablename__ = 'software_change_requests'

    CHANGE_TYPE = ChangeType.SOFTWARE
    CHANGE_FIELDS = (
        ('before_sw_manufacturer', 'after_sw_manufacturer'),
        ('before_sw_name', 'after_sw_name'),
        ('before_sw_version', 'after_sw_version'),
    )

    before_sw_manufacturer = db.Column(db.String(200), nullable=True)
    before_sw_name = db.Column(db.String(200), nullable=True)
    before_sw_version = db.Column(db.String(50), nullable=True)
    after_sw_manufacturer = db.Column(db.String(200), nullable=True)
    after_sw_name = db.Column(db.String(200), nullable=True)
    after_sw_version = db.Column(db.String(50), nullable=True)


class SystemChangePlan(TypedRequestMixin, db.Model):
    """System planning and design change."""

    __tablename__ = 'system_change_plans'

    CHANGE_TYPE = ChangeType.SYSTEM_PLAN
    CHANGE_FIELDS = (
        ('before_manufacturer_model', 'after_manufacturer_model'),
        ('before_hw_sw_name', 'after_hw_sw_name'),
        ('before_version', 'after_version'),
    )

    before_manufacturer_model = db.Column(db.String(200), nullable=True)
    before_hw_sw_name = db.Column(db.String(200), nullable=True)
    before_version = db.Column(db.String(100), nullable=True)
    after_manufacturer_model = db.Column(db.String(200), nullable=True)
    after_hw_sw_name = db.Column(db.String(200), nullable=True)
    after_version = db.Column(db.String(100), nullable=True)
    plan_details = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload['plan_details'] = self.plan_details
        return payload
