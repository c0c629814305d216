"""
Generic change request model and its approval ledger.
"""
from datetime import datetime
from database import db


class ChangeStatus:
    """Lifecycle states. Ids are stable and persisted."""

    DRAFT = 1
    SUBMITTED = 2
    UNDER_REVIEW = 3
    APPROVED = 4
    REJECTED = 5
    IMPLEMENTED = 6

    NAMES = {
        DRAFT: 'Draft',
        SUBMITTED: 'Submitted',
        UNDER_REVIEW: 'Under Review',
        APPROVED: 'Approved',
        REJECTED: 'Rejected',
        IMPLEMENTED: 'Implemented',
    }
    IDS = {name: status_id for status_id, name in NAMES.items()}

    TERMINAL = frozenset({REJECTED, IMPLEMENTED})

    @classmethod
    def name_of(cls, status_id) -> str:
        return cls.NAMES.get(status_id, 'Unknown')

    @classmethod
    def id_of(cls, name: str):
        return cls.IDS.get(name)


class ChangeType:
    """Request kinds and the prefix each uses for its request numbers."""

    HARDWARE = 1
    SOFTWARE = 2
    SYSTEM_PLAN = 3
    SECURITY_REVIEW = 4
    SYSTEM = 5

    NAMES = {
        HARDWARE: 'Hardware Change',
        SOFTWARE: 'Software Change',
        SYSTEM_PLAN: 'System Plan',
        SECURITY_REVIEW: 'Security Review',
        SYSTEM: 'System Change',
    }
    PREFIXES = {
        HARDWARE: 'HW',
        SOFTWARE: 'SW',
        SYSTEM_PLAN: 'SP',
        SECURITY_REVIEW: 'SER',
        SYSTEM: 'SYS',
    }
    GENERIC_PREFIX = 'CR'

    @classmethod
    def prefix_for(cls, type_id) -> str:
        return cls.PREFIXES.get(type_id, cls.GENERIC_PREFIX)

    @classmethod
    def name_of(cls, type_id) -> str:
        return cls.NAMES.get(type_id, 'Change Request')


class ChangeRequest(db.Model):
    """A formal change request tracked through review to implementation."""

    __tablename__ = 'change_requests'
    __table_args__ = (
        db.Index('ix_change_requests_status', 'status_id'),
        db.Index('ix_change_requests_requested_by', 'requested_by_id'),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_no = db.Column(db.String(50), nullable=False, unique=True)

    ship_id = db.Column(db.Integer, db.ForeignKey('ships.id'), nullable=True)
    request_type_id = db.Column(db.Integer, nullable=True)
    status_id = db.Column(db.Integer, nullable=False, default=ChangeStatus.DRAFT)

    requested_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    requested_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    purpose = db.Column(db.String(500), nullable=False)
    description = db.Column(db.String(2000), nullable=True)

    reviewed_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    review_comment = db.Column(db.String(1000), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=True)

    ship = db.relationship('Ship', back_populates='change_requests')
    requested_by = db.relationship('User', foreign_keys=[requested_by_id])
    reviewed_by = db.relationship('User', foreign_keys=[reviewed_by_id])
    approvals = db.relationship(
        'Approval',
        back_populates='change_request',
        cascade='all, delete-orphan',
        order_by='Approval.stage',
        lazy='select',
    )

    def __repr__(self):
        return f'<ChangeRequest {self.request_no} ({self.status_name})>'

    @property
    def status_name(self) -> str:
        return ChangeStatus.name_of(self.status_id)

    @property
    def type_name(self) -> str:
        return ChangeType.name_of(self.request_type_id)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'request_no': self.request_no,
            'ship_id': self.ship_id,
            'request_type_id': self.request_type_id,
            'request_type': self.type_name,
            'status_id': self.status_id,
            'status': self.status_name,
            'requested_by_id': self.requested_by_id,
            'requested_at': self.requested_at.isoformat() if self.requested_at else None,
            'purpose': self.purpose,
            'description': self.description,
            'reviewed_by_id': self.reviewed_by_id,
            'reviewed_at': self.reviewed_at.isoformat() if self.reviewed_at else None,
            'review_comment': self.review_comment,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class Approval(db.Model):
    """Append-only ledger entry. Written only by lifecycle transitions."""

    __tablename__ = 'approvals'
    __table_args__ = (
        db.UniqueConstraint('change_request_id', 'stage', name='uq_approval_request_stage'),
    )

    id = db.Column(db.Integer, primary_key=True)
    change_request_id = db.Column(
        db.Integer, db.ForeignKey('change_requests.id', ondelete='CASCADE'), nullable=False
    )
    stage = db.Column(db.SmallInteger, nullable=False)
    action = db.Column(db.String(100), nullable=False)
    action_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    action_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    comment = db.Column(db.String(1000), nullable=True)

    change_request = db.relationship('ChangeRequest', back_populates='approvals')
    action_by = db.relationship('User')

    def __repr__(self):
        return f'<Approval stage={self.stage} {self.action}>'

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'change_request_id': self.change_request_id,
            'stage': self.stage,
            'action': self.action,
            'action_by_id': self.action_by_id,
            'action_by': self.action_by.full_name if self.action_by else None,
            'action_at': self.action_at.isoformat() if self.action_at else None,
            'comment': self.comment,
        }
