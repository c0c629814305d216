"""Audit log model for data mutations and lifecycle transitions."""
from datetime import datetime
from database import db


class AuditLog(db.Model):
    """Immutable audit entries. Rows are appended, never updated."""

    __tablename__ = 'audit_logs'
    __table_args__ = (
        db.Index('ix_audit_logs_timestamp', 'timestamp'),
        db.Index('ix_audit_logs_user', 'user_id'),
        db.Index('ix_audit_logs_action', 'action'),
        db.Index('ix_audit_logs_entity', 'entity_type', 'entity_id'),
    )

    ACTION_LABELS = {
        'CREATE': 'Created',
        'UPDATE': 'Updated',
        'DELETE': 'Deleted',
        'APPROVE': 'Approved',
        'REJECT': 'Rejected',
        'SUBMIT': 'Submitted',
        'REVIEW': 'Reviewed',
        'IMPLEMENT': 'Implemented',
        'CANCEL': 'Cancelled',
        'ACTIVATE': 'Activated',
        'DEACTIVATE': 'Deactivated',
    }

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(50), nullable=False)
    action = db.Column(db.String(50), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)
    entity_name = db.Column(db.String(200), nullable=True)
    table_name = db.Column(db.String(50), nullable=True)
    old_values = db.Column(db.Text, nullable=True)
    new_values = db.Column(db.Text, nullable=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    # Weak reference: no cascade, the row outlives the user.
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    user_name = db.Column(db.String(200), nullable=True)
    ip_address = db.Column(db.String(100), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    additional_info = db.Column(db.String(500), nullable=True)

    def __repr__(self):
        return f'<AuditLog {self.entity_type}:{self.entity_id} {self.action}>'

    @property
    def action_display(self) -> str:
        return self.ACTION_LABELS.get(self.action, self.action)

    @property
    def user_display(self) -> str:
        return self.user_name or f'User {self.user_id}'

    @property
    def entity_display(self) -> str:
        return self.entity_name or f'{self.entity_type} {self.entity_id}'

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'entity_type': self.entity_type,
            'action': self.action,
            'action_display': self.action_display,
            'entity_id': self.entity_id,
            'entity_name': self.entity_name,
            'table_name': self.table_name,
            'old_values': self.old_values,
            'new_values': self.new_values,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'user_id': self.user_id,
            'user_name': self.user_display,
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'additional_info': self.additional_info,
        }
