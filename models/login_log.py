"""Authentication event log."""
from datetime import datetime
from database import db


class LoginLog(db.Model):
    """Append-only record of login, logout and account security events."""

    __tablename__ = 'login_logs'
    __table_args__ = (
        db.Index('ix_login_logs_timestamp', 'timestamp'),
        db.Index('ix_login_logs_username', 'username'),
    )

    LOGIN = 'LOGIN'
    LOGOUT = 'LOGOUT'
    LOGIN_FAILED = 'LOGIN_FAILED'
    PASSWORD_CHANGED = 'PASSWORD_CHANGED'
    PASSWORD_RESET = 'PASSWORD_RESET'
    ACCOUNT_LOCKED = 'ACCOUNT_LOCKED'
    ACCOUNT_UNLOCKED = 'ACCOUNT_UNLOCKED'
    SECURITY_EVENT = 'SECURITY_EVENT'

    ACTION_LABELS = {
        LOGOUT: 'Logout',
        LOGIN_FAILED: 'Login Failed',
        PASSWORD_RESET: 'Password Reset',
        PASSWORD_CHANGED: 'Password Changed',
        ACCOUNT_LOCKED: 'Account Locked',
        ACCOUNT_UNLOCKED: 'Account Unlocked',
        SECURITY_EVENT: 'Security Event',
    }

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    username = db.Column(db.String(100), nullable=False)
    action = db.Column(db.String(50), nullable=False)
    is_successful = db.Column(db.Boolean, nullable=False, default=False)
    failure_reason = db.Column(db.String(500), nullable=True)
    ip_address = db.Column(db.String(100), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    device = db.Column(db.String(200), nullable=True)
    location = db.Column(db.String(100), nullable=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    additional_info = db.Column(db.String(500), nullable=True)

    session_duration_minutes = db.Column(db.Integer, nullable=True)
    is_security_event = db.Column(db.Boolean, nullable=False, default=False)

    def __repr__(self):
        return f'<LoginLog {self.username} {self.action}>'

    @property
    def action_display(self) -> str:
        if self.action == self.LOGIN:
            return 'Login Successful' if self.is_successful else 'Login Failed'
        return self.ACTION_LABELS.get(self.action, self.action)

    @property
    def status_display(self) -> str:
        return 'Success' if self.is_successful else 'Failed'

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'username': self.username,
            'action': self.action,
            'action_display': self.action_display,
            'is_successful': self.is_successful,
            'status': self.status_display,
            'failure_reason': self.failure_reason,
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'additional_info': self.additional_info,
            'session_duration_minutes': self.session_duration_minutes,
            'is_security_event': self.is_security_event,
        }
