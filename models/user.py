"""
User and role models for role-based authentication.
"""
from datetime import datetime
from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash
from database import db


class Role(db.Model):
    """Named permission group (Administrator, Manager, Engineer, Reviewer)."""

    __tablename__ = 'roles'

    ADMINISTRATOR = 'Administrator'
    MANAGER = 'Manager'
    ENGINEER = 'Engineer'
    REVIEWER = 'Reviewer'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.String(500), nullable=True)

    users = db.relationship('User', back_populates='role', lazy='dynamic')

    def __repr__(self):
        return f'<Role {self.name}>'


class User(UserMixin, db.Model):
    """Application user with role-based access control."""

    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), nullable=False, unique=True)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=False, default='')
    role_id = db.Column(db.Integer, db.ForeignKey('roles.id'), nullable=False)
    is_active_user = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=True)

    role = db.relationship('Role', back_populates='users')

    def __repr__(self):
        return f'<User {self.username} ({self.role_name})>'

    @property
    def is_active(self):
        return bool(self.is_active_user)

    @property
    def role_name(self) -> str:
        return self.role.name if self.role else ''

    @property
    def is_admin(self):
        return self.role_name == Role.ADMINISTRATOR

    @property
    def can_review(self):
        return self.role_name in {Role.ADMINISTRATOR, Role.MANAGER, Role.REVIEWER}

    @property
    def can_approve(self):
        return self.role_name in {Role.ADMINISTRATOR, Role.MANAGER}

    @property
    def can_view_all_requests(self):
        return self.role_name in {Role.ADMINISTRATOR, Role.MANAGER, Role.REVIEWER}

    @property
    def can_purge_change_requests(self):
        return self.is_admin

    @property
    def can_view_audit(self):
        return self.is_admin

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)
