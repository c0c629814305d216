"""
SQLAlchemy models for the ship change-control service.
"""
from .user import Role, User
from .ship import Ship
from .change_request import ChangeRequest, Approval, ChangeStatus, ChangeType
from .typed_request import HardwareChangeRequest, SoftwareChangeRequest, SystemChangePlan
from .audit_log import AuditLog
from .login_log import LoginLog

__all__ = [
    'Role',
    'User',
    'Ship',
    'ChangeRequest',
    'Approval',
    'ChangeStatus',
    'ChangeType',
    'HardwareChangeRequest',
    'SoftwareChangeRequest',
    'SystemChangePlan',
    'AuditLog',
    'LoginLog',
]
