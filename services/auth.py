"""Identity helpers: who is acting, and password checks."""
from __future__ import annotations

from flask import has_request_context, request
from flask_login import current_user
from werkzeug.security import check_password_hash, generate_password_hash
from models.user import User

SYSTEM_ACTOR = 'System'


def hash_password(plain: str) -> str:
    return generate_password_hash(plain)


def verify_password(plain: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, plain)


def authenticate(username: str, password: str) -> User | None:
    """Return the active user matching the credentials, or None."""
    username = (username or '').strip()
    if not username or not password:
        return None
    user = User.query.filter_by(username=username).first()
    if not user or not user.is_active_user:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def current_actor() -> User | None:
    """Authenticated user for this request, or None outside a request or when anonymous."""
    if not has_request_context():
        return None
    if not getattr(current_user, 'is_authenticated', False):
        return None
    return current_user._get_current_object()


def request_origin() -> tuple[str | None, str | None]:
    """Client address and user agent of the current request, if any."""
    if not has_request_context():
        return None, None
    ip_address = request.headers.get('X-Forwarded-For', request.remote_addr)
    user_agent = (request.user_agent.string or '')[:500] or None
    return ip_address, user_agent
