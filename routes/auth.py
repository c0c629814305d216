"""
Authentication and user-management routes.
"""
from datetime import datetime
from functools import wraps
from flask import Blueprint, abort, jsonify, request, session
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from database import db
from models.user import User
from services import audit, login_log
from services.auth import authenticate
from services.deletion import deactivate, reactivate

auth_bp = Blueprint('auth', __name__)

MIN_PASSWORD_LENGTH = 8


def permission_required(attr: str):
    """Reject the request with 403 unless the current user has `attr`."""
    def decorator(view):
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            if not getattr(current_user, attr, False):
                abort(403)
            return view(*args, **kwargs)
        return wrapped
    return decorator


def request_data() -> dict:
    """JSON body, falling back to form fields."""
    return request.get_json(silent=True) or request.form.to_dict()


def _user_payload(user: User) -> dict:
    return {
        'id': user.id,
        'username': user.username,
        'full_name': user.full_name,
        'email': user.email,
        'role': user.role_name,
        'is_active': user.is_active,
        'last_login_at': user.last_login_at.isoformat() if user.last_login_at else None,
        'permissions': {
            'can_review': user.can_review,
            'can_approve': user.can_approve,
            'can_view_all_requests': user.can_view_all_requests,
            'can_purge_change_requests': user.can_purge_change_requests,
            'can_view_audit': user.can_view_audit,
        },
    }


@auth_bp.route('/login', methods=['POST'])
def login():
    """Log in an existing user."""
    data = request_data()
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''

    user = authenticate(username, password)
    if user is None:
        known = User.query.filter_by(username=username).first() if username else None
        reason = 'Account disabled' if known and not known.is_active_user else 'Invalid username or password'
        login_log.log_login_attempt(username or '(blank)', False, user=known, failure_reason=reason)
        return jsonify({'error': reason}), 401

    now = datetime.utcnow()
    login_user(user)
    session['login_at'] = now.isoformat()
    user.last_login_at = now
    db.session.commit()
    login_log.log_login_attempt(user.username, True, user=user, now=now)
    return jsonify(_user_payload(user))


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """Log out current user."""
    minutes = None
    started = session.pop('login_at', None)
    if started:
        minutes = int((datetime.utcnow() - datetime.fromisoformat(started)).total_seconds() // 60)
    login_log.log_logout(current_user, session_minutes=minutes)
    logout_user()
    return jsonify({'logged_out': True})


@auth_bp.route('/change-password', methods=['POST'])
@login_required
def change_password():
    data = request_data()
    current_password = data.get('current_password') or ''
    new_password = data.get('new_password') or ''
    user = current_user._get_current_object()

    if not user.check_password(current_password):
        login_log.log_password_change(user, success=False, failure_reason='Current password incorrect')
        return jsonify({'error': 'Current password is incorrect.', 'field': 'current_password'}), 400
    if len(new_password) < MIN_PASSWORD_LENGTH:
        return jsonify({
            'error': f'Password must be at least {MIN_PASSWORD_LENGTH} characters.',
            'field': 'new_password',
        }), 400

    before = audit.capture(user)
    user.set_password(new_password)
    db.session.commit()
    audit.record_update(before, user, info='Password changed')
    login_log.log_password_change(user)
    return jsonify({'changed': True})


@auth_bp.route('/csrf-token')
def csrf_token():
    return jsonify({'csrf_token': generate_csrf()})


@auth_bp.route('/me')
@login_required
def me():
    return jsonify(_user_payload(current_user))


@auth_bp.route('/users/<int:user_id>/toggle-active', methods=['POST'])
@permission_required('is_admin')
def toggle_user_active(user_id):
    """Enable or disable a user account."""
    user = db.session.get(User, user_id)
    if user is None:
        abort(404)
    if user.id == current_user.id:
        return jsonify({'error': 'You cannot disable your own account.'}), 400

    admin = current_user._get_current_object()
    if user.is_active_user:
        deactivate(user, info=f'Disabled by {admin.username}')
        login_log.log_account_locked(user, by=admin)
    else:
        reactivate(user, info=f'Enabled by {admin.username}')
        login_log.log_account_unlocked(user, by=admin)
    return jsonify(_user_payload(user))
