"""
Audit trail and login history routes (administrators only).
"""
import io
from datetime import datetime
from flask import Blueprint, Response, abort, current_app, jsonify, request, send_file
from models import User
from services import audit, background_jobs, log_export, login_log
from services.retention import submit_sweep
from routes.auth import permission_required

audit_bp = Blueprint('audit', __name__)

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def _parse_datetime(name: str):
    raw = (request.args.get(name) or '').strip()
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        abort(400, description=f'{name} must be an ISO date or datetime')


def _parse_bool(name: str):
    raw = (request.args.get(name) or '').strip().lower()
    if raw in ('1', 'true', 'yes'):
        return True
    if raw in ('0', 'false', 'no'):
        return False
    return None


def _audit_filters() -> dict:
    return {
        'entity_type': request.args.get('entity_type') or None,
        'action': request.args.get('action') or None,
        'user_id': request.args.get('user_id', type=int),
        'start': _parse_datetime('from'),
        'end': _parse_datetime('to'),
        'limit': request.args.get('limit', type=int),
    }


def _login_filters() -> dict:
    return {
        'username': request.args.get('username') or None,
        'action': request.args.get('action') or None,
        'success': _parse_bool('success'),
        'security_only': bool(_parse_bool('security_only')),
        'start': _parse_datetime('from'),
        'end': _parse_datetime('to'),
    }


@audit_bp.route('/logs')
@permission_required('can_view_audit')
def audit_logs():
    return jsonify([row.to_dict() for row in audit.get_filtered(**_audit_filters())])


@audit_bp.route('/entities/<entity_type>/<entity_id>')
@permission_required('can_view_audit')
def entity_history(entity_type, entity_id):
    return jsonify([row.to_dict() for row in audit.get_for_entity(entity_type, entity_id)])


@audit_bp.route('/entity-types')
@permission_required('can_view_audit')
def entity_types():
    return jsonify(audit.get_distinct_entity_types())


@audit_bp.route('/actions')
@permission_required('can_view_audit')
def actions():
    return jsonify(audit.get_distinct_actions())


@audit_bp.route('/login-logs')
@permission_required('can_view_audit')
def login_logs():
    return jsonify([row.to_dict() for row in login_log.get_filtered(**_login_filters())])


@audit_bp.route('/login-stats')
@permission_required('can_view_audit')
def login_stats():
    days = request.args.get('days', 30, type=int)
    return jsonify(login_log.get_statistics(days=max(1, days)))


@audit_bp.route('/login-insights')
@permission_required('can_view_audit')
def login_insights():
    days = max(1, request.args.get('days', 30, type=int))
    hours = max(1, request.args.get('hours', 24, type=int))
    trends = login_log.trends_by_day(days=days)
    return jsonify({
        'by_action': login_log.stats_by_action(),
        'by_user': login_log.stats_by_user(days=days),
        'daily_logins': {day.isoformat(): count for day, count in trends.items()},
        'top_failed_usernames': login_log.top_failed_usernames(count=10, hours=hours),
    })


@audit_bp.route('/login-users/<username>')
@permission_required('can_view_audit')
def login_user_summary(username):
    user = User.query.filter_by(username=username).first()
    last_success = login_log.last_successful_login(user.id) if user else None
    last_failure = login_log.last_failed_login(username)
    ip_address = request.args.get('ip') or None
    summary = {
        'username': username,
        'ip_addresses': login_log.unique_ip_addresses(username),
        'last_successful_login': last_success.isoformat() if last_success else None,
        'last_failed_login': last_failure.isoformat() if last_failure else None,
        'failed_last_hour': login_log.failed_login_count(username, hours=1),
    }
    if ip_address:
        summary['suspicious'] = login_log.is_login_suspicious(username, ip_address)
    return jsonify(summary)


@audit_bp.route('/login-logs/<int:log_id>', methods=['DELETE'])
@permission_required('is_admin')
def delete_login_log(log_id):
    if not login_log.delete(log_id):
        abort(404)
    return jsonify({'deleted': True, 'id': log_id})


@audit_bp.route('/export.csv')
@permission_required('can_view_audit')
def export_csv():
    rows = audit.get_filtered(**_audit_filters())
    stamp = datetime.utcnow().strftime('%Y%m%d_%H%M%S')
    return Response(
        log_export.audit_logs_to_csv(rows),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename=audit_logs_{stamp}.csv'},
    )


@audit_bp.route('/export.xlsx')
@permission_required('can_view_audit')
def export_xlsx():
    rows = audit.get_filtered(**_audit_filters())
    logins = login_log.get_filtered(start=_parse_datetime('from'), end=_parse_datetime('to'))
    stamp = datetime.utcnow().strftime('%Y%m%d_%H%M%S')
    return send_file(
        io.BytesIO(log_export.logs_to_excel(rows, logins)),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f'audit_logs_{stamp}.xlsx',
    )


@audit_bp.route('/retention-sweep', methods=['POST'])
@permission_required('is_admin')
def run_retention_sweep():
    job_id = submit_sweep(current_app._get_current_object())
    return jsonify({'job_id': job_id}), 202


@audit_bp.route('/jobs/<job_id>')
@permission_required('is_admin')
def job_status(job_id):
    job = background_jobs.get(job_id)
    if job is None:
        abort(404)
    payload = dict(job)
    for key in ('submitted_at', 'finished_at'):
        if payload[key] is not None:
            payload[key] = payload[key].isoformat()
    return jsonify(payload)
