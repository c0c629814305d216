"""
Change request routes: the generic request plus one blueprint per
specialized form. All blueprints expose the same lifecycle endpoints.
"""
from flask import Blueprint, abort, jsonify
from flask_login import current_user, login_required
from models import ChangeRequest, ChangeStatus
from routes.auth import permission_required, request_data
from services.change_lifecycle import allowed_operations, deletable_statuses
from services.change_requests import ChangeRequestService
from services.typed_requests import HardwareRequestService, SoftwareRequestService, SystemPlanService

change_requests_bp = Blueprint('change_requests', __name__)

TYPED_ROUTES = (
    ('/hardware-requests', 'hardware_requests', HardwareRequestService),
    ('/software-requests', 'software_requests', SoftwareRequestService),
    ('/system-plans', 'system_plans', SystemPlanService),
)


def _int_or_none(value):
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        abort(400, description=f'Expected an integer, got {value!r}')


def _payload(entity) -> dict:
    payload = entity.to_dict()
    status_id = entity.status_id
    payload['allowed_operations'] = allowed_operations(status_id)
    payload['deletable'] = status_id in deletable_statuses()
    return payload


def _refused(service, request_id, operation):
    return jsonify({
        'error': f'Cannot {operation} {service.entity_label} {request_id} in its current state.',
    }), 409


def register_lifecycle_routes(bp: Blueprint, service, build):
    """Attach CRUD and lifecycle endpoints for `service` to `bp`.

    `build(data)` turns a request body into an unsaved entity.
    """

    def _load(request_id):
        entity = service.get(request_id)
        if entity is None:
            abort(404)
        return entity

    @bp.route('', methods=['GET'])
    @login_required
    def list_requests():
        return jsonify([_payload(e) for e in service.get_for_user(current_user)])

    @bp.route('', methods=['POST'])
    @login_required
    def create_request():
        entity = service.create(build(request_data()))
        return jsonify(_payload(entity)), 201

    @bp.route('/<int:request_id>', methods=['GET'])
    @login_required
    def get_request(request_id):
        return jsonify(_payload(_load(request_id)))

    @bp.route('/by-number/<request_number>', methods=['GET'])
    @login_required
    def get_request_by_number(request_number):
        entity = _by_number(service)(request_number)
        if entity is None:
            abort(404)
        return jsonify(_payload(entity))

    @bp.route('/<int:request_id>', methods=['PUT', 'PATCH'])
    @login_required
    def update_request(request_id):
        data = request_data()
        fields = {k: v for k, v in data.items() if k in _editable(service)}
        if 'ship_id' in fields:
            fields['ship_id'] = _int_or_none(fields['ship_id'])
        entity = service.update(request_id, **fields)
        return jsonify(_payload(entity))

    @bp.route('/<int:request_id>/submit', methods=['POST'])
    @login_required
    def submit_request(request_id):
        _load(request_id)
        if not service.submit_for_approval(request_id, current_user.id):
            return _refused(service, request_id, 'submit')
        return jsonify(_payload(_load(request_id)))

    @bp.route('/<int:request_id>/review', methods=['POST'])
    @permission_required('can_review')
    def review_request(request_id):
        _load(request_id)
        comment = request_data().get('comment')
        if not service.review(request_id, current_user.id, comment):
            return _refused(service, request_id, 'review')
        return jsonify(_payload(_load(request_id)))

    @bp.route('/<int:request_id>/approve', methods=['POST'])
    @permission_required('can_approve')
    def approve_request(request_id):
        _load(request_id)
        comment = request_data().get('comment')
        if not service.approve(request_id, current_user.id, comment):
            return _refused(service, request_id, 'approve')
        return jsonify(_payload(_load(request_id)))

    @bp.route('/<int:request_id>/reject', methods=['POST'])
    @permission_required('can_approve')
    def reject_request(request_id):
        _load(request_id)
        reason = request_data().get('reason') or ''
        if not reason.strip():
            return jsonify({'error': 'A rejection reason is required.', 'field': 'reason'}), 400
        if not service.reject(request_id, current_user.id, reason):
            return _refused(service, request_id, 'reject')
        return jsonify(_payload(_load(request_id)))

    @bp.route('/<int:request_id>/implement', methods=['POST'])
    @login_required
    def implement_request(request_id):
        _load(request_id)
        if not service.implement(request_id, current_user.id):
            return _refused(service, request_id, 'implement')
        return jsonify(_payload(_load(request_id)))

    @bp.route('/<int:request_id>', methods=['DELETE'])
    @permission_required('can_purge_change_requests')
    def delete_request(request_id):
        _load(request_id)
        if not service.delete(request_id):
            abort(404)
        return jsonify({'deleted': True, 'id': request_id})

    @bp.route('/<int:request_id>/approvals', methods=['GET'])
    @login_required
    def request_approvals(request_id):
        _load(request_id)
        return jsonify([a.to_dict() for a in service.get_approvals(request_id)])


def _editable(service) -> tuple:
    return getattr(service, 'editable_fields', None) or service.EDITABLE_FIELDS


def _by_number(service):
    return getattr(service, 'get_by_request_no', None) or service.get_by_request_number


# Generic change requests

_change_requests = ChangeRequestService()


def _build_change_request(data: dict) -> ChangeRequest:
    return ChangeRequest(
        request_no=(data.get('request_no') or '').strip() or None,
        ship_id=_int_or_none(data.get('ship_id')),
        request_type_id=_int_or_none(data.get('request_type_id')),
        purpose=data.get('purpose'),
        description=data.get('description'),
        requested_by_id=current_user.id,
    )


register_lifecycle_routes(change_requests_bp, _change_requests, _build_change_request)


@change_requests_bp.route('/statistics')
@login_required
def statistics():
    return jsonify(_change_requests.get_statistics())


@change_requests_bp.route('/pending')
@permission_required('can_review')
def pending_approvals():
    return jsonify([_payload(cr) for cr in _change_requests.get_pending_approvals()])


@change_requests_bp.route('/statuses')
@login_required
def statuses():
    return jsonify([{'id': status_id, 'name': name} for status_id, name in ChangeStatus.NAMES.items()])


# Specialized forms

def _form_builder(service):
    def build(data: dict):
        fields = {k: v for k, v in data.items() if k in service.editable_fields}
        fields.setdefault('requester_name', current_user.full_name)
        form = service.model(**fields)
        form.requester_user_id = current_user.id
        return form
    return build


def typed_blueprints() -> list:
    """(url_prefix, blueprint) for each specialized form."""
    blueprints = []
    for url_prefix, name, service_class in TYPED_ROUTES:
        bp = Blueprint(name, __name__)
        service = service_class()
        register_lifecycle_routes(bp, service, _form_builder(service))
        blueprints.append((url_prefix, bp))
    return blueprints
