from datetime import datetime
import threading
import pytest
from sqlalchemy.exc import OperationalError
from database import db
from models import Approval, AuditLog, ChangeRequest, ChangeStatus, ChangeType
from services import audit
from services.change_lifecycle import allowed_operations, can_purge, can_transition
from services.change_requests import ChangeRequestService
from services.errors import NotFoundError, ValidationError

service = ChangeRequestService()


def _new_request(user, purpose='Replace ECDIS workstation', **kwargs):
    change_request = ChangeRequest(requested_by_id=user.id, purpose=purpose, **kwargs)
    return service.create(change_request, now=datetime(2025, 3, 4, 9, 30))


def _stages(change_request):
    return [(a.stage, a.action) for a in service.get_approvals(change_request.id)]


def test_create_assigns_number_and_draft_status(engineer, ship):
    cr = _new_request(engineer, ship_id=ship.id)

    assert cr.request_no == 'CR-202503-001'
    assert cr.status_id == ChangeStatus.DRAFT
    assert service.get_approvals(cr.id) == []
    history = audit.get_for_entity('ChangeRequest', cr.id)
    assert [row.action for row in history] == ['CREATE']


def test_create_uses_type_prefix(engineer):
    cr = _new_request(engineer, request_type_id=ChangeType.SECURITY_REVIEW)
    assert cr.request_no.startswith('SER-202503-')


def test_untyped_request_uses_generic_prefix(engineer):
    cr = service.create(ChangeRequest(requested_by_id=engineer.id, purpose='x'), now=datetime(2025, 1, 5))

    assert cr.request_no == 'CR-202501-001'
    assert cr.request_type_id is None
    assert cr.type_name == 'Change Request'


def test_create_rejects_unknown_ship(engineer):
    with pytest.raises(ValidationError) as excinfo:
        _new_request(engineer, ship_id=999)

    assert excinfo.value.field == 'ship_id'
    assert 'does not exist' in excinfo.value.message
    assert ChangeRequest.query.count() == 0


def test_update_rejects_unknown_ship(engineer, ship):
    cr = _new_request(engineer, ship_id=ship.id)

    with pytest.raises(ValidationError) as excinfo:
        service.update(cr.id, ship_id=999)

    assert excinfo.value.field == 'ship_id'
    assert service.get(cr.id).ship_id == ship.id


def test_create_requires_purpose(engineer):
    with pytest.raises(ValidationError) as excinfo:
        service.create(ChangeRequest(requested_by_id=engineer.id, purpose='   '))
    assert excinfo.value.field == 'purpose'
    assert ChangeRequest.query.count() == 0


def test_submit_twice_returns_true_then_false(engineer):
    cr = _new_request(engineer)

    assert service.submit_for_approval(cr.id, engineer.id) is True
    assert service.submit_for_approval(cr.id, engineer.id) is False
    assert _stages(cr) == [(1, 'Submitted')]


def test_full_path_writes_gap_free_ledger(engineer, reviewer, manager):
    cr = _new_request(engineer)

    assert service.submit_for_approval(cr.id, engineer.id)
    assert service.review(cr.id, reviewer.id, 'Checked network zoning')
    assert service.approve(cr.id, manager.id, 'Go ahead')
    assert service.implement(cr.id, engineer.id)

    db.session.refresh(cr)
    assert cr.status_id == ChangeStatus.IMPLEMENTED
    assert cr.reviewed_by_id == reviewer.id
    assert cr.review_comment == 'Checked network zoning'
    assert _stages(cr) == [
        (1, 'Submitted'),
        (2, 'Under Review'),
        (3, 'Approved'),
        (4, 'Implemented'),
    ]


def test_approve_under_review_appends_next_stage(engineer, reviewer, manager):
    cr = _new_request(engineer)
    service.submit_for_approval(cr.id, engineer.id)
    service.review(cr.id, reviewer.id, 'ok')
    previous = max(stage for stage, _ in _stages(cr))

    assert service.approve(cr.id, manager.id)

    latest = service.get_approvals(cr.id)[-1]
    assert latest.stage == previous + 1
    assert latest.action == 'Approved'
    assert latest.action_by_id == manager.id


def test_approve_straight_from_submitted(engineer, manager):
    cr = _new_request(engineer)
    service.submit_for_approval(cr.id, engineer.id)

    assert service.approve(cr.id, manager.id)
    assert _stages(cr) == [(1, 'Submitted'), (2, 'Approved')]


def test_reject_requires_reason(engineer, manager):
    cr = _new_request(engineer)
    service.submit_for_approval(cr.id, engineer.id)

    assert service.reject(cr.id, manager.id, '  ') is False
    assert service.get(cr.id).status_id == ChangeStatus.SUBMITTED

    assert service.reject(cr.id, manager.id, 'No rollback plan') is True
    last = service.get_approvals(cr.id)[-1]
    assert (last.action, last.comment) == ('Rejected', 'No rollback plan')


@pytest.mark.parametrize('operation', ['submit', 'review', 'approve', 'reject', 'implement'])
def test_rejected_is_terminal(engineer, manager, operation):
    cr = _new_request(engineer)
    service.submit_for_approval(cr.id, engineer.id)
    service.reject(cr.id, manager.id, 'Out of scope')
    calls = {
        'submit': lambda: service.submit_for_approval(cr.id, engineer.id),
        'review': lambda: service.review(cr.id, manager.id, 'late'),
        'approve': lambda: service.approve(cr.id, manager.id),
        'reject': lambda: service.reject(cr.id, manager.id, 'again'),
        'implement': lambda: service.implement(cr.id, engineer.id),
    }

    assert calls[operation]() is False
    assert service.get(cr.id).status_id == ChangeStatus.REJECTED
    assert len(service.get_approvals(cr.id)) == 2


def test_implement_only_from_approved(engineer):
    cr = _new_request(engineer)
    service.submit_for_approval(cr.id, engineer.id)

    assert service.implement(cr.id, engineer.id) is False
    assert service.get(cr.id).status_id == ChangeStatus.SUBMITTED


def test_review_only_from_submitted(engineer, reviewer):
    cr = _new_request(engineer)
    assert service.review(cr.id, reviewer.id, 'too early') is False
    assert _stages(cr) == []


def test_unknown_request_returns_false(engineer):
    assert service.submit_for_approval(9999, engineer.id) is False
    assert service.delete(9999) is False


def test_missing_actor_is_a_programming_error(engineer):
    cr = _new_request(engineer)
    with pytest.raises(ValueError):
        service.submit_for_approval(cr.id, None)


def test_each_transition_is_audited_once(engineer, manager):
    cr = _new_request(engineer)
    service.submit_for_approval(cr.id, engineer.id)
    service.submit_for_approval(cr.id, engineer.id)
    service.approve(cr.id, manager.id)

    actions = [row.action for row in audit.get_for_entity('ChangeRequest', cr.id)]
    assert sorted(actions) == ['APPROVE', 'CREATE', 'SUBMIT']
    approve_row = audit.get_for_entity('ChangeRequest', cr.id)[0]
    assert approve_row.action == 'APPROVE'
    assert '"status_id": 2' in approve_row.old_values
    assert '"status_id": 4' in approve_row.new_values


def test_storage_failure_rolls_back_status_and_ledger(engineer, monkeypatch):
    cr = _new_request(engineer)
    audit_rows = AuditLog.query.count()

    def locked(*args, **kwargs):
        raise OperationalError('UPDATE change_requests', {}, Exception('database is locked'))

    monkeypatch.setattr(db.session, 'commit', locked)
    with pytest.raises(OperationalError):
        service.submit_for_approval(cr.id, engineer.id)
    monkeypatch.undo()

    assert service.get(cr.id).status_id == ChangeStatus.DRAFT
    assert Approval.query.filter_by(change_request_id=cr.id).count() == 0
    assert AuditLog.query.count() == audit_rows


def test_update_edits_fields_and_audits(engineer, ship):
    cr = _new_request(engineer)

    updated = service.update(cr.id, purpose='Replace radar processor', ship_id=ship.id)

    assert updated.purpose == 'Replace radar processor'
    assert updated.request_no == 'CR-202503-001'
    latest = audit.get_for_entity('ChangeRequest', cr.id)[0]
    assert latest.action == 'UPDATE'
    assert 'Replace ECDIS workstation' in latest.old_values


def test_update_refuses_status_and_number(engineer):
    cr = _new_request(engineer)
    with pytest.raises(ValidationError):
        service.update(cr.id, status_id=ChangeStatus.APPROVED)
    with pytest.raises(ValidationError):
        service.update(cr.id, request_no='HW-209912-001')


def test_update_missing_request_raises(ctx):
    with pytest.raises(NotFoundError):
        service.update(4242, purpose='nothing')


def test_delete_purges_request_and_ledger(engineer, manager):
    cr = _new_request(engineer)
    cr_id = cr.id
    service.submit_for_approval(cr_id, engineer.id)
    service.approve(cr_id, manager.id)

    assert service.delete(cr_id) is True

    assert service.get(cr_id) is None
    assert Approval.query.filter_by(change_request_id=cr_id).count() == 0
    latest = audit.get_for_entity('ChangeRequest', cr_id)[0]
    assert latest.action == 'DELETE'
    assert latest.new_values is None
    assert 'CR-202503-001' in latest.old_values


def test_pending_and_statistics(engineer, manager):
    first = _new_request(engineer, purpose='A')
    second = _new_request(engineer, purpose='B')
    _new_request(engineer, purpose='C')
    service.submit_for_approval(first.id, engineer.id)
    service.submit_for_approval(second.id, engineer.id)
    service.approve(second.id, manager.id)

    assert [cr.id for cr in service.get_pending_approvals()] == [first.id]
    stats = service.get_statistics()
    assert stats['total'] == 3
    assert stats['by_status']['Draft'] == 1
    assert stats['by_status']['Approved'] == 1
    assert stats['pending_approvals'] == 1

    service.implement(second.id, engineer.id)
    assert service.get_statistics()['by_status']['Implemented'] == 1


def test_get_for_user_scopes_engineers(engineer, manager, make_user):
    other = make_user('other', 'Engineer')
    mine = _new_request(engineer)
    _new_request(other)

    assert [cr.id for cr in service.get_for_user(engineer)] == [mine.id]
    assert len(service.get_for_user(manager)) == 2


def test_policy_helpers(admin, engineer):
    assert can_purge(admin) is True
    assert can_purge(engineer) is False
    assert can_purge(None) is False
    assert can_transition('approve', ChangeStatus.UNDER_REVIEW)
    assert not can_transition('implement', ChangeStatus.SUBMITTED)
    assert allowed_operations(ChangeStatus.SUBMITTED) == ['review', 'approve', 'reject']
    assert allowed_operations(ChangeStatus.IMPLEMENTED) == []
    assert allowed_operations(ChangeStatus.REJECTED) == []
    assert allowed_operations(ChangeStatus.APPROVED) == ['implement']


def test_unexpected_error_rolls_back_pending_transition(engineer, monkeypatch):
    cr = _new_request(engineer)
    cr_id = cr.id

    def broken_stamp(*args, **kwargs):
        raise RuntimeError('stamp failed')

    monkeypatch.setattr('services.change_lifecycle._stamp', broken_stamp)
    with pytest.raises(RuntimeError):
        service.submit_for_approval(cr_id, engineer.id)
    monkeypatch.undo()

    db.session.commit()
    assert service.get(cr_id).status_id == ChangeStatus.DRAFT
    assert Approval.query.filter_by(change_request_id=cr_id).count() == 0
    assert service.submit_for_approval(cr_id, engineer.id) is True
    assert _stages(cr) == [(1, 'Submitted')]


def _race(app, workers, call):
    """Run `call(index)` on `workers` threads released together, one app context each."""
    barrier = threading.Barrier(workers)
    results, errors = [], []

    def run(index):
        with app.app_context():
            barrier.wait()
            try:
                results.append(call(index))
            except Exception as exc:
                errors.append(exc)

    threads = [threading.Thread(target=run, args=(i,)) for i in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return results, errors


def test_concurrent_decisions_on_one_request_are_serialized(app, engineer, manager):
    engineer_id, manager_id = engineer.id, manager.id
    cr_id = _new_request(engineer).id
    assert service.submit_for_approval(cr_id, engineer_id)
    db.session.remove()

    def decide(index):
        if index % 2:
            return service.reject(cr_id, manager_id, f'Rejected by worker {index}')
        return service.approve(cr_id, manager_id, f'Approved by worker {index}')

    results, errors = _race(app, 8, decide)

    assert errors == []
    assert len(results) == 8
    assert results.count(True) == 1
    final = service.get(cr_id)
    assert final.status_id in (ChangeStatus.APPROVED, ChangeStatus.REJECTED)
    ledger = service.get_approvals(cr_id)
    assert [a.stage for a in ledger] == [1, 2]
    assert ledger[-1].action == final.status_name
    decisions = [row.action for row in audit.get_for_entity('ChangeRequest', cr_id)
                 if row.action in ('APPROVE', 'REJECT')]
    assert len(decisions) == 1
