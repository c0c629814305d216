from datetime import datetime
import pytest
from database import db
from models import (Approval, ChangeRequest, ChangeStatus, ChangeType, HardwareChangeRequest,
                    SoftwareChangeRequest, SystemChangePlan)
from services import audit
from services.change_requests import ChangeRequestService
from services.errors import ConflictError, ValidationError
from services.typed_requests import HardwareRequestService, SoftwareRequestService, SystemPlanService

hardware = HardwareRequestService()
software = SoftwareRequestService()
plans = SystemPlanService()

JANUARY = datetime(2025, 1, 15, 10, 0)


def _hardware_form(user, **overrides):
    fields = {
        'requester_user_id': user.id,
        'requester_name': 'Erin Engineer',
        'department': 'Engine',
        'reason': 'Failed switch in ECR',
        'before_hw_manufacturer_model': 'Cisco 2960',
        'after_hw_manufacturer_model': 'Cisco 9200',
    }
    fields.update(overrides)
    return HardwareChangeRequest(**fields)


def test_blank_requester_name_is_rejected(engineer):
    with pytest.raises(ValidationError) as excinfo:
        hardware.create(_hardware_form(engineer, requester_name='  '))

    assert excinfo.value.field == 'requester_name'
    assert HardwareChangeRequest.query.count() == 0
    assert ChangeRequest.query.count() == 0


def test_software_numbers_in_january_2025(engineer):
    first = software.create(SoftwareChangeRequest(requester_user_id=engineer.id, requester_name='Erin'), now=JANUARY)
    second = software.create(SoftwareChangeRequest(requester_user_id=engineer.id, requester_name='Erin'), now=JANUARY)

    assert first.request_number == 'SW-202501-001'
    assert second.request_number == 'SW-202501-002'


def test_create_links_mirror_change_request(engineer):
    form = hardware.create(_hardware_form(engineer), now=JANUARY)

    mirror = form.change_request
    assert mirror is not None
    assert mirror.request_no == form.request_number == 'HW-202501-001'
    assert mirror.status_id == ChangeStatus.DRAFT
    assert mirror.purpose == 'Failed switch in ECR'
    assert form.status == 'Draft'
    created = audit.get_for_entity('HardwareChangeRequest', form.id)
    assert [row.action for row in created] == ['CREATE']


def test_generic_and_typed_share_number_space(engineer):
    generic = ChangeRequestService().create(
        ChangeRequest(requested_by_id=engineer.id, purpose='Generic hardware change',
                      request_type_id=ChangeType.HARDWARE),
        now=JANUARY,
    )
    form = hardware.create(_hardware_form(engineer), now=JANUARY)

    assert generic.request_no == 'HW-202501-001'
    assert form.request_number == 'HW-202501-002'


def test_unknown_requester_is_rejected(engineer):
    with pytest.raises(ValidationError) as excinfo:
        hardware.create(_hardware_form(engineer, requester_user_id=9999))

    assert excinfo.value.field == 'requester_user_id'
    assert HardwareChangeRequest.query.count() == 0
    assert ChangeRequest.query.count() == 0


def test_explicit_number_taken_by_generic_request_conflicts(engineer):
    ChangeRequestService().create(ChangeRequest(requested_by_id=engineer.id, purpose='Legacy', request_no='HW-OLD-7'))

    with pytest.raises(ConflictError):
        hardware.create(_hardware_form(engineer, request_number='HW-OLD-7'))
    assert HardwareChangeRequest.query.count() == 0


def test_lifecycle_syncs_form_and_stamps(engineer, reviewer, manager):
    form = hardware.create(_hardware_form(engineer))

    assert hardware.submit_for_approval(form.id, engineer.id)
    assert form.status == 'Submitted'
    assert form.prepared_by_user_id == engineer.id
    assert form.prepared_at is not None

    assert hardware.review(form.id, reviewer.id, 'Spare in stock')
    assert form.status == 'Under Review'
    assert form.reviewed_by_user_id == reviewer.id
    assert form.review_comment == 'Spare in stock'

    assert hardware.approve(form.id, manager.id)
    assert form.status == 'Approved'
    assert form.approved_by_user_id == manager.id
    assert form.change_request.status_id == ChangeStatus.APPROVED

    assert [(a.stage, a.action) for a in hardware.get_approvals(form.id)] == [
        (1, 'Submitted'), (2, 'Under Review'), (3, 'Approved'),
    ]
    actions = [row.action for row in audit.get_for_entity('HardwareChangeRequest', form.id)]
    assert actions == ['APPROVE', 'REVIEW', 'SUBMIT', 'CREATE']


def test_generic_transition_updates_linked_form(engineer, manager):
    form = software.create(SoftwareChangeRequest(requester_user_id=engineer.id, requester_name='Erin'))
    generic = ChangeRequestService()

    assert generic.submit_for_approval(form.change_request_id, engineer.id)
    assert software.submit_for_approval(form.id, engineer.id) is False
    assert generic.reject(form.change_request_id, manager.id, 'Vendor not approved')

    refreshed = software.get(form.id)
    assert refreshed.status == 'Rejected'
    assert refreshed.review_comment == 'Vendor not approved'
    assert refreshed.reviewed_by_user_id == manager.id


def test_update_syncs_mirror(engineer):
    form = hardware.create(_hardware_form(engineer))

    hardware.update(form.id, reason='Switch replaced under warranty', work_description='Swap and reconfigure VLANs')

    mirror = form.change_request
    assert mirror.purpose == 'Switch replaced under warranty'
    assert mirror.description == 'Swap and reconfigure VLANs'
    assert audit.get_for_entity('HardwareChangeRequest', form.id)[0].action == 'UPDATE'


def test_update_rejects_blank_requester(engineer):
    form = hardware.create(_hardware_form(engineer))
    with pytest.raises(ValidationError):
        hardware.update(form.id, requester_name='')
    assert hardware.get(form.id).requester_name == 'Erin Engineer'


def test_delete_purges_form_mirror_and_ledger(engineer):
    form = hardware.create(_hardware_form(engineer))
    form_id, cr_id = form.id, form.change_request_id
    hardware.submit_for_approval(form_id, engineer.id)

    assert hardware.delete(form_id) is True

    assert hardware.get(form_id) is None
    assert db.session.get(ChangeRequest, cr_id) is None
    assert Approval.query.filter_by(change_request_id=cr_id).count() == 0
    deleted = audit.get_for_entity('HardwareChangeRequest', form_id)[0]
    assert deleted.action == 'DELETE'
    assert 'ChangeRequest' in deleted.additional_info


def test_system_plan_details_are_editable(engineer):
    plan = plans.create(SystemChangePlan(requester_user_id=engineer.id, requester_name='Erin',
                                         before_version='4.1', after_version='5.0'), now=JANUARY)

    plans.update(plan.id, plan_details='Phase 1: bridge systems')

    assert plan.request_number == 'SP-202501-001'
    assert plans.get(plan.id).to_dict()['plan_details'] == 'Phase 1: bridge systems'
    assert plan.change_summary() == '4.1 -> 5.0'


def test_get_for_user(engineer, manager, make_user):
    other = make_user('other', 'Engineer')
    mine = hardware.create(_hardware_form(engineer))
    hardware.create(_hardware_form(other))

    assert [f.id for f in hardware.get_for_user(engineer)] == [mine.id]
    assert len(hardware.get_for_user(manager)) == 2
