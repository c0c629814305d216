import pytest
from models import ChangeRequest, Ship
from services import audit
from services.deletion import deactivate, purge, reactivate


def test_deactivate_ship_is_soft_and_audited(ship):
    assert deactivate(ship) is True

    assert Ship.query.count() == 1
    assert ship.is_active is False
    row = audit.get_for_entity('Ship', ship.id)[0]
    assert row.action == 'DEACTIVATE'
    assert '"is_active": true' in row.old_values
    assert '"is_active": false' in row.new_values


def test_deactivate_twice_is_a_no_op(ship):
    deactivate(ship)
    assert deactivate(ship) is False
    assert [r.action for r in audit.get_for_entity('Ship', ship.id)] == ['DEACTIVATE']


def test_reactivate(ship):
    deactivate(ship)
    assert reactivate(ship, info='Back in service') is True
    row = audit.get_for_entity('Ship', ship.id)[0]
    assert (row.action, row.additional_info) == ('ACTIVATE', 'Back in service')


def test_deactivate_user_blocks_login(engineer):
    deactivate(engineer)
    assert engineer.is_active is False


def test_change_requests_cannot_be_deactivated(engineer):
    cr = ChangeRequest(requested_by_id=engineer.id, purpose='x', request_no='CR-1')
    with pytest.raises(TypeError):
        deactivate(cr)


def test_purge_audits_snapshot(ship):
    ship_id = ship.id
    purge(ship, info='Duplicate record')

    assert Ship.query.count() == 0
    row = audit.get_for_entity('Ship', ship_id)[0]
    assert row.action == 'DELETE'
    assert '9321483' in row.old_values
    assert row.additional_info == 'Duplicate record'
