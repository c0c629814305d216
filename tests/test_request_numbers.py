import logging
from datetime import datetime
import pytest
from models import ChangeRequest
from services import request_numbers
from services.change_lifecycle import NUMBER_COLUMNS
from services.change_requests import ChangeRequestService
from services.errors import ConflictError
from services.request_numbers import format_request_number, next_request_number, parse_sequence

MARCH = datetime(2025, 3, 1)
service = ChangeRequestService()


def _create(user, request_no=None, now=MARCH):
    return service.create(ChangeRequest(requested_by_id=user.id, purpose='Patch', request_no=request_no), now=now)


def test_format_and_parse():
    assert format_request_number('SW', datetime(2025, 1, 15), 7) == 'SW-202501-007'
    assert format_request_number('HW', MARCH, 1234) == 'HW-202503-1234'
    assert parse_sequence('SP-202501-042') == 42
    assert parse_sequence('garbage') is None
    assert parse_sequence(None) is None


def test_first_number_of_month_starts_at_one(ctx):
    assert next_request_number('HW', MARCH, NUMBER_COLUMNS) == 'HW-202503-001'


def test_sequences_are_gap_free_and_increasing(engineer):
    numbers = [_create(engineer).request_no for _ in range(5)]
    assert numbers == [f'CR-202503-00{i}' for i in range(1, 6)]


def test_months_and_prefixes_are_independent(engineer):
    _create(engineer)
    _create(engineer)
    april = _create(engineer, now=datetime(2025, 4, 2))
    assert april.request_no == 'CR-202504-001'


def test_sequence_past_999_still_increments(engineer):
    _create(engineer, request_no='CR-202503-999')
    _create(engineer, request_no='CR-202503-1000')
    assert _create(engineer).request_no == 'CR-202503-1001'


def test_stale_read_retries_with_next_candidate(engineer, monkeypatch, caplog):
    _create(engineer)
    # Another writer committed 001 after this one read the table.
    monkeypatch.setattr(request_numbers, 'last_request_number', lambda *args, **kwargs: None)

    with caplog.at_level(logging.WARNING, logger='services.request_numbers'):
        second = _create(engineer)

    assert second.request_no == 'CR-202503-002'
    assert 'already taken' in caplog.text


def test_retries_exhausted_raise_conflict(engineer, monkeypatch, app):
    _create(engineer)
    _create(engineer)
    app.config['REQUEST_NUMBER_MAX_RETRIES'] = 1
    monkeypatch.setattr(request_numbers, 'last_request_number', lambda *args, **kwargs: None)

    with pytest.raises(ConflictError):
        _create(engineer)
    assert ChangeRequest.query.count() == 2


def test_explicit_duplicate_number_conflicts(engineer):
    _create(engineer, request_no='CR-LEGACY-1')
    with pytest.raises(ConflictError):
        _create(engineer, request_no='CR-LEGACY-1')
