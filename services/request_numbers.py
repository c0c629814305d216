"""
Human-readable request numbers: ``{PREFIX}-{YYYYMM}-{SEQ}``.

The next sequence is read optimistically from the highest existing number,
so two writers can compute the same candidate. Inserts therefore go through
``insert_with_request_number``, which relies on the unique index and retries
with a fresh candidate on conflict.
"""
from __future__ import annotations

import logging
from datetime import datetime
from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from database import db
from services.errors import ConflictError

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 5


def format_request_number(prefix: str, when: datetime, sequence: int) -> str:
    return f'{prefix}-{when:%Y%m}-{sequence:03d}'


def parse_sequence(request_number: str | None) -> int | None:
    if not request_number:
        return None
    tail = request_number.rsplit('-', 1)[-1]
    return int(tail) if tail.isdigit() else None


def _sort_key(request_number: str) -> tuple:
    # Longer numbers win so that 1000 sorts after 999.
    return len(request_number), request_number


def last_request_number(prefix: str, when: datetime, columns) -> str | None:
    """Greatest number for prefix+month across every column sharing the space."""
    pattern = f'{prefix}-{when:%Y%m}-%'
    best = None
    for column in columns:
        row = (
            db.session.query(column)
            .filter(column.like(pattern))
            .order_by(func.length(column).desc(), column.desc())
            .first()
        )
        if row and row[0] and (best is None or _sort_key(row[0]) > _sort_key(best)):
            best = row[0]
    return best


def next_request_number(prefix: str, when: datetime, columns, after: str | None = None) -> str:
    """Candidate following the last stored number, and `after` when given."""
    sequence = (parse_sequence(last_request_number(prefix, when, columns)) or 0) + 1
    if after:
        sequence = max(sequence, (parse_sequence(after) or 0) + 1)
    return format_request_number(prefix, when, sequence)


def number_taken(request_number: str, columns) -> bool:
    for column in columns:
        if db.session.query(column).filter(column == request_number).first() is not None:
            return True
    return False


def insert_with_request_number(build, prefix: str, when: datetime, columns, max_retries: int | None = None):
    """
    Assign a number via ``build(number)`` and commit, retrying on collision.

    ``build`` adds the new rows to the session and returns the primary one.
    Integrity errors unrelated to the number are re-raised untouched.
    """
    if max_retries is None:
        max_retries = int(current_app.config.get('REQUEST_NUMBER_MAX_RETRIES', DEFAULT_MAX_RETRIES))
    candidate = None
    for attempt in range(1, max_retries + 1):
        candidate = next_request_number(prefix, when, columns, after=candidate)
        try:
            result = build(candidate)
            db.session.commit()
            return result
        except IntegrityError:
            db.session.rollback()
            if not number_taken(candidate, columns):
                raise
            logger.warning(
                'Request number %s already taken (attempt %d/%d); retrying',
                candidate, attempt, max_retries,
            )
    raise ConflictError(f'Could not allocate a {prefix} request number after {max_retries} attempts')
