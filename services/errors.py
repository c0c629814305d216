"""Error taxonomy for change control and auditing."""


class ChangeControlError(Exception):
    """Base class for domain errors."""


class ValidationError(ChangeControlError):
    """A required field is missing or invalid. Fix the input; do not retry."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message

    def to_dict(self) -> dict:
        return {'field': self.field, 'message': self.message}


class NotFoundError(ChangeControlError):
    """An update path could not locate the tracked row."""

    def __init__(self, entity_type: str, entity_id):
        super().__init__(f'{entity_type} {entity_id} not found')
        self.entity_type = entity_type
        self.entity_id = entity_id


class InvalidTransitionError(ChangeControlError):
    """A status guard failed. Lifecycle calls report this as False."""

    def __init__(self, request_no: str, current: str, operation: str):
        super().__init__(f'Cannot {operation} {request_no} while it is {current}')
        self.request_no = request_no
        self.current = current
        self.operation = operation


class ConflictError(ChangeControlError):
    """A uniqueness constraint was violated."""


class AuditWriteError(ChangeControlError):
    """Both the primary and the fallback audit write failed. Logged, never raised."""

    def __init__(self, entity_type: str, action: str, entity_id, primary: Exception, fallback: Exception):
        super().__init__(
            f'Audit write lost for {entity_type}:{entity_id} {action} '
            f'(primary: {primary}; fallback: {fallback})'
        )
        self.entity_type = entity_type
        self.action = action
        self.entity_id = entity_id
        self.primary = primary
        self.fallback = fallback
