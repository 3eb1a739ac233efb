"""
Lifecycle error taxonomy.

The lifecycle engine never raises these past its own boundary: it hands them back
inside an ``Outcome`` so the caller decides how to message the user. ``client_action``
tells the presentation layer what to do with each kind.
"""
from typing import NamedTuple, Optional


class ClientAction:
    REFRESH = 'refresh'      # stale client state; reload the record
    FIX_FIELD = 'fix_field'  # inline message on the named field
    RETRY = 'retry'          # backend trouble; offer the action again
    REPORT = 'report'        # creation failed; nothing to retry on this record


class LifecycleError(Exception):
    kind = 'LifecycleError'
    http_status = 400
    client_action = ClientAction.REFRESH

    def __init__(self, message, field=None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self):
        data = {
            'kind': self.kind,
            'message': self.message,
            'client_action': self.client_action,
        }
        if self.field:
            data['field'] = self.field
        return data


class NoSuchTransition(LifecycleError):
    kind = 'NoSuchTransition'
    http_status = 409


class Unauthorized(LifecycleError):
    kind = 'Unauthorized'
    http_status = 403


class MissingRequiredField(LifecycleError):
    kind = 'MissingRequiredField'
    http_status = 422
    client_action = ClientAction.FIX_FIELD

    def __init__(self, field):
        super().__init__(f"'{field}' is required.", field=field)


class CodeAssignmentFailed(LifecycleError):
    kind = 'CodeAssignmentFailed'
    http_status = 500
    client_action = ClientAction.REPORT


class PersistenceFailed(LifecycleError):
    kind = 'PersistenceFailed'
    http_status = 503
    client_action = ClientAction.RETRY


class StoreError(Exception):
    """A storage backend call failed or timed out."""


class StaleRecordError(StoreError):
    """The record's status no longer matches the status the update was validated against."""


class DuplicateCodeError(StoreError):
    """A record with the same reference code already exists for the type."""


class Outcome(NamedTuple):
    """Result of an engine call: exactly one of ``record`` or ``error`` is set."""
    record: Optional[object]
    error: Optional[LifecycleError]

    @property
    def ok(self):
        return self.error is None

    @classmethod
    def success(cls, record):
        return cls(record, None)

    @classmethod
    def failure(cls, error):
        return cls(None, error)
