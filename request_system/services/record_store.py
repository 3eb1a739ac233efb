"""
Storage collaborator used by the lifecycle engine.

``RecordStore`` is the contract the engine relies on; ``SqlRecordStore`` fulfils it
with Flask-SQLAlchemy. Backend failures surface as ``StoreError`` and a lost race on a
status update as ``StaleRecordError``; the engine decides what those mean to callers.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from request_system.constants import RequestType, Status
from request_system.errors import DuplicateCodeError, StaleRecordError, StoreError
from request_system.extensions import db
from request_system.models import AuditEntry, RequestRecord, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusPatch:
    """Everything one transition writes: new status, audit entry and any payload edits."""
    expected_status: Status
    status: Status
    audit: Dict[str, Any]
    payload_updates: Dict[str, Any] = field(default_factory=dict)


class RecordStore:
    def create_record(self, request_type, code, status, payload, requester, submitted_at=None):
        raise NotImplementedError

    def get_record(self, request_type, record_id) -> Optional[RequestRecord]:
        raise NotImplementedError

    def update_record(self, request_type, record_id, patch: StatusPatch) -> RequestRecord:
        raise NotImplementedError

    def list_records(self, request_type=None):
        raise NotImplementedError

    def get_user_profile(self, user_id) -> Optional[dict]:
        raise NotImplementedError


class SqlRecordStore(RecordStore):

    def create_record(self, request_type, code, status, payload, requester, submitted_at=None):
        request_type = RequestType(request_type)
        record = RequestRecord(
            request_type=request_type.value,
            code=code,
            status=Status(status).value,
            payload=dict(payload or {}),
            requester_user_id=requester.get('user_id'),
            requester_employee_id=requester.get('employee_id'),
            requester_name=requester.get('name'),
            requester_branch=requester.get('branch'),
            requester_department=requester.get('department'),
        )
        if submitted_at:
            record.submitted_at = submitted_at
        try:
            db.session.add(record)
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            raise DuplicateCodeError(f"{code} is already assigned") from e
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("Could not save %s %s", request_type.value, code)
            raise StoreError(f"Could not save {code}") from e
        return record

    def get_record(self, request_type, record_id):
        """Reads the record straight from the database, bypassing any cached copy."""
        try:
            record = db.session.get(RequestRecord, record_id, populate_existing=True)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreError(f"Could not load record {record_id}") from e
        if record is None or record.request_type != RequestType(request_type).value:
            return None
        return record

    def update_record(self, request_type, record_id, patch):
        request_type = RequestType(request_type)
        try:
            values = {'status': patch.status.value}
            if patch.payload_updates:
                current = db.session.get(RequestRecord, record_id)
                values['payload'] = {**(current.payload or {}), **patch.payload_updates}

            # Compare-and-set: only applies if nobody moved the record since it was validated
            result = db.session.execute(
                update(RequestRecord)
                .where(RequestRecord.id == record_id,
                       RequestRecord.request_type == request_type.value,
                       RequestRecord.status == patch.expected_status.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.session.rollback()
                raise StaleRecordError(f"Record {record_id} is no longer {patch.expected_status.value}")

            db.session.add(AuditEntry(
                record_id=record_id,
                from_status=patch.expected_status.value,
                to_status=patch.status.value,
                **patch.audit
            ))
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("Could not update record %s", record_id)
            raise StoreError(f"Could not update record {record_id}") from e

        return self.get_record(request_type, record_id)

    def list_records(self, request_type=None):
        query = RequestRecord.query
        if request_type is not None:
            query = query.filter_by(request_type=RequestType(request_type).value)
        try:
            return query.order_by(RequestRecord.code.desc()).all()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreError("Could not list records") from e

    def get_user_profile(self, user_id):
        try:
            user = db.session.get(User, user_id)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreError(f"Could not load user {user_id}") from e
        return user.profile() if user else None
