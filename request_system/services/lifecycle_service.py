"""
The lifecycle engine: submission and status transitions for every form type.

Every call returns an ``Outcome``. Rejections carry one of the ``LifecycleError``
kinds and leave the record untouched; a successful transition writes the new
status, the audit entry and any payload edits in a single store call.
"""
import logging
from datetime import date, datetime

from request_system.constants import DECLINE_NOTE_FIELD, RequestType, Status
from request_system.errors import (
    CodeAssignmentFailed, DuplicateCodeError, MissingRequiredField, NoSuchTransition,
    Outcome, PersistenceFailed, StaleRecordError, StoreError, Unauthorized,
)
from request_system.models import utcnow
from request_system.services.authorization import can_act
from request_system.services.code_service import ReferenceCodeService
from request_system.services.record_store import SqlRecordStore, StatusPatch
from request_system.services.state_machine import machine_for

logger = logging.getLogger(__name__)


def _clean(value):
    if value is None:
        return ''
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value).strip()


class LifecycleEngine:

    def __init__(self, store=None, codes=None, clock=None, notifier=None):
        self.store = store or SqlRecordStore()
        self.codes = codes or ReferenceCodeService
        self.clock = clock or utcnow
        # Called with (record, transition) after a successful transition
        self.notifier = notifier

    def _reject(self, error, request_type, code, actor):
        logger.warning("%s rejected for %s %s by %s: %s",
                       error.kind, request_type.value, code or '-', actor.name, error.message)
        return Outcome.failure(error)

    def submit(self, request_type, payload, actor):
        """Creates a record in the form's initial status with a fresh reference code."""
        request_type = RequestType(request_type)
        machine = machine_for(request_type)
        now = self.clock()

        try:
            code = self.codes.next_code(request_type, today=now.date())
        except StoreError as e:
            return self._reject(CodeAssignmentFailed(str(e)), request_type, None, actor)

        try:
            record = self.store.create_record(
                request_type, code, machine.initial, payload or {},
                requester=actor.requester_snapshot(), submitted_at=now,
            )
        except DuplicateCodeError as e:
            return self._reject(CodeAssignmentFailed(str(e)), request_type, code, actor)
        except StoreError as e:
            return self._reject(PersistenceFailed(str(e)), request_type, code, actor)

        logger.info("%s submitted %s", actor.name, code)
        return Outcome.success(record)

    def available_transitions(self, record, actor):
        """What ``actor`` may do to ``record`` right now, in table order."""
        allowed = can_act(actor.role, record.request_type, record.status)
        machine = machine_for(record.request_type)
        return [t for t in machine.outgoing(Status(record.status)) if t in allowed]

    def _collect_fields(self, transition, fields, today):
        values = {}
        for name in transition.attaches_fields + transition.optional_fields:
            values[name] = _clean(fields.get(name))
        for name in transition.date_defaults:
            if not values.get(name):
                values[name] = today.isoformat()

        note = _clean(fields.get(DECLINE_NOTE_FIELD)) if transition.requires_note else None
        for name in transition.required_fields:
            value = note if name == DECLINE_NOTE_FIELD else values.get(name)
            if not value:
                raise MissingRequiredField(name)

        return {k: v for k, v in values.items() if v}, note

    def apply_transition(self, record, to_status, actor, fields=None):
        """
        Moves ``record`` to ``to_status`` on behalf of ``actor``.

        The record is re-read first, so a client acting on a stale copy gets
        NoSuchTransition rather than a silent overwrite. Checks run in order:
        transition exists, actor may trigger it, required fields present. The
        write itself is conditional on the status still being the one checked.
        """
        request_type = RequestType(record.request_type)
        code = record.code
        record_id = record.id

        try:
            current = self.store.get_record(request_type, record_id)
        except StoreError as e:
            return self._reject(PersistenceFailed(str(e)), request_type, code, actor)
        if current is None:
            return self._reject(PersistenceFailed(f"{code} could not be loaded"), request_type, code, actor)

        source = Status(current.status)
        try:
            target = Status(to_status)
        except ValueError:
            return self._reject(NoSuchTransition(f"'{to_status}' is not a status"), request_type, code, actor)

        transition = machine_for(request_type).find(source, target)
        if transition is None:
            return self._reject(
                NoSuchTransition(f"{code} is {source.value} and cannot move to {target.value}."),
                request_type, code, actor,
            )

        if transition not in can_act(actor.role, request_type, source):
            return self._reject(
                Unauthorized(f"Your role cannot move {code} to {target.value}."),
                request_type, code, actor,
            )

        now = self.clock()
        try:
            attached, note = self._collect_fields(transition, fields or {}, now.date())
        except MissingRequiredField as e:
            return self._reject(e, request_type, code, actor)

        patch = StatusPatch(
            expected_status=source,
            status=target,
            audit={
                'actor_user_id': actor.user_id,
                'actor_name': actor.name,
                'actor_signature_ref': actor.signature_ref,
                'role_at_action': actor.role.value,
                'acted_at': now,
                'note': note,
                'fields': attached,
            },
            payload_updates=attached if transition.edits_payload else {},
        )

        try:
            updated = self.store.update_record(request_type, record_id, patch)
        except StaleRecordError:
            return self._reject(
                NoSuchTransition(f"{code} was changed by someone else. Refresh and try again."),
                request_type, code, actor,
            )
        except StoreError as e:
            return self._reject(PersistenceFailed(str(e)), request_type, code, actor)

        logger.info("%s %s: %s -> %s by %s (%s)", request_type.value, code,
                    source.value, target.value, actor.name, actor.role.value)
        self._notify(updated, transition)
        return Outcome.success(updated)

    def _notify(self, record, transition):
        if self.notifier is None:
            return
        try:
            self.notifier(record, transition)
        except Exception:
            # The transition is already committed
            logger.exception("Notification failed for %s", record.code)
