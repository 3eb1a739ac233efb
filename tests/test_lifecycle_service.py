from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from request_system.constants import RequestType, Role, Status
from request_system.errors import (
    ClientAction, CodeAssignmentFailed, MissingRequiredField, NoSuchTransition,
    PersistenceFailed, StaleRecordError, StoreError, Unauthorized,
)
from request_system.extensions import db
from request_system.models import AuditEntry, utcnow
from request_system.services.lifecycle_service import LifecycleEngine
from request_system.services.record_store import SqlRecordStore, StatusPatch
from request_system.services.state_machine import machine_for

from conftest import FIXED_NOW

PAYMENT_COMPLETION = {'gl_code': 'GL-01', 'or_no': 'OR-100', 'gl_amount': '500.00', 'check_number': 'CHK-77'}


def audit_count(record):
    return AuditEntry.query.filter_by(record_id=record.id).count()


@pytest.fixture
def received_payment(submit, drive):
    record = submit(RequestType.PAYMENT_REQUEST, {'payee': 'ACME', 'amount': '500.00'})
    return drive(record,
                 (Status.APPROVED, Role.APPROVE, {}),
                 (Status.RECEIVED, Role.ACCOUNTING, {}))


# --- submit ---

def test_submit_creates_pending_record_with_snapshot(submit, actors):
    record = submit(RequestType.REIMBURSEMENT, {'amount': '120.00'})
    staff = actors[Role.STAFF]
    assert record.status == Status.PENDING.value
    assert record.code == 'RB-2024-000001'
    assert record.submitted_at == FIXED_NOW
    assert record.payload == {'amount': '120.00'}
    assert record.requester_name == staff.name
    assert record.requester_employee_id == staff.employee_id
    assert record.audit == []


def test_back_to_back_submissions_get_increasing_codes(submit):
    first = submit(RequestType.PURCHASE_REQUEST)
    second = submit(RequestType.PURCHASE_REQUEST)
    assert first.code < second.code


def test_submit_reports_code_failure(app, actors):
    codes = MagicMock()
    codes.next_code.side_effect = StoreError('counter locked')
    engine = LifecycleEngine(codes=codes)

    record, error = engine.submit(RequestType.PURCHASE_REQUEST, {}, actors[Role.STAFF])
    assert record is None
    assert isinstance(error, CodeAssignmentFailed)
    assert error.client_action == ClientAction.REPORT


def test_submit_reports_duplicate_code(app, actors):
    codes = MagicMock()
    codes.next_code.return_value = 'PR-2024-000001'
    engine = LifecycleEngine(codes=codes)

    assert engine.submit(RequestType.PURCHASE_REQUEST, {}, actors[Role.STAFF]).ok
    _, error = engine.submit(RequestType.PURCHASE_REQUEST, {}, actors[Role.STAFF])
    assert isinstance(error, CodeAssignmentFailed)


def test_submit_reports_store_failure(app, actors):
    store = MagicMock()
    store.create_record.side_effect = StoreError('timeout')
    engine = LifecycleEngine(store=store)

    _, error = engine.submit(RequestType.PURCHASE_REQUEST, {}, actors[Role.STAFF])
    assert isinstance(error, PersistenceFailed)


# --- scenarios ---

def test_payment_completion_records_all_fields(engine, actors, received_payment):
    record, error = engine.apply_transition(received_payment, Status.COMPLETED, actors[Role.ACCOUNTING],
                                            PAYMENT_COMPLETION)
    assert error is None
    assert record.status == Status.COMPLETED.value
    entry = record.audit[-1]
    assert entry.fields == PAYMENT_COMPLETION
    assert entry.from_status == Status.RECEIVED.value
    assert entry.role_at_action == Role.ACCOUNTING.value
    assert entry.actor_name == actors[Role.ACCOUNTING].name
    assert entry.actor_signature_ref == actors[Role.ACCOUNTING].signature_ref
    assert entry.note is None
    assert record.attached_fields() == PAYMENT_COMPLETION


def test_payment_completion_without_check_number(engine, actors, received_payment):
    fields = dict(PAYMENT_COMPLETION)
    del fields['check_number']
    before = audit_count(received_payment)

    record, error = engine.apply_transition(received_payment, Status.COMPLETED, actors[Role.ACCOUNTING], fields)
    assert record is None
    assert isinstance(error, MissingRequiredField)
    assert error.field == 'check_number'
    assert error.client_action == ClientAction.FIX_FIELD
    assert SqlRecordStore().get_record(RequestType.PAYMENT_REQUEST, received_payment.id).status == 'Received'
    assert audit_count(received_payment) == before


def test_first_missing_field_is_reported_in_declared_order(engine, actors, received_payment):
    _, error = engine.apply_transition(received_payment, Status.COMPLETED, actors[Role.ACCOUNTING],
                                       {'gl_amount': '1.00', 'or_no': '  '})
    assert error.field == 'gl_code'


def test_staff_cannot_accomplish_maintenance(engine, actors, submit, drive):
    record = drive(submit(RequestType.MAINTENANCE_REPAIR), (Status.APPROVED, Role.APPROVE, {}))
    _, error = engine.apply_transition(record, Status.ACCOMPLISHED, actors[Role.STAFF],
                                       {'performed_by': 'Juan', 'remarks': 'Fixed'})
    assert isinstance(error, Unauthorized)
    assert error.client_action == ClientAction.REFRESH
    assert record.status == Status.APPROVED.value


def test_liquidation_endorsement_needs_endorser(engine, actors, submit):
    record = submit(RequestType.CASH_ADVANCE_LIQUIDATION)

    _, error = engine.apply_transition(record, Status.ENDORSED, actors[Role.APPROVE])
    assert isinstance(error, Unauthorized)
    assert audit_count(record) == 0

    record, error = engine.apply_transition(record, Status.ENDORSED, actors[Role.ENDORSE])
    assert error is None
    assert record.status == Status.ENDORSED.value
    assert len(record.audit) == 1
    assert record.audit[0].note is None


# --- edge cases ---

@pytest.mark.parametrize('request_type', list(RequestType))
def test_terminal_statuses_refuse_every_move(engine, actors, submit, force_status, request_type):
    machine = machine_for(request_type)
    record = submit(request_type)
    for terminal in machine.terminal_states:
        force_status(record, terminal)
        for actor in actors.values():
            for target in Status:
                _, error = engine.apply_transition(record, target, actor, {'declined_reason': 'x'})
                assert isinstance(error, NoSuchTransition), (terminal, actor.role, target)
    assert audit_count(record) == 0


@pytest.mark.parametrize('note', ['', '   ', '\t\n', None])
def test_decline_needs_a_real_note(engine, actors, submit, note):
    record = submit(RequestType.OVERTIME_APPROVAL)
    _, error = engine.apply_transition(record, Status.DECLINED, actors[Role.APPROVE], {'declined_reason': note})
    assert isinstance(error, MissingRequiredField)
    assert error.field == 'declined_reason'
    assert audit_count(record) == 0


def test_decline_stores_trimmed_note(engine, actors, submit):
    record = submit(RequestType.REVOLVING_FUND)
    record, error = engine.apply_transition(record, Status.DECLINED, actors[Role.APPROVE],
                                            {'declined_reason': '  over budget  '})
    assert error is None
    assert record.declined_reason() == 'over budget'
    assert record.to_dict()['declined_reason'] == 'over budget'


def test_double_approve_yields_one_audit_entry(engine, actors, submit):
    record = submit(RequestType.PURCHASE_REQUEST)
    stale_copy = record

    first = engine.apply_transition(stale_copy, Status.APPROVED, actors[Role.APPROVE])
    second = engine.apply_transition(stale_copy, Status.APPROVED, actors[Role.APPROVE])

    assert first.ok
    assert isinstance(second.error, NoSuchTransition)
    assert audit_count(record) == 1


def test_compare_and_set_refuses_stale_status(engine, actors, submit, drive):
    record = drive(submit(RequestType.PURCHASE_REQUEST), (Status.APPROVED, Role.APPROVE, {}))
    patch_ = StatusPatch(
        expected_status=Status.PENDING,
        status=Status.DECLINED,
        audit={'actor_name': 'Late Approver', 'role_at_action': 'approve', 'fields': {}},
    )
    with pytest.raises(StaleRecordError):
        SqlRecordStore().update_record(RequestType.PURCHASE_REQUEST, record.id, patch_)
    assert audit_count(record) == 1


def test_lost_race_is_reported_as_no_such_transition(app, actors, submit):
    store = SqlRecordStore()
    store.update_record = MagicMock(side_effect=StaleRecordError('moved'))
    engine = LifecycleEngine(store=store)

    _, error = engine.apply_transition(submit(RequestType.REIMBURSEMENT), Status.APPROVED, actors[Role.APPROVE])
    assert isinstance(error, NoSuchTransition)


def test_persistence_failure_leaves_record_unchanged(engine, actors, submit):
    record = submit(RequestType.PURCHASE_REQUEST)
    failure = OperationalError('UPDATE request_record', {}, Exception('database is locked'))

    with patch.object(db.session, 'commit', side_effect=failure):
        result, error = engine.apply_transition(record, Status.APPROVED, actors[Role.APPROVE])

    assert result is None
    assert isinstance(error, PersistenceFailed)
    assert error.client_action == ClientAction.RETRY
    reloaded = SqlRecordStore().get_record(RequestType.PURCHASE_REQUEST, record.id)
    assert reloaded.status == Status.PENDING.value
    assert audit_count(record) == 0


def test_unknown_target_status(engine, actors, submit):
    _, error = engine.apply_transition(submit(RequestType.PURCHASE_REQUEST), 'Shipped', actors[Role.APPROVE])
    assert isinstance(error, NoSuchTransition)


def test_missing_record_is_a_persistence_failure(engine, actors, submit):
    record = submit(RequestType.PURCHASE_REQUEST)
    store = MagicMock()
    store.get_record.return_value = None
    _, error = LifecycleEngine(store=store).apply_transition(record, Status.APPROVED, actors[Role.APPROVE])
    assert isinstance(error, PersistenceFailed)
    store.update_record.assert_not_called()


def test_maintenance_accomplish_defaults_date_and_edits_payload(engine, actors, submit, drive):
    record = drive(submit(RequestType.MAINTENANCE_REPAIR, {'item': 'Aircon', 'location': 'HO'}),
                   (Status.APPROVED, Role.APPROVE, {}))

    record, error = engine.apply_transition(record, Status.ACCOMPLISHED, actors[Role.ACCOMPLISH],
                                            {'performed_by': ' Juan ', 'remarks': 'Replaced filter'})
    assert error is None
    assert record.payload == {
        'item': 'Aircon', 'location': 'HO',
        'performed_by': 'Juan', 'remarks': 'Replaced filter', 'date_completed': '2024-03-05',
    }
    assert record.audit[-1].fields['date_completed'] == '2024-03-05'


def test_maintenance_accomplish_requires_remarks(engine, actors, submit, drive):
    record = drive(submit(RequestType.MAINTENANCE_REPAIR), (Status.APPROVED, Role.APPROVE, {}))
    _, error = engine.apply_transition(record, Status.ACCOMPLISHED, actors[Role.ACCOMPLISH],
                                       {'performed_by': 'Juan'})
    assert error.field == 'remarks'


def test_other_transitions_do_not_touch_payload(engine, actors, submit, drive):
    record = drive(submit(RequestType.PURCHASE_REQUEST, {'items': ['paper']}),
                   (Status.APPROVED, Role.APPROVE, {}),
                   (Status.COMPLETED, Role.ACCOUNTING, {'date_ordered': '2024-03-04', 'po_number': 'PO-9'}))
    assert record.payload == {'items': ['paper']}
    assert record.attached_fields() == {'date_ordered': '2024-03-04', 'po_number': 'PO-9'}


def test_cash_advance_optional_fields(engine, actors, submit, drive):
    record = drive(submit(RequestType.CASH_ADVANCE), (Status.APPROVED, Role.APPROVE, {}))
    record, error = engine.apply_transition(record, Status.COMPLETED, actors[Role.ACCOUNTING],
                                            {'bank_gl_code': 'BDO-1', 'check_no': 1234, 'voucher_petty_cash': ''})
    assert error is None
    assert record.audit[-1].fields == {'bank_gl_code': 'BDO-1', 'check_no': '1234'}


def test_leave_approval_defaults_date_received(engine, actors, submit, drive):
    record = drive(submit(RequestType.LEAVE_APPLICATION), (Status.ENDORSED, Role.ENDORSE, {}))
    record, error = engine.apply_transition(record, Status.APPROVED, actors[Role.APPROVE], {'remarks': 'Enjoy'})
    assert error is None
    assert record.audit[-1].fields == {'remarks': 'Enjoy', 'date_received': '2024-03-05'}


def test_interbranch_transfer_full_path(submit, drive):
    record = drive(submit(RequestType.INTERBRANCH_TRANSFER),
                   (Status.APPROVED, Role.APPROVE, {}),
                   (Status.DISPATCHED, Role.DISPATCH, {}),
                   (Status.RECEIVED, Role.STAFF, {}))
    assert [e.to_status for e in record.audit] == ['Approved', 'Dispatched', 'Received']


def test_available_transitions(engine, actors, submit):
    record = submit(RequestType.PURCHASE_REQUEST)
    assert [t.to for t in engine.available_transitions(record, actors[Role.APPROVE])] == \
        [Status.APPROVED, Status.DECLINED]
    assert engine.available_transitions(record, actors[Role.STAFF]) == []
    assert engine.available_transitions(record, actors[Role.VIEWER]) == []


def test_notifier_runs_after_success_and_failures_are_swallowed(app, actors, submit):
    notifier = MagicMock(side_effect=RuntimeError('smtp down'))
    engine = LifecycleEngine(notifier=notifier)

    record, error = engine.apply_transition(submit(RequestType.REIMBURSEMENT), Status.APPROVED, actors[Role.APPROVE])
    assert error is None
    assert record.status == Status.APPROVED.value
    notifier.assert_called_once()
    assert notifier.call_args[0][1].to == Status.APPROVED


def test_notifier_not_called_on_rejection(app, actors, submit):
    notifier = MagicMock()
    engine = LifecycleEngine(notifier=notifier)
    engine.apply_transition(submit(RequestType.REIMBURSEMENT), Status.APPROVED, actors[Role.STAFF])
    notifier.assert_not_called()


def test_default_clock_is_naive_utc(app):
    now = LifecycleEngine().clock()
    assert now.tzinfo is None
    assert abs((now - utcnow()).total_seconds()) < 60
