"""
Per-form lifecycle tables.

Each request type supplies only data: its status set, initial status and the
transitions leaving each status. All transition logic lives in the lifecycle
engine; nothing in here knows about records or actors.
"""
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple

from request_system.constants import DECLINE_NOTE_FIELD, RequestType, Role, Status


@dataclass(frozen=True)
class Transition:
    source: Status
    to: Status
    required_role: Role
    requires_note: bool = False
    attaches_fields: Tuple[str, ...] = ()
    optional_fields: Tuple[str, ...] = ()
    # Fields that take today's date when left blank
    date_defaults: Tuple[str, ...] = ()
    # Attached fields are also written into the record payload
    edits_payload: bool = False

    @property
    def is_decline(self):
        return self.to == Status.DECLINED

    @property
    def required_fields(self):
        """Fields validated before the transition is accepted, in declared order."""
        if self.requires_note:
            return (DECLINE_NOTE_FIELD,) + self.attaches_fields
        return self.attaches_fields


@dataclass(frozen=True)
class StateMachine:
    request_type: RequestType
    states: FrozenSet[Status]
    initial: Status
    transitions: Dict[Status, Tuple[Transition, ...]]

    def outgoing(self, status):
        return self.transitions.get(status, ())

    def find(self, source, target) -> Optional[Transition]:
        for transition in self.outgoing(source):
            if transition.to == target:
                return transition
        return None

    def is_terminal(self, status):
        return not self.outgoing(status)

    @property
    def terminal_states(self):
        return frozenset(s for s in self.states if self.is_terminal(s))


# --- table helpers ---

def approve(source, to=Status.APPROVED, role=Role.APPROVE, **kwargs):
    return Transition(source=source, to=to, required_role=role, **kwargs)


def decline(source, role=Role.APPROVE):
    return Transition(source=source, to=Status.DECLINED, required_role=role, requires_note=True)


def build(request_type, states, edges, initial=Status.PENDING):
    """Groups edges by source status and checks the table is closed over ``states``."""
    states = frozenset(states)
    if initial not in states:
        raise ValueError(f"{request_type.value}: initial status {initial.value} is not declared")

    table = {}
    for edge in edges:
        if edge.source not in states or edge.to not in states:
            raise ValueError(
                f"{request_type.value}: {edge.source.value} -> {edge.to.value} leaves the declared status set"
            )
        if edge.requires_note != edge.is_decline:
            raise ValueError(f"{request_type.value}: only declines carry a note")
        table.setdefault(edge.source, ())
        table[edge.source] += (edge,)

    return StateMachine(request_type=request_type, states=states, initial=initial, transitions=table)


# Pending -> Approved | Declined, shared by the single-signature forms
def _single_approval(request_type):
    return build(request_type, {Status.PENDING, Status.APPROVED, Status.DECLINED}, [
        approve(Status.PENDING),
        decline(Status.PENDING),
    ])


STATE_MACHINES = {
    RequestType.PURCHASE_REQUEST: build(
        RequestType.PURCHASE_REQUEST,
        {Status.PENDING, Status.APPROVED, Status.COMPLETED, Status.DECLINED},
        [
            approve(Status.PENDING),
            decline(Status.PENDING),
            approve(Status.APPROVED, Status.COMPLETED, Role.ACCOUNTING,
                    attaches_fields=('date_ordered', 'po_number')),
        ],
    ),
    RequestType.CASH_ADVANCE: build(
        RequestType.CASH_ADVANCE,
        {Status.PENDING, Status.APPROVED, Status.COMPLETED, Status.DECLINED},
        [
            approve(Status.PENDING),
            decline(Status.PENDING),
            approve(Status.APPROVED, Status.COMPLETED, Role.ACCOUNTING,
                    attaches_fields=('bank_gl_code',),
                    optional_fields=('check_no', 'voucher_petty_cash')),
        ],
    ),
    RequestType.CASH_ADVANCE_LIQUIDATION: build(
        RequestType.CASH_ADVANCE_LIQUIDATION,
        {Status.PENDING, Status.ENDORSED, Status.APPROVED, Status.DECLINED},
        [
            approve(Status.PENDING, Status.ENDORSED, Role.ENDORSE),
            decline(Status.PENDING, Role.ENDORSE),
            approve(Status.ENDORSED),
            decline(Status.ENDORSED),
        ],
    ),
    RequestType.CA_RECEIPT: build(
        RequestType.CA_RECEIPT,
        {Status.PENDING, Status.RECEIVED, Status.DECLINED},
        [
            approve(Status.PENDING, Status.RECEIVED, Role.ACCOUNTING),
            decline(Status.PENDING, Role.ACCOUNTING),
        ],
    ),
    RequestType.REIMBURSEMENT: _single_approval(RequestType.REIMBURSEMENT),
    RequestType.PAYMENT_REQUEST: build(
        RequestType.PAYMENT_REQUEST,
        {Status.PENDING, Status.APPROVED, Status.RECEIVED, Status.COMPLETED, Status.DECLINED},
        [
            approve(Status.PENDING),
            decline(Status.PENDING),
            approve(Status.APPROVED, Status.RECEIVED, Role.ACCOUNTING),
            approve(Status.RECEIVED, Status.COMPLETED, Role.ACCOUNTING,
                    attaches_fields=('gl_code', 'or_no', 'gl_amount', 'check_number')),
        ],
    ),
    RequestType.MAINTENANCE_REPAIR: build(
        RequestType.MAINTENANCE_REPAIR,
        {Status.PENDING, Status.APPROVED, Status.ACCOMPLISHED, Status.DECLINED},
        [
            approve(Status.PENDING),
            decline(Status.PENDING),
            approve(Status.APPROVED, Status.ACCOMPLISHED, Role.ACCOMPLISH,
                    attaches_fields=('performed_by', 'remarks', 'date_completed'),
                    date_defaults=('date_completed',),
                    edits_payload=True),
        ],
    ),
    RequestType.OVERTIME_APPROVAL: _single_approval(RequestType.OVERTIME_APPROVAL),
    RequestType.LEAVE_APPLICATION: build(
        RequestType.LEAVE_APPLICATION,
        {Status.PENDING, Status.ENDORSED, Status.APPROVED, Status.DECLINED},
        [
            approve(Status.PENDING, Status.ENDORSED, Role.ENDORSE),
            decline(Status.PENDING, Role.ENDORSE),
            approve(Status.ENDORSED,
                    attaches_fields=('remarks', 'date_received'),
                    date_defaults=('date_received',)),
            decline(Status.ENDORSED),
        ],
    ),
    RequestType.REVOLVING_FUND: _single_approval(RequestType.REVOLVING_FUND),
    RequestType.INTERBRANCH_TRANSFER: build(
        RequestType.INTERBRANCH_TRANSFER,
        {Status.PENDING, Status.APPROVED, Status.DISPATCHED, Status.RECEIVED, Status.DECLINED},
        [
            approve(Status.PENDING),
            decline(Status.PENDING),
            approve(Status.APPROVED, Status.DISPATCHED, Role.DISPATCH),
            decline(Status.APPROVED, Role.DISPATCH),
            approve(Status.DISPATCHED, Status.RECEIVED, Role.STAFF),
        ],
    ),
    RequestType.TRANSMITTAL: build(
        RequestType.TRANSMITTAL,
        {Status.PENDING, Status.RECEIVED, Status.DECLINED},
        [
            approve(Status.PENDING, Status.RECEIVED, Role.STAFF,
                    attaches_fields=('received_date',),
                    date_defaults=('received_date',)),
            decline(Status.PENDING, Role.STAFF),
        ],
    ),
    RequestType.CREDIT_CARD_ACKNOWLEDGEMENT: build(
        RequestType.CREDIT_CARD_ACKNOWLEDGEMENT,
        {Status.PENDING, Status.RECEIVED, Status.DECLINED},
        [
            approve(Status.PENDING, Status.RECEIVED, Role.ACCOUNTING),
            decline(Status.PENDING, Role.ACCOUNTING),
        ],
    ),
}

if set(STATE_MACHINES) != set(RequestType):
    raise ValueError("Every request type needs a lifecycle table")


def machine_for(request_type) -> StateMachine:
    return STATE_MACHINES[RequestType(request_type)]
