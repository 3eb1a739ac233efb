"""
Authorization gate: which transitions a role may trigger on a form in a given status.

The permission table is derived once from the lifecycle tables and is keyed by
(role, request type, status). Anything not in it is denied. The gate holds no
per-user or per-record state, so the same question always gets the same answer.
"""
from typing import Dict, FrozenSet, Tuple

from request_system.constants import RequestType, Role, Status
from request_system.services.state_machine import STATE_MACHINES, Transition

NO_TRANSITIONS: FrozenSet[Transition] = frozenset()


def build_permission_table(machines) -> Dict[Tuple[Role, RequestType, Status], FrozenSet[Transition]]:
    grants = {}
    for request_type, machine in machines.items():
        for status in machine.states:
            for transition in machine.outgoing(status):
                key = (transition.required_role, request_type, status)
                grants.setdefault(key, set()).add(transition)
    return {key: frozenset(value) for key, value in grants.items()}


PERMISSIONS = build_permission_table(STATE_MACHINES)


def can_act(role, request_type, from_status) -> FrozenSet[Transition]:
    """Transitions ``role`` may trigger on a ``request_type`` record sitting in ``from_status``."""
    if not isinstance(role, Role):
        # Role strings are parsed once when the actor context is built; refuse anything else here
        return NO_TRANSITIONS
    try:
        key = (role, RequestType(request_type), Status(from_status))
    except ValueError:
        return NO_TRANSITIONS
    return PERMISSIONS.get(key, NO_TRANSITIONS)


def allowed_targets(role, request_type, from_status) -> FrozenSet[Status]:
    return frozenset(t.to for t in can_act(role, request_type, from_status))


def is_permitted(role, transition: Transition, request_type) -> bool:
    return transition in can_act(role, request_type, transition.source)


def roles_acting_on(request_type) -> FrozenSet[Role]:
    """Roles holding at least one grant on ``request_type``."""
    request_type = RequestType(request_type)
    return frozenset(role for role, rtype, _ in PERMISSIONS if rtype == request_type)


def statuses_actionable_by(role, request_type) -> FrozenSet[Status]:
    """Statuses in which ``role`` has something to do: its work queue for the type."""
    request_type = RequestType(request_type)
    return frozenset(status for r, rtype, status in PERMISSIONS if r == role and rtype == request_type)
