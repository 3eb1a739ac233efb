"""Read-only list and report views over request records. Nothing here changes a record."""
from collections import Counter
from datetime import datetime, time

from request_system.constants import REPORT_ROLES, RequestType, Status
from request_system.services.authorization import roles_acting_on, statuses_actionable_by

REPORT_SEARCH_FIELDS = ('requester_employee_id', 'requester_name', 'requester_branch',
                        'requester_department', 'code', 'status')


def newest_first(records):
    # Codes only order within one prefix; lists can mix form types
    return sorted(records, key=lambda r: (r.submitted_at or datetime.min, r.code), reverse=True)


def can_view(actor, record):
    if actor.user_id is not None and record.requester_user_id == actor.user_id:
        return True
    if actor.role in REPORT_ROLES:
        return True
    return actor.role in roles_acting_on(record.request_type)


def visible(records, actor):
    return newest_first(r for r in records if can_view(actor, r))


def pending_queue(records, actor):
    """Records waiting on something the actor's role can do, within their form access."""
    queue = []
    for record in records:
        request_type = RequestType(record.request_type)
        if not actor.handles(request_type):
            continue
        if Status(record.status) in statuses_actionable_by(actor.role, request_type):
            queue.append(record)
    return newest_first(queue)


def my_requests(records, actor):
    return newest_first(r for r in records if r.requester_user_id == actor.user_id)


def by_status(records, status):
    status = Status(status)
    return newest_first(r for r in records if r.status == status.value)


def _parse_day(value, end=False):
    if not value:
        return None
    if isinstance(value, str):
        value = datetime.strptime(value, '%Y-%m-%d').date()
    return datetime.combine(value, time.max if end else time.min)


def report(records, start=None, end=None, search=None):
    """
    Report rows for the given submission window (inclusive) and search text.

    ``start``/``end`` accept dates or ``YYYY-MM-DD`` strings and raise ValueError on
    anything else. Report rows never carry actions.
    """
    start_at = _parse_day(start)
    end_at = _parse_day(end, end=True)
    needle = (search or '').strip().lower()

    rows = []
    for record in newest_first(records):
        if start_at and record.submitted_at < start_at:
            continue
        if end_at and record.submitted_at > end_at:
            continue
        if needle and not any(needle in str(getattr(record, f) or '').lower() for f in REPORT_SEARCH_FIELDS):
            continue
        row = record.to_dict(include_audit=False)
        row['actions'] = []
        rows.append(row)
    return rows


def status_summary(records):
    counts = Counter(r.status for r in records)
    return {status.value: counts.get(status.value, 0) for status in Status}
