from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from request_system.constants import REPORT_ROLES, RequestType, Role
from request_system.errors import StoreError
from request_system.services import projection_service
from request_system.services.record_store import SqlRecordStore

reports_bp = Blueprint('reports', __name__)


def _forbidden():
    return jsonify({'kind': 'Unauthorized', 'message': 'Reports are limited to admin and accounting.'}), 403


@reports_bp.route('/summary')
@login_required
def summary():
    if Role.parse(current_user.role) not in REPORT_ROLES:
        return _forbidden()
    try:
        records = SqlRecordStore().list_records()
    except StoreError as e:
        return jsonify({'kind': 'PersistenceFailed', 'message': str(e), 'client_action': 'retry'}), 503

    per_type = {}
    for request_type in RequestType:
        per_type[request_type.value] = projection_service.status_summary(
            [r for r in records if r.request_type == request_type.value])
    return jsonify({'total': projection_service.status_summary(records), 'by_type': per_type})


@reports_bp.route('/<type_slug>')
@login_required
def report(type_slug):
    request_type = RequestType.from_slug(type_slug)
    if request_type is None:
        return jsonify({'kind': 'NotFound', 'message': f"Unknown form '{type_slug}'."}), 404
    if Role.parse(current_user.role) not in REPORT_ROLES:
        return _forbidden()

    try:
        records = SqlRecordStore().list_records(request_type)
    except StoreError as e:
        return jsonify({'kind': 'PersistenceFailed', 'message': str(e), 'client_action': 'retry'}), 503

    try:
        rows = projection_service.report(
            records,
            start=request.args.get('start_date'),
            end=request.args.get('end_date'),
            search=request.args.get('q'),
        )
    except ValueError:
        return jsonify({'kind': 'BadRequest', 'message': 'Dates must be YYYY-MM-DD.'}), 400
    return jsonify({'type': request_type.value, 'label': request_type.label, 'rows': rows})
