import logging

from flask import Blueprint, jsonify, redirect, request, send_from_directory
from flask_login import current_user, login_required

from request_system.constants import RequestType
from request_system.errors import StoreError
from request_system.services import projection_service
from request_system.services.code_service import ReferenceCodeService
from request_system.services.lifecycle_service import LifecycleEngine
from request_system.services.record_store import SqlRecordStore
from request_system.services.s3_service import local_signature, signature_url
from request_system.services.user_service import UserService
from request_system.utils import requester_notifier

logger = logging.getLogger(__name__)

main_bp = Blueprint('main', __name__)


def get_engine():
    return LifecycleEngine(store=SqlRecordStore(), notifier=requester_notifier)


def current_actor(store):
    return UserService.actor_for(store, current_user.id)


def error_response(error):
    return jsonify(error.to_dict()), error.http_status


def unauthenticated():
    return jsonify({'kind': 'Unauthenticated', 'message': 'Please log in again.'}), 401


def not_found(message):
    return jsonify({'kind': 'NotFound', 'message': message}), 404


def store_unavailable(e):
    logger.warning("Store unavailable: %s", e)
    return jsonify({'kind': 'PersistenceFailed', 'message': str(e), 'client_action': 'retry'}), 503


def transition_to_dict(transition):
    return {
        'from': transition.source.value,
        'to': transition.to.value,
        'role': transition.required_role.value,
        'requires_note': transition.requires_note,
        'required_fields': list(transition.required_fields),
        'optional_fields': list(transition.optional_fields),
        'date_defaults': list(transition.date_defaults),
    }


def record_view(engine, record, actor):
    data = record.to_dict()
    data['actions'] = [transition_to_dict(t) for t in engine.available_transitions(record, actor)]
    return data


@main_bp.route('/queue')
@login_required
def queue():
    engine = get_engine()
    try:
        actor = current_actor(engine.store)
        records = engine.store.list_records()
    except StoreError as e:
        return store_unavailable(e)
    if actor is None:
        return unauthenticated()
    return jsonify([record_view(engine, r, actor) for r in projection_service.pending_queue(records, actor)])


@main_bp.route('/my-requests')
@login_required
def my_requests():
    engine = get_engine()
    try:
        actor = current_actor(engine.store)
        records = engine.store.list_records()
    except StoreError as e:
        return store_unavailable(e)
    if actor is None:
        return unauthenticated()
    return jsonify([r.to_dict(include_audit=False) for r in projection_service.my_requests(records, actor)])


@main_bp.route('/signatures/<path:ref>')
@login_required
def signature(ref):
    url = signature_url(ref)
    if url:
        return redirect(url)
    local = local_signature(ref)
    if local:
        return send_from_directory(*local)
    return not_found('Signature not found.')


@main_bp.route('/<type_slug>/next-code')
@login_required
def next_code(type_slug):
    request_type = RequestType.from_slug(type_slug)
    if request_type is None:
        return not_found(f"Unknown form '{type_slug}'.")
    return jsonify({'type': request_type.value, 'code': ReferenceCodeService.peek_code(request_type)})


@main_bp.route('/<type_slug>', methods=['POST'])
@login_required
def submit(type_slug):
    request_type = RequestType.from_slug(type_slug)
    if request_type is None:
        return not_found(f"Unknown form '{type_slug}'.")

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({'kind': 'BadRequest', 'message': 'Expected a JSON object.'}), 400

    engine = get_engine()
    try:
        actor = current_actor(engine.store)
    except StoreError as e:
        return store_unavailable(e)
    if actor is None:
        return unauthenticated()

    record, error = engine.submit(request_type, payload, actor)
    if error:
        return error_response(error)
    return jsonify(record_view(engine, record, actor)), 201


@main_bp.route('/<type_slug>')
@login_required
def list_records(type_slug):
    request_type = RequestType.from_slug(type_slug)
    if request_type is None:
        return not_found(f"Unknown form '{type_slug}'.")

    engine = get_engine()
    try:
        actor = current_actor(engine.store)
        if actor is None:
            return unauthenticated()
        records = projection_service.visible(engine.store.list_records(request_type), actor)
    except StoreError as e:
        return store_unavailable(e)

    status = request.args.get('status')
    if status:
        try:
            records = projection_service.by_status(records, status)
        except ValueError:
            return jsonify({'kind': 'BadRequest', 'message': f"Unknown status '{status}'."}), 400
    return jsonify([record_view(engine, r, actor) for r in records])


def _load(engine, type_slug, record_id, check_view=True):
    """
    Returns (request_type, record, actor, error_response).

    Transitions pass ``check_view=False``: whether the actor may act is the
    engine's call, and a refused action must come back as Unauthorized.
    """
    request_type = RequestType.from_slug(type_slug)
    if request_type is None:
        return None, None, None, not_found(f"Unknown form '{type_slug}'.")
    try:
        actor = current_actor(engine.store)
        record = engine.store.get_record(request_type, record_id) if actor else None
    except StoreError as e:
        return request_type, None, None, store_unavailable(e)
    if actor is None:
        return request_type, None, None, unauthenticated()
    if record is None or (check_view and not projection_service.can_view(actor, record)):
        return request_type, None, actor, not_found('Record not found.')
    return request_type, record, actor, None


@main_bp.route('/<type_slug>/<int:record_id>')
@login_required
def view_record(type_slug, record_id):
    engine = get_engine()
    _, record, actor, failure = _load(engine, type_slug, record_id)
    if failure:
        return failure
    return jsonify(record_view(engine, record, actor))


@main_bp.route('/<type_slug>/<int:record_id>/actions')
@login_required
def record_actions(type_slug, record_id):
    engine = get_engine()
    _, record, actor, failure = _load(engine, type_slug, record_id)
    if failure:
        return failure
    return jsonify({
        'status': record.status,
        'actions': [transition_to_dict(t) for t in engine.available_transitions(record, actor)],
    })


@main_bp.route('/<type_slug>/<int:record_id>/transition', methods=['POST'])
@login_required
def transition(type_slug, record_id):
    engine = get_engine()
    _, record, actor, failure = _load(engine, type_slug, record_id, check_view=False)
    if failure:
        return failure

    data = request.get_json(silent=True) or {}
    to_status = data.get('to_status') or data.get('status')
    if not to_status:
        return jsonify({'kind': 'BadRequest', 'message': "'to_status' is required."}), 400

    fields = data.get('fields') or {}
    if not isinstance(fields, dict):
        return jsonify({'kind': 'BadRequest', 'message': "'fields' must be an object."}), 400

    updated, error = engine.apply_transition(record, to_status, actor, fields)
    if error:
        return error_response(error)
    return jsonify(record_view(engine, updated, actor))
