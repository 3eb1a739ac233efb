from functools import wraps

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from request_system.constants import Role
from request_system.forms import UserForm
from request_system.models import Branch, Department, User
from request_system.services import admin_service
from request_system.services.s3_service import store_signature
from request_system.services.user_service import UserService

admin_bp = Blueprint('admin', __name__)


def admin_required(view):
    @wraps(view)
    @login_required
    def wrapper(*args, **kwargs):
        if Role.parse(current_user.role) != Role.ADMIN:
            return jsonify({'kind': 'Unauthorized', 'message': 'Administrators only.'}), 403
        return view(*args, **kwargs)
    return wrapper


def _bad_request(message):
    return jsonify({'kind': 'BadRequest', 'message': message}), 400


@admin_bp.route('/dashboard')
@admin_required
def dashboard():
    return jsonify(admin_service.get_dashboard_stats())


# --- Users ---

@admin_bp.route('/users')
@admin_required
def list_users():
    return jsonify([u.to_dict() for u in User.query.order_by(User.name).all()])


@admin_bp.route('/users', methods=['POST'])
@admin_bp.route('/users/<int:user_id>', methods=['PUT'])
@admin_required
def save_user(user_id=None):
    form = UserForm()
    if not form.validate():
        return jsonify({'kind': 'BadRequest', 'message': 'Invalid user details.', 'errors': form.errors}), 400

    data = {name: field.data for name, field in form._fields.items() if name != 'csrf_token'}
    data['id'] = user_id
    try:
        user = UserService.create_or_update_user(data)
    except ValueError as e:
        return _bad_request(str(e))
    return jsonify(user.to_dict()), 200 if user_id else 201


@admin_bp.route('/users/<int:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    try:
        deleted = UserService.delete_user(user_id)
    except ValueError as e:
        return _bad_request(str(e))
    if not deleted:
        return jsonify({'kind': 'NotFound', 'message': 'User not found.'}), 404
    return jsonify({'success': True})


@admin_bp.route('/users/<int:user_id>/access', methods=['PUT'])
@admin_required
def set_access(user_id):
    forms = (request.get_json(silent=True) or {}).get('forms', [])
    if not isinstance(forms, list):
        return _bad_request("'forms' must be a list.")
    try:
        user = UserService.set_access(user_id, forms)
    except ValueError as e:
        return _bad_request(str(e))
    return jsonify(user.to_dict())


@admin_bp.route('/users/<int:user_id>/signature', methods=['POST'])
@admin_required
def upload_signature(user_id):
    ref = store_signature(request.files.get('signature'), user_id)
    if not ref:
        return _bad_request('Upload a PNG or JPG signature image.')
    try:
        user = UserService.set_signature(user_id, ref)
    except ValueError as e:
        return _bad_request(str(e))
    return jsonify(user.to_dict())


# --- Branches & Departments ---

@admin_bp.route('/branches')
@admin_required
def list_branches():
    return jsonify([b.to_dict() for b in Branch.query.order_by(Branch.name).all()])


@admin_bp.route('/branches', methods=['POST'])
@admin_bp.route('/branches/<int:branch_id>', methods=['PUT'])
@admin_required
def save_branch(branch_id=None):
    data = dict(request.get_json(silent=True) or {}, id=branch_id)
    try:
        branch = admin_service.save_branch(data)
    except ValueError as e:
        return _bad_request(str(e))
    return jsonify(branch.to_dict()), 200 if branch_id else 201


@admin_bp.route('/branches/<int:branch_id>', methods=['DELETE'])
@admin_required
def delete_branch(branch_id):
    if not admin_service.delete_branch(branch_id):
        return jsonify({'kind': 'NotFound', 'message': 'Branch not found.'}), 404
    return jsonify({'success': True})


@admin_bp.route('/departments')
@admin_required
def list_departments():
    return jsonify([d.to_dict() for d in Department.query.order_by(Department.name).all()])


@admin_bp.route('/departments', methods=['POST'])
@admin_bp.route('/departments/<int:dept_id>', methods=['PUT'])
@admin_required
def save_department(dept_id=None):
    data = dict(request.get_json(silent=True) or {}, id=dept_id)
    try:
        dept = admin_service.save_department(data)
    except ValueError as e:
        return _bad_request(str(e))
    return jsonify(dept.to_dict()), 200 if dept_id else 201


@admin_bp.route('/departments/<int:dept_id>', methods=['DELETE'])
@admin_required
def delete_department(dept_id):
    if not admin_service.delete_department(dept_id):
        return jsonify({'kind': 'NotFound', 'message': 'Department not found.'}), 404
    return jsonify({'success': True})
