import logging

from flask import Blueprint, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from sqlalchemy import func

from request_system.forms import LoginForm
from request_system.models import User

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)


@auth_bp.route('/csrf')
def csrf_token():
    return jsonify({'csrf_token': generate_csrf()})


@auth_bp.route('/login', methods=['POST'])
def login():
    if current_user.is_authenticated:
        return jsonify(current_user.to_dict())

    form = LoginForm()
    if not form.validate_on_submit():
        return jsonify({'kind': 'BadRequest', 'message': 'Username and password are required.',
                        'errors': form.errors}), 400

    login_in = form.username.data.strip().lower()
    user = User.query.filter((func.lower(User.username) == login_in) | (func.lower(User.email) == login_in)).first()
    if user and user.check_password(form.password.data):
        login_user(user)
        logger.info("%s logged in", user.username)
        return jsonify(user.to_dict())

    logger.warning("Failed login for %s", login_in)
    return jsonify({'kind': 'InvalidCredentials', 'message': 'Invalid credentials.'}), 401


@auth_bp.route('/logout')
@login_required
def logout():
    logout_user()
    return jsonify({'success': True})
