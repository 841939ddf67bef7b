from flask import Blueprint, session
from flask_login import login_user, logout_user, current_user, login_required

from app.forms import LoginForm
from app.services.registry import get_services
from app.utils.responses import api_error, api_success
from app.utils.roles import permissions_for, role_label


auth_bp = Blueprint('auth', __name__)


def _user_payload(user):
    data = user.to_dict()
    data['role_label'] = role_label(user.role)
    data['permissions'] = permissions_for(user.role)
    return data


# --- ROUTE LOGIN ----
@auth_bp.route('/login', methods=['POST'])
def login():
    form = LoginForm()
    if not form.validate_on_submit():
        return api_error('Email dan password wajib diisi', 422, errors=form.errors)

    services = get_services()
    user = services.auth.authenticate(form.email.data, form.password.data)

    login_user(user, remember=form.remember.data)
    session.permanent = True

    return api_success({'user': _user_payload(user)}, message='Login berhasil')


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    get_services().activity_logger.record(current_user.id, 'logout', None, f'Logout: {current_user.email}')
    logout_user()
    return api_success(message='Logout berhasil')


@auth_bp.route('/me')
@login_required
def me():
    return api_success({'user': _user_payload(current_user)})
