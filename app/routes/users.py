from flask import Blueprint, request
from flask_login import current_user

from app.decorators import permission_required
from app.errors import ValidationError
from app.forms import UserForm, UserUpdateForm
from app.services.registry import get_services
from app.utils.payload import json_payload
from app.utils.responses import api_error, api_success
from app.utils.uploads import read_upload_rows


user_bp = Blueprint('users', __name__)

USER_FIELDS = ('email', 'nama', 'password', 'status')


def _form_payload(form):
    return {field: getattr(form, field).data for field in USER_FIELDS if getattr(form, field).data}


# =========================================================
# 1. READ
# =========================================================

@user_bp.route('', methods=['GET'])
@permission_required('edit_user')
def list_users():
    users = get_services().users
    query = (request.args.get('q') or '').strip()
    filters = {key: request.args.get(key) for key in ('role', 'status') if request.args.get(key)}

    if query or filters:
        result = users.search(query, filters)
    else:
        include_inactive = request.args.get('include_inactive', '').lower() in ('1', 'true', 'yes')
        result = users.get_all(include_inactive=include_inactive)
    return api_success([user.to_dict() for user in result])


@user_bp.route('/role/<role>', methods=['GET'])
@permission_required('edit_user')
def users_by_role(role):
    active_only = request.args.get('active_only', 'true').lower() not in ('0', 'false', 'no')
    result = get_services().users.get_by_role(role, active_only=active_only)
    return api_success([user.to_dict() for user in result])


@user_bp.route('/<int:user_id>', methods=['GET'])
@permission_required('edit_user')
def user_detail(user_id):
    return api_success(get_services().users.get_by_id(user_id).to_dict())


# =========================================================
# 2. WRITE
# =========================================================

@user_bp.route('', methods=['POST'])
@permission_required('create_user')
def create_user():
    form = UserForm()
    if not form.validate_on_submit():
        return api_error('Validasi gagal', 422, errors=form.errors)

    user = get_services().users.create_user(_form_payload(form), acting_user_id=current_user.id)
    return api_success(
        {'user_id': user.id, 'user': user.to_dict()},
        status_code=201,
        message='User berhasil dibuat',
    )


@user_bp.route('/import', methods=['POST'])
@permission_required('create_user')
def import_users():
    file = request.files.get('file')
    if not file or not file.filename:
        raise ValidationError('File CSV/XLSX wajib diunggah', errors={'file': 'File wajib diunggah'})

    results = get_services().users.bulk_import(read_upload_rows(file), acting_user_id=current_user.id)
    created = sum(1 for item in results if item['success'])
    return api_success(
        {'created': created, 'failed': len(results) - created, 'results': results},
        message=f'{created} user berhasil diimpor',
    )


@user_bp.route('/<int:user_id>', methods=['PUT'])
@permission_required('edit_user')
def update_user(user_id):
    form = UserUpdateForm()
    if not form.validate_on_submit():
        return api_error('Validasi gagal', 422, errors=form.errors)

    user = get_services().users.update_user(user_id, _form_payload(form), acting_user_id=current_user.id)
    return api_success(user.to_dict(), message='User berhasil diperbarui')


@user_bp.route('/<int:user_id>/activate', methods=['PUT'])
@permission_required('edit_user')
def activate_user(user_id):
    user = get_services().users.activate_user(user_id, acting_user_id=current_user.id)
    return api_success(user.to_dict(), message='User berhasil diaktifkan')


@user_bp.route('/<int:user_id>/reset-password', methods=['PUT'])
@permission_required('edit_user')
def reset_password(user_id):
    new_password = json_payload().get('password')
    get_services().users.reset_password(user_id, new_password, acting_user_id=current_user.id)
    return api_success(message='Password berhasil direset')


@user_bp.route('/<int:user_id>', methods=['DELETE'])
@permission_required('delete_user')
def delete_user(user_id):
    get_services().users.delete_user(user_id, acting_user_id=current_user.id)
    return api_success(message='User berhasil dinonaktifkan')
