from flask import Blueprint, request
from flask_login import current_user, login_required

from app.decorators import permission_required
from app.errors import PermissionDenied
from app.services.registry import get_services
from app.utils.payload import json_payload
from app.utils.responses import api_success
from app.utils.roles import has_permission


agenda_bp = Blueprint('agendas', __name__)

SEARCH_PARAMS = ('status', 'date_from', 'date_to', 'created_by')


def _dump(agendas):
    return [agenda.to_dict() for agenda in agendas]


# =========================================================
# 1. READ
# =========================================================

@agenda_bp.route('', methods=['GET'])
@login_required
def list_agendas():
    agendas = get_services().agendas
    role = current_user.role

    if has_permission(role, 'view_all_agendas'):
        query = (request.args.get('q') or '').strip()
        filters = {key: request.args.get(key) for key in SEARCH_PARAMS if request.args.get(key)}
        if query or filters:
            return api_success(_dump(agendas.search(query, filters)))
        return api_success(_dump(agendas.get_all()))

    if has_permission(role, 'view_own_agendas'):
        return api_success(_dump(agendas.get_by_owner_or_approved(current_user.id)))

    return api_success(_dump(agendas.get_approved()))


@agenda_bp.route('/approved', methods=['GET'])
@login_required
def approved_agendas():
    return api_success(_dump(get_services().agendas.get_approved()))


@agenda_bp.route('/pending', methods=['GET'])
@permission_required('view_pending')
def pending_agendas():
    return api_success(_dump(get_services().agendas.get_pending()))


@agenda_bp.route('/range', methods=['GET'])
@login_required
def agendas_by_date_range():
    start = request.args.get('start') or request.args.get('date_from')
    end = request.args.get('end') or request.args.get('date_to')
    agendas = get_services().agendas.get_by_date_range(start, end)
    return api_success(_dump(agendas))


@agenda_bp.route('/user/<int:user_id>', methods=['GET'])
@permission_required('view_all_agendas', 'view_own_agendas')
def user_agendas(user_id):
    # Guru hanya boleh melihat daftar miliknya sendiri
    if not has_permission(current_user.role, 'view_all_agendas') and user_id != current_user.id:
        raise PermissionDenied('Anda hanya dapat melihat agenda milik sendiri')
    return api_success(_dump(get_services().agendas.get_by_owner_or_approved(user_id)))


@agenda_bp.route('/<int:agenda_id>', methods=['GET'])
@login_required
def agenda_detail(agenda_id):
    viewer_id = None if has_permission(current_user.role, 'view_all_agendas') else current_user.id
    agenda = get_services().agendas.get_by_id(agenda_id, viewer_id=viewer_id)
    return api_success(agenda.to_dict())


@agenda_bp.route('/<int:agenda_id>/history', methods=['GET'])
@permission_required('view_activities')
def agenda_history(agenda_id):
    services = get_services()
    services.agendas.get_by_id(agenda_id)
    history = services.activity_logger.agenda_history(agenda_id)
    return api_success([entry.to_dict() for entry in history])


# =========================================================
# 2. WRITE
# =========================================================

@agenda_bp.route('', methods=['POST'])
@permission_required('create_agenda')
def create_agenda():
    data = json_payload()

    # Hanya pemilik hak approve yang boleh langsung membuat agenda approved
    requested_status = None
    if has_permission(current_user.role, 'approve_agenda'):
        requested_status = data.get('status')

    agenda = get_services().agendas.create(data, current_user.id, requested_status)
    return api_success(
        {'agenda_id': agenda.id, 'agenda': agenda.to_dict()},
        status_code=201,
        message='Agenda berhasil dibuat',
    )


@agenda_bp.route('/<int:agenda_id>', methods=['PUT'])
@permission_required('edit_agenda', 'edit_own_agenda')
def update_agenda(agenda_id):
    require_owner = not has_permission(current_user.role, 'edit_agenda')
    agenda = get_services().agendas.update(
        agenda_id,
        json_payload(),
        acting_user_id=current_user.id,
        require_owner=require_owner,
    )
    return api_success(agenda.to_dict(), message='Agenda berhasil diperbarui')


@agenda_bp.route('/<int:agenda_id>/approve', methods=['PUT'])
@permission_required('approve_agenda')
def approve_agenda(agenda_id):
    agenda = get_services().agendas.approve(agenda_id, current_user.id)
    return api_success(agenda.to_dict(), message='Agenda berhasil disetujui')


@agenda_bp.route('/<int:agenda_id>/reject', methods=['PUT'])
@permission_required('reject_agenda')
def reject_agenda(agenda_id):
    reason = json_payload().get('rejection_reason')
    agenda = get_services().agendas.reject(agenda_id, current_user.id, reason)
    return api_success(agenda.to_dict(), message='Agenda berhasil ditolak')


@agenda_bp.route('/<int:agenda_id>', methods=['DELETE'])
@permission_required('delete_agenda')
def delete_agenda(agenda_id):
    get_services().agendas.delete(agenda_id, acting_user_id=current_user.id)
    return api_success(message='Agenda berhasil dihapus')
