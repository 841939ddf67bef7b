from datetime import datetime, timezone
from flask import Blueprint, current_app, request

from app.decorators import permission_required
from app.errors import NotFound
from app.services.activity_logger import format_description
from app.services.registry import get_services
from app.utils.responses import api_paginated, api_success


main_bp = Blueprint('main', __name__)

ACTIVITY_FILTERS = ('user_id', 'action', 'agenda_id', 'ip_address', 'date_from', 'date_to')


@main_bp.route('/')
def index():
    return api_success({
        'message': f"Agenda Sekolah API - {current_app.config.get('SCHOOL_NAME')}",
        'endpoints': {
            'POST /login': 'Autentikasi pengguna',
            'GET /agendas': 'Daftar agenda sesuai role',
            'GET /agendas/approved': 'Agenda yang disetujui',
            'GET /agendas/pending': 'Agenda pending (admin)',
            'GET /agendas/user/{id}': 'Agenda milik user + agenda approved',
            'POST /agendas': 'Buat agenda',
            'PUT /agendas/{id}': 'Ubah agenda',
            'PUT /agendas/{id}/approve': 'Setujui agenda',
            'PUT /agendas/{id}/reject': 'Tolak agenda',
            'DELETE /agendas/{id}': 'Hapus agenda',
            'GET /users': 'Daftar pengguna',
            'POST /users': 'Buat pengguna',
            'GET /stats': 'Statistik',
            'GET /activities': 'Log aktivitas',
        },
    })


@main_bp.route('/stats')
@permission_required('view_stats')
def stats():
    services = get_services()
    return api_success({
        'agendas': services.agendas.stats(),
        'users': services.users.stats(),
        'today_agendas': services.agendas.today_count(),
        'upcoming_agendas': services.agendas.upcoming_count(),
        'activities': services.activity_logger.stats_by_date_range(
            request.args.get('date_from'), request.args.get('date_to')
        ),
        'last_updated': datetime.now(timezone.utc).isoformat(),
    })


# =========================================================
# LOG AKTIVITAS
# =========================================================

@main_bp.route('/activities')
@permission_required('view_activities')
def activities():
    services = get_services()
    page = max(request.args.get('page', 1, type=int), 1)
    per_page = services.settings.clamp_page_size(
        request.args.get('per_page', type=int) or request.args.get('limit', type=int)
    )
    filters = {key: request.args.get(key) for key in ACTIVITY_FILTERS if request.args.get(key)}

    items, total = services.activity_logger.search(
        query=(request.args.get('q') or '').strip(),
        filters=filters,
        limit=per_page,
        offset=(page - 1) * per_page,
    )
    data = []
    for entry in items:
        row = entry.to_dict()
        row['display'] = format_description(row)
        data.append(row)
    return api_paginated(data, total, page, per_page)


@main_bp.route('/activities/<int:activity_id>')
@permission_required('view_activities')
def activity_detail(activity_id):
    entry = get_services().activity_logger.get_by_id(activity_id)
    if entry is None:
        raise NotFound('Aktivitas tidak ditemukan')
    return api_success(entry.to_dict())


@main_bp.route('/activities/daily')
@permission_required('view_activities')
def daily_activities():
    days = request.args.get('days', 30, type=int)
    return api_success(get_services().activity_logger.daily_counts(days))


@main_bp.route('/activities/top-users')
@permission_required('view_activities')
def most_active_users():
    limit = request.args.get('limit', 10, type=int)
    days = request.args.get('days', 30, type=int)
    return api_success(get_services().activity_logger.most_active_users(limit, days))


@main_bp.route('/activities/suspicious')
@permission_required('view_activities')
def suspicious_activities():
    days = request.args.get('days', type=int)
    return api_success(get_services().activity_logger.suspicious_activity(days))


@main_bp.route('/activities/user/<int:user_id>')
@permission_required('view_activities')
def user_activity_summary(user_id):
    days = request.args.get('days', 30, type=int)
    return api_success(get_services().activity_logger.user_summary(user_id, days))
