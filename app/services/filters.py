"""
Penyusun filter query: setiap nama filter dipetakan ke fungsi yang
menghasilkan predikat SQLAlchemy, lalu digabung dengan AND. Nilai selalu
lewat parameter binding, tidak pernah disambung ke string SQL.
"""
from datetime import date, datetime, time, timedelta

from sqlalchemy import or_

from app.errors import ValidationError
from app.models import ActivityLog, Agenda, AgendaStatus, User, UserStatus
from app.utils.roles import parse_role


def parse_date(value, field='tanggal'):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), '%Y-%m-%d').date()
    except (TypeError, ValueError):
        raise ValidationError(errors={field: f'Field {field} harus berformat YYYY-MM-DD'})


def parse_time(value, field='waktu'):
    if isinstance(value, time):
        return value
    raw = str(value).strip()
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(raw, fmt).time()
        except ValueError:
            continue
    raise ValidationError(errors={field: f'Field {field} harus berformat HH:MM'})


def _int(value, field):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(errors={field: f'Field {field} harus berupa angka'})


def _like(term):
    return f"%{term.strip()}%"


def _agenda_status(value):
    try:
        return Agenda.status == AgendaStatus(value)
    except ValueError:
        raise ValidationError(errors={'status': 'Status harus salah satu dari: pending, approved, rejected'})


AGENDA_PREDICATES = {
    'q': lambda v: or_(Agenda.judul.ilike(_like(v)), Agenda.deskripsi.ilike(_like(v)), Agenda.tempat.ilike(_like(v))),
    'status': _agenda_status,
    'date_from': lambda v: Agenda.tanggal >= parse_date(v, 'date_from'),
    'date_to': lambda v: Agenda.tanggal <= parse_date(v, 'date_to'),
    'created_by': lambda v: Agenda.created_by == _int(v, 'created_by'),
}


def _day_start(value, field):
    return datetime.combine(parse_date(value, field), time.min)


ACTIVITY_PREDICATES = {
    'q': lambda v: or_(ActivityLog.description.ilike(_like(v)), ActivityLog.action.ilike(_like(v))),
    'user_id': lambda v: ActivityLog.user_id == _int(v, 'user_id'),
    'action': lambda v: ActivityLog.action == v,
    'agenda_id': lambda v: ActivityLog.agenda_id == _int(v, 'agenda_id'),
    'ip_address': lambda v: ActivityLog.ip_address == v,
    'date_from': lambda v: ActivityLog.created_at >= _day_start(v, 'date_from'),
    # date_to inklusif: sampai akhir hari tersebut
    'date_to': lambda v: ActivityLog.created_at < _day_start(v, 'date_to') + timedelta(days=1),
}


def _user_role(value):
    role = parse_role(value)
    if role is None:
        raise ValidationError(errors={'role': 'Role harus salah satu dari: admin, guru, siswa'})
    return User.role == role


def _user_status(value):
    try:
        return User.status == UserStatus(value)
    except ValueError:
        raise ValidationError(errors={'status': 'Status harus active atau inactive'})


USER_PREDICATES = {
    'q': lambda v: or_(User.nama.ilike(_like(v)), User.email.ilike(_like(v))),
    'role': _user_role,
    'status': _user_status,
}


def build_predicates(predicates, filters):
    """Kembalikan list predikat untuk filter yang dikenal dan tidak kosong."""
    conditions = []
    for name, value in (filters or {}).items():
        factory = predicates.get(name)
        if factory is None or value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        conditions.append(factory(value))
    return conditions
