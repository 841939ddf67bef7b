import json
from datetime import datetime, timedelta

from flask import current_app, has_request_context, request
from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError

from app.errors import PersistenceError
from app.extensions import db
from app.models import ActivityLog, User
from app.services.filters import ACTIVITY_PREDICATES, build_predicates
from app.utils.security import get_client_ip


class ActivityLogger:
    """
    Pencatat audit. Penulisan log tidak boleh menggagalkan operasi utama,
    jadi `record` menelan semua error database dan hanya menulis ke log
    aplikasi. Query analitik di bawahnya boleh gagal secara normal.

    `record` melakukan commit sendiri, jadi panggil setelah transaksi
    utama selesai.
    """

    def __init__(self, settings):
        self.settings = settings

    # ------------------------------------------------------------------
    # WRITE
    # ------------------------------------------------------------------
    def record(self, user_id, action, agenda_id=None, description='', ip_address=None, user_agent=None):
        if has_request_context():
            if ip_address is None:
                ip_address = get_client_ip(request)
            if user_agent is None:
                user_agent = request.headers.get('User-Agent')

        try:
            entry = ActivityLog(
                user_id=user_id,
                action=str(action),
                agenda_id=agenda_id,
                description=str(description or ''),
                ip_address=str(ip_address)[:45] if ip_address else None,
                user_agent=str(user_agent)[:255] if user_agent else None,
            )
            db.session.add(entry)
            db.session.commit()
            return True
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.warning("Activity log dropped (action=%s, user=%s): %s", action, user_id, exc)
            return False

    def log_system_event(self, event, description, context=None):
        full_description = description
        if context:
            full_description += ' | Context: ' + json.dumps(context, default=str, ensure_ascii=False)
        return self.record(None, f'system_{event}', None, full_description)

    def clean_old_logs(self, keep_days=None):
        """Satu-satunya jalur penghapusan log (retensi)."""
        keep_days = self.settings.log_retention_days if keep_days is None else keep_days
        cutoff = datetime.utcnow() - timedelta(days=keep_days)
        try:
            deleted = ActivityLog.query.filter(ActivityLog.created_at < cutoff).delete(synchronize_session=False)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Clean old logs failed")
            raise PersistenceError("Gagal membersihkan log lama") from exc
        current_app.logger.info("Removed %s activity logs older than %s days", deleted, keep_days)
        return deleted

    # ------------------------------------------------------------------
    # READ
    # ------------------------------------------------------------------
    def _filtered(self, filters):
        return ActivityLog.query.filter(*build_predicates(ACTIVITY_PREDICATES, filters))

    def recent(self, limit=50, offset=0, filters=None):
        """Kembalikan (items, total) terurut dari yang terbaru."""
        query = self._filtered(filters)
        total = query.count()
        items = (
            query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
            .limit(self.settings.clamp_page_size(limit))
            .offset(max(offset or 0, 0))
            .all()
        )
        return items, total

    def search(self, query='', filters=None, limit=50, offset=0):
        merged = dict(filters or {})
        if query:
            merged['q'] = query
        return self.recent(limit=limit, offset=offset, filters=merged)

    def get_by_id(self, activity_id):
        return db.session.get(ActivityLog, activity_id)

    def stats_by_date_range(self, date_from=None, date_to=None):
        filters = {'date_from': date_from, 'date_to': date_to}
        conditions = build_predicates(ACTIVITY_PREDICATES, filters)
        if not date_to:
            # Default 30 hari terakhir
            conditions.append(ActivityLog.created_at >= datetime.utcnow() - timedelta(days=30))

        def _count(action):
            return func.count(case((ActivityLog.action == action, 1)))

        row = db.session.query(
            func.count(ActivityLog.id),
            _count('login'),
            _count('create'),
            _count('update'),
            _count('approve'),
            _count('reject'),
            _count('delete'),
            func.count(func.distinct(ActivityLog.user_id)),
            func.count(func.distinct(ActivityLog.agenda_id)),
            func.count(func.distinct(func.date(ActivityLog.created_at))),
        ).filter(*conditions).one()

        keys = (
            'total_activities', 'login_count', 'create_count', 'update_count', 'approve_count',
            'reject_count', 'delete_count', 'unique_users', 'affected_agendas', 'active_days',
        )
        return {key: int(value or 0) for key, value in zip(keys, row)}

    def daily_counts(self, days=30):
        since = datetime.utcnow() - timedelta(days=days)
        day = func.date(ActivityLog.created_at)
        rows = (
            db.session.query(
                day.label('activity_date'),
                func.count(ActivityLog.id),
                func.count(func.distinct(ActivityLog.user_id)),
            )
            .filter(ActivityLog.created_at >= since)
            .group_by(day)
            .order_by(day.desc())
            .all()
        )
        return [
            {'activity_date': str(activity_date), 'activity_count': count, 'unique_users': users}
            for activity_date, count, users in rows
        ]

    def most_active_users(self, limit=10, days=30):
        since = datetime.utcnow() - timedelta(days=days)
        activity_count = func.count(ActivityLog.id).label('activity_count')
        rows = (
            db.session.query(
                User.id, User.nama, User.role, User.email,
                activity_count,
                func.max(ActivityLog.created_at),
            )
            .join(ActivityLog, ActivityLog.user_id == User.id)
            .filter(ActivityLog.created_at >= since)
            .group_by(User.id, User.nama, User.role, User.email)
            .order_by(activity_count.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                'id': user_id,
                'nama': nama,
                'role': role.value if role else None,
                'email': email,
                'activity_count': count,
                'last_activity': last.isoformat() if last else None,
            }
            for user_id, nama, role, email, count, last in rows
        ]

    def suspicious_activity(self, days=None):
        """
        IP dianggap mencurigakan jika dalam jendela waktu terakhir punya
        lebih dari N login gagal atau lebih dari M aktivitas total.
        """
        days = self.settings.suspicious_window_days if days is None else days
        since = datetime.utcnow() - timedelta(days=days)

        activity_count = func.count(ActivityLog.id)
        failed_logins = func.count(case((ActivityLog.action == 'login_failed', 1)))
        rows = (
            db.session.query(
                ActivityLog.ip_address,
                activity_count.label('activity_count'),
                failed_logins.label('failed_logins'),
                func.count(func.distinct(ActivityLog.user_id)),
                func.min(ActivityLog.created_at),
                func.max(ActivityLog.created_at),
            )
            .filter(ActivityLog.created_at >= since)
            .group_by(ActivityLog.ip_address)
            .having(
                (failed_logins > self.settings.suspicious_failed_logins)
                | (activity_count > self.settings.suspicious_total_events)
            )
            .order_by(failed_logins.desc(), activity_count.desc())
            .all()
        )
        return [
            {
                'ip_address': ip,
                'activity_count': count,
                'failed_logins': failed,
                'unique_users': users,
                'first_activity': first.isoformat() if first else None,
                'last_activity': last.isoformat() if last else None,
            }
            for ip, count, failed, users, first, last in rows
        ]

    def user_summary(self, user_id, days=30):
        since = datetime.utcnow() - timedelta(days=days)
        rows = (
            db.session.query(ActivityLog.action, func.count(ActivityLog.id), func.max(ActivityLog.created_at))
            .filter(ActivityLog.user_id == user_id, ActivityLog.created_at >= since)
            .group_by(ActivityLog.action)
            .order_by(func.count(ActivityLog.id).desc())
            .all()
        )
        return [
            {'action': action, 'count': count, 'last_activity': last.isoformat() if last else None}
            for action, count, last in rows
        ]

    def agenda_history(self, agenda_id):
        return (
            ActivityLog.query.filter(ActivityLog.agenda_id == agenda_id)
            .order_by(ActivityLog.created_at.asc(), ActivityLog.id.asc())
            .all()
        )

    def login_attempts(self, email=None, ip_address=None, minutes=15):
        since = datetime.utcnow() - timedelta(minutes=minutes)
        query = ActivityLog.query.filter(
            ActivityLog.action.in_(('login', 'login_failed')),
            ActivityLog.created_at >= since,
        )
        if email:
            query = query.filter(ActivityLog.description.ilike(f'%{email}%'))
        elif ip_address:
            query = query.filter(ActivityLog.ip_address == ip_address)
        return query.count()

    def action_count(self, action, days=30):
        since = datetime.utcnow() - timedelta(days=days)
        return ActivityLog.query.filter(ActivityLog.action == action, ActivityLog.created_at >= since).count()


ACTION_TEMPLATES = {
    'create': 'Membuat agenda: {title}',
    'update': 'Memperbarui agenda: {title}',
    'approve': 'Menyetujui agenda: {title}',
    'reject': 'Menolak agenda: {title}',
}


def format_description(entry):
    """Teks aktivitas untuk ditampilkan ke pengguna."""
    data = entry.to_dict() if isinstance(entry, ActivityLog) else dict(entry)
    action = data.get('action')
    description = data.get('description') or ''

    if action == 'login':
        return 'Login berhasil'
    if action == 'login_failed':
        return 'Percobaan login gagal'
    if action == 'logout':
        return 'Logout'
    if action == 'delete':
        return description or 'Menghapus agenda'
    if action in ACTION_TEMPLATES and data.get('agenda_title'):
        return ACTION_TEMPLATES[action].format(title=data['agenda_title'])
    return description
