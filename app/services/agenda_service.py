from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import and_, case, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from app.errors import Conflict, NotFound, PermissionDenied, PersistenceError, ValidationError
from app.extensions import db
from app.models import Agenda, AgendaStatus
from app.services.filters import AGENDA_PREDICATES, build_predicates, parse_date, parse_time


AGENDA_RULES = {
    'judul': {'required': True, 'max_length': 255, 'text': True},
    'deskripsi': {'required': False, 'max_length': 1000, 'text': True},
    'tanggal': {'required': True},
    'waktu': {'required': True},
    'tempat': {'required': True, 'max_length': 255, 'text': True},
}


def validate_agenda_fields(data):
    """
    Validasi payload agenda. Mengembalikan dict yang sudah dibersihkan
    (tanggal/waktu sudah jadi objek date/time) atau melempar ValidationError
    berisi semua field yang bermasalah sekaligus.
    """
    data = data or {}
    errors = {}
    cleaned = {}

    for field, rules in AGENDA_RULES.items():
        value = data.get(field)
        if isinstance(value, str):
            value = value.strip()

        if value is None or value == '':
            if rules['required']:
                errors[field] = f'Field {field} wajib diisi'
            else:
                cleaned[field] = ''
            continue

        if rules.get('text') and not isinstance(value, str):
            errors[field] = f'Field {field} harus berupa teks'
            continue

        max_length = rules.get('max_length')
        if max_length and len(str(value)) > max_length:
            errors[field] = f'Field {field} maksimal {max_length} karakter'
            continue

        cleaned[field] = value

    for field, parser in (('tanggal', parse_date), ('waktu', parse_time)):
        if field in cleaned and field not in errors:
            try:
                cleaned[field] = parser(cleaned[field], field)
            except ValidationError as exc:
                errors.update(exc.errors)

    if errors:
        raise ValidationError('Validasi agenda gagal', errors=errors)
    return cleaned


class AgendaService:
    """
    Siklus hidup agenda: pending -> approved / rejected.

    Otorisasi level aksi (boleh approve? boleh hapus?) dicek oleh pemanggil.
    Service ini hanya memeriksa kepemilikan objek bila diminta, dan menjaga
    transisi status lewat UPDATE bersyarat agar dua approval bersamaan tidak
    sama-sama berhasil.
    """

    def __init__(self, settings, activity_logger):
        self.settings = settings
        self.activity_logger = activity_logger

    def _commit(self, failure_message):
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception(failure_message)
            raise PersistenceError(failure_message) from exc

    def _query(self):
        return Agenda.query.options(joinedload(Agenda.creator), joinedload(Agenda.approver))

    # ------------------------------------------------------------------
    # READ
    # ------------------------------------------------------------------
    def get_all(self):
        return self._query().order_by(Agenda.tanggal.desc(), Agenda.waktu.asc()).all()

    def get_approved(self):
        return (
            self._query()
            .filter(Agenda.status == AgendaStatus.APPROVED)
            .order_by(Agenda.tanggal.asc(), Agenda.waktu.asc())
            .all()
        )

    def get_pending(self):
        return (
            self._query()
            .filter(Agenda.status == AgendaStatus.PENDING)
            .order_by(Agenda.tanggal.asc(), Agenda.waktu.asc())
            .all()
        )

    def get_by_owner_or_approved(self, user_id):
        """Aturan visibilitas guru: semua agenda approved + semua agenda miliknya."""
        return (
            self._query()
            .filter(or_(Agenda.status == AgendaStatus.APPROVED, Agenda.created_by == user_id))
            .order_by(Agenda.tanggal.desc(), Agenda.waktu.asc())
            .all()
        )

    def get_by_id(self, agenda_id, viewer_id=None):
        agenda = self._query().filter(Agenda.id == agenda_id).first()
        if agenda is None:
            raise NotFound('Agenda tidak ditemukan')
        if viewer_id is not None and agenda.status != AgendaStatus.APPROVED and agenda.created_by != viewer_id:
            raise PermissionDenied('Anda tidak memiliki akses ke agenda ini')
        return agenda

    def search(self, query='', filters=None):
        merged = dict(filters or {})
        if query:
            merged['q'] = query
        return (
            self._query()
            .filter(*build_predicates(AGENDA_PREDICATES, merged))
            .order_by(Agenda.tanggal.desc(), Agenda.waktu.asc())
            .all()
        )

    def get_by_date_range(self, start_date, end_date, status=AgendaStatus.APPROVED):
        start = parse_date(start_date, 'start_date')
        end = parse_date(end_date, 'end_date')
        return (
            self._query()
            .filter(Agenda.tanggal.between(start, end), Agenda.status == AgendaStatus(status))
            .order_by(Agenda.tanggal.asc(), Agenda.waktu.asc())
            .all()
        )

    def stats(self):
        today = date.today()
        approved = Agenda.status == AgendaStatus.APPROVED

        def _count(*conditions):
            return func.count(case((and_(*conditions), 1)))

        row = db.session.query(
            func.count(Agenda.id),
            _count(Agenda.status == AgendaStatus.PENDING),
            _count(approved),
            _count(Agenda.status == AgendaStatus.REJECTED),
            _count(Agenda.tanggal == today, approved),
            _count(Agenda.tanggal > today, approved),
            _count(Agenda.tanggal < today, approved),
        ).one()

        keys = (
            'total_agendas', 'pending_count', 'approved_count', 'rejected_count',
            'today_count', 'upcoming_count', 'past_count',
        )
        return {key: int(value or 0) for key, value in zip(keys, row)}

    def today_count(self):
        return Agenda.query.filter(Agenda.tanggal == date.today(), Agenda.status == AgendaStatus.APPROVED).count()

    def upcoming_count(self):
        return Agenda.query.filter(Agenda.tanggal > date.today(), Agenda.status == AgendaStatus.APPROVED).count()

    # ------------------------------------------------------------------
    # WRITE
    # ------------------------------------------------------------------
    def create(self, fields, creator_id, requested_status=None):
        cleaned = validate_agenda_fields(fields)

        try:
            status = AgendaStatus(requested_status or AgendaStatus.PENDING.value)
        except ValueError:
            raise ValidationError(errors={'status': 'Status awal harus pending atau approved'})
        if status == AgendaStatus.REJECTED:
            raise ValidationError(errors={'status': 'Status awal harus pending atau approved'})

        agenda = Agenda(
            judul=cleaned['judul'],
            deskripsi=cleaned.get('deskripsi', ''),
            tanggal=cleaned['tanggal'],
            waktu=cleaned['waktu'],
            tempat=cleaned['tempat'],
            status=status,
            created_by=creator_id,
        )
        if status == AgendaStatus.APPROVED:
            agenda.approved_by = creator_id
            agenda.approved_at = datetime.utcnow()

        db.session.add(agenda)
        self._commit('Gagal membuat agenda')

        self.activity_logger.record(creator_id, 'create', agenda.id, f'Membuat agenda: {agenda.judul}')
        return agenda

    def update(self, agenda_id, fields, acting_user_id=None, require_owner=False):
        """
        Edit selalu mengembalikan status ke pending: perubahan apa pun
        membatalkan persetujuan sebelumnya.
        """
        cleaned = validate_agenda_fields(fields)
        now = datetime.utcnow()

        conditions = [Agenda.id == agenda_id]
        if require_owner:
            conditions.append(Agenda.created_by == acting_user_id)

        try:
            affected = Agenda.query.filter(*conditions).update({
                Agenda.judul: cleaned['judul'],
                Agenda.deskripsi: cleaned.get('deskripsi', ''),
                Agenda.tanggal: cleaned['tanggal'],
                Agenda.waktu: cleaned['waktu'],
                Agenda.tempat: cleaned['tempat'],
                Agenda.status: AgendaStatus.PENDING,
                Agenda.approved_by: None,
                Agenda.approved_at: None,
                Agenda.rejection_reason: None,
                Agenda.updated_at: now,
            }, synchronize_session=False)
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception('Gagal memperbarui agenda')
            raise PersistenceError('Gagal memperbarui agenda') from exc

        if affected == 0:
            db.session.rollback()
            if db.session.get(Agenda, agenda_id) is None:
                raise NotFound('Agenda tidak ditemukan')
            raise PermissionDenied('Anda hanya dapat mengedit agenda milik sendiri')

        self._commit('Gagal memperbarui agenda')
        self.activity_logger.record(acting_user_id, 'update', agenda_id, f"Memperbarui agenda: {cleaned['judul']}")
        return self.get_by_id(agenda_id)

    def _transition(self, agenda_id, values, failure_message):
        """UPDATE ... WHERE status='pending'; 0 baris berarti hilang atau kalah balapan."""
        try:
            affected = (
                Agenda.query
                .filter(Agenda.id == agenda_id, Agenda.status == AgendaStatus.PENDING)
                .update(values, synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception(failure_message)
            raise PersistenceError(failure_message) from exc

        if affected == 0:
            db.session.rollback()
            current = db.session.get(Agenda, agenda_id)
            if current is None:
                raise NotFound('Agenda tidak ditemukan')
            raise Conflict(f'Agenda sudah berstatus {current.status.value}')

        self._commit(failure_message)

    def approve(self, agenda_id, approver_id):
        now = datetime.utcnow()
        self._transition(agenda_id, {
            Agenda.status: AgendaStatus.APPROVED,
            Agenda.approved_by: approver_id,
            Agenda.approved_at: now,
            Agenda.updated_at: now,
        }, 'Gagal menyetujui agenda')

        self.activity_logger.record(approver_id, 'approve', agenda_id, 'Agenda disetujui')
        return self.get_by_id(agenda_id)

    def reject(self, agenda_id, approver_id, reason=None):
        if reason is not None and not isinstance(reason, str):
            raise ValidationError(errors={'rejection_reason': 'Alasan penolakan harus berupa teks'})
        reason = (reason or '').strip() or self.settings.default_rejection_reason
        self._transition(agenda_id, {
            Agenda.status: AgendaStatus.REJECTED,
            Agenda.approved_by: approver_id,
            Agenda.rejection_reason: reason,
            Agenda.updated_at: datetime.utcnow(),
        }, 'Gagal menolak agenda')

        self.activity_logger.record(approver_id, 'reject', agenda_id, f'Agenda ditolak: {reason}')
        return self.get_by_id(agenda_id)

    def delete(self, agenda_id, acting_user_id=None):
        """Hard delete. Log aktivitas lama tetap ada dengan agenda_id NULL."""
        agenda = db.session.get(Agenda, agenda_id)
        title = agenda.judul if agenda else None

        try:
            affected = Agenda.query.filter(Agenda.id == agenda_id).delete(synchronize_session=False)
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception('Gagal menghapus agenda')
            raise PersistenceError('Gagal menghapus agenda') from exc

        if affected == 0:
            db.session.rollback()
            raise NotFound('Agenda tidak ditemukan')

        self._commit('Gagal menghapus agenda')
        self.activity_logger.record(acting_user_id, 'delete', None, f'Menghapus agenda #{agenda_id}: {title}')
        return True

    def auto_reject_stale(self, max_days=None):
        """Tolak massal agenda pending yang umurnya lebih dari max_days hari."""
        max_days = self.settings.stale_pending_days if max_days is None else max_days
        now = datetime.utcnow()
        cutoff = now - timedelta(days=max_days)

        try:
            affected = (
                Agenda.query
                .filter(Agenda.status == AgendaStatus.PENDING, Agenda.created_at < cutoff)
                .update({
                    Agenda.status: AgendaStatus.REJECTED,
                    Agenda.rejection_reason: self.settings.stale_rejection_reason,
                    Agenda.updated_at: now,
                }, synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception('Gagal auto-reject agenda lama')
            raise PersistenceError('Gagal auto-reject agenda lama') from exc

        self._commit('Gagal auto-reject agenda lama')
        current_app.logger.info("Auto-rejected %s stale pending agendas (max_days=%s)", affected, max_days)
        if affected:
            self.activity_logger.log_system_event(
                'auto_reject', f'{affected} agenda pending ditolak otomatis', {'max_days': max_days}
            )
        return affected
