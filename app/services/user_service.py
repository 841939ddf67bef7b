import re

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError

from app.errors import AgendaError, Conflict, LastAdminError, NotFound, PersistenceError, ValidationError
from app.extensions import db
from app.models import User, UserRole, UserStatus
from app.services.filters import USER_PREDICATES, build_predicates
from app.utils.roles import parse_role, role_for_email

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


class UserService:
    """
    Manajemen akun. Role ditentukan dari domain email saat akun dibuat.
    Hapus user = soft delete (status inactive) dan selalu harus tersisa
    minimal satu admin aktif.
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

    # ------------------------------------------------------------------
    # VALIDATION HELPERS
    # ------------------------------------------------------------------
    def validate_password(self, password):
        errors = []
        password = password or ''
        if not isinstance(password, str):
            return ['Password harus berupa teks']
        if len(password) < self.settings.password_min_length:
            errors.append(f'Password minimal {self.settings.password_min_length} karakter')
        if len(password) > self.settings.password_max_length:
            errors.append(f'Password maksimal {self.settings.password_max_length} karakter')
        return errors

    def role_for_email(self, email):
        return role_for_email(email, self.settings.email_domains)

    def _clean_email(self, email, exclude_id=None):
        email = (email or '').strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise ValidationError(errors={'email': 'Format email tidak valid'})
        if len(email) > 100:
            raise ValidationError(errors={'email': 'Email maksimal 100 karakter'})

        role = self.role_for_email(email)
        if role is None:
            raise ValidationError('Domain email tidak valid', errors={'email': 'Gunakan email sekolah'})

        if self.email_exists(email, exclude_id=exclude_id):
            raise Conflict('Email sudah terdaftar')
        return email, role

    def email_exists(self, email, exclude_id=None):
        query = User.query.filter(func.lower(User.email) == (email or '').strip().lower())
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        return db.session.query(query.exists()).scalar()

    # ------------------------------------------------------------------
    # READ
    # ------------------------------------------------------------------
    def get_all(self, include_inactive=False):
        query = User.query
        if not include_inactive:
            query = query.filter(User.status == UserStatus.ACTIVE)
        return query.order_by(User.created_at.desc(), User.id.desc()).all()

    def get_by_id(self, user_id):
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFound('Pengguna tidak ditemukan')
        return user

    def get_by_email(self, email):
        return User.query.filter(func.lower(User.email) == (email or '').strip().lower()).first()

    def get_by_role(self, role, active_only=True):
        parsed = parse_role(role)
        if parsed is None:
            raise ValidationError(errors={'role': 'Role harus salah satu dari: admin, guru, siswa'})
        query = User.query.filter(User.role == parsed)
        if active_only:
            query = query.filter(User.status == UserStatus.ACTIVE)
        return query.order_by(User.nama.asc()).all()

    def search(self, query='', filters=None):
        merged = dict(filters or {})
        if query:
            merged['q'] = query
        return (
            User.query.filter(*build_predicates(USER_PREDICATES, merged))
            .order_by(User.nama.asc())
            .all()
        )

    def stats(self):
        active = User.status == UserStatus.ACTIVE

        def _count(condition):
            return func.count(case((condition, 1)))

        row = db.session.query(
            func.count(User.id),
            _count(active),
            _count(User.status == UserStatus.INACTIVE),
            _count(User.role == UserRole.ADMIN),
            _count(User.role == UserRole.GURU),
            _count(User.role == UserRole.SISWA),
        ).one()
        keys = ('total_users', 'active_users', 'inactive_users', 'admin_count', 'guru_count', 'siswa_count')
        return {key: int(value or 0) for key, value in zip(keys, row)}

    # ------------------------------------------------------------------
    # WRITE
    # ------------------------------------------------------------------
    def create_user(self, data, acting_user_id=None):
        data = data or {}
        nama = (data.get('nama') or '').strip()
        if not nama:
            raise ValidationError(errors={'nama': 'Field nama wajib diisi'})
        if len(nama) > 100:
            raise ValidationError(errors={'nama': 'Nama maksimal 100 karakter'})

        email, role = self._clean_email(data.get('email'))

        password_errors = self.validate_password(data.get('password'))
        if password_errors:
            raise ValidationError(', '.join(password_errors), errors={'password': password_errors})

        try:
            status = UserStatus(data.get('status') or UserStatus.ACTIVE.value)
        except ValueError:
            raise ValidationError(errors={'status': 'Status harus active atau inactive'})

        user = User(email=email, nama=nama, role=role, status=status)
        user.set_password(data['password'])
        db.session.add(user)
        self._commit('Gagal membuat pengguna')

        self.activity_logger.record(acting_user_id, 'create_user', None, f'Membuat pengguna {email} ({role.value})')
        return user

    def update_user(self, user_id, data, acting_user_id=None):
        user = self.get_by_id(user_id)
        data = data or {}
        changed = False

        if data.get('email') and data['email'].strip().lower() != user.email:
            email, role = self._clean_email(data['email'], exclude_id=user.id)
            # Role hanya ditentukan saat akun dibuat
            if role != user.role:
                raise ValidationError(errors={'email': 'Domain email baru harus sesuai dengan role pengguna'})
            user.email = email
            changed = True

        if data.get('nama'):
            user.nama = data['nama'].strip()[:100]
            changed = True

        if data.get('password'):
            password_errors = self.validate_password(data['password'])
            if password_errors:
                db.session.rollback()
                raise ValidationError(', '.join(password_errors), errors={'password': password_errors})
            user.set_password(data['password'])
            changed = True

        target = None
        if data.get('status'):
            try:
                target = UserStatus(data['status'])
            except ValueError:
                db.session.rollback()
                raise ValidationError(errors={'status': 'Status harus active atau inactive'})

        if not changed and target is None:
            raise ValidationError('Tidak ada data yang akan diupdate')

        # Perubahan field ikut ter-commit (atau ter-rollback) bersama status
        if target == UserStatus.INACTIVE and user.status != UserStatus.INACTIVE:
            self.deactivate_user(user_id, acting_user_id=acting_user_id)
        else:
            if target is not None:
                user.status = target
            self._commit('Gagal memperbarui pengguna')

        self.activity_logger.record(acting_user_id, 'update_user', None, f'Memperbarui pengguna #{user_id}')
        return self.get_by_id(user_id)

    def deactivate_user(self, user_id, acting_user_id=None):
        """
        Cek jumlah admin aktif dan ubah status dalam satu transaksi. Baris
        admin aktif dikunci (FOR UPDATE) sehingga dua penghapusan admin
        bersamaan tidak bisa sama-sama lolos.
        """
        try:
            user = User.query.filter(User.id == user_id).with_for_update().first()
            if user is None:
                db.session.rollback()
                raise NotFound('Pengguna tidak ditemukan')

            if user.role == UserRole.ADMIN and user.status == UserStatus.ACTIVE:
                active_admins = (
                    User.query
                    .filter(User.role == UserRole.ADMIN, User.status == UserStatus.ACTIVE)
                    .with_for_update()
                    .all()
                )
                if len(active_admins) <= 1:
                    db.session.rollback()
                    raise LastAdminError()

            user.status = UserStatus.INACTIVE
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception('Gagal menonaktifkan pengguna')
            raise PersistenceError('Gagal menonaktifkan pengguna') from exc

        self._commit('Gagal menonaktifkan pengguna')
        self.activity_logger.record(acting_user_id, 'delete_user', None, f'Menonaktifkan pengguna #{user_id}')
        return user

    def delete_user(self, user_id, acting_user_id=None):
        return self.deactivate_user(user_id, acting_user_id=acting_user_id)

    def activate_user(self, user_id, acting_user_id=None):
        user = self.get_by_id(user_id)
        user.status = UserStatus.ACTIVE
        self._commit('Gagal mengaktifkan pengguna')
        self.activity_logger.record(acting_user_id, 'activate_user', None, f'Mengaktifkan pengguna #{user_id}')
        return user

    def reset_password(self, user_id, new_password, acting_user_id=None):
        user = self.get_by_id(user_id)
        password_errors = self.validate_password(new_password)
        if password_errors:
            raise ValidationError(', '.join(password_errors), errors={'password': password_errors})
        user.set_password(new_password)
        self._commit('Gagal reset password')
        self.activity_logger.record(acting_user_id, 'reset_password', None, f'Reset password pengguna #{user_id}')
        return user

    def bulk_import(self, rows, acting_user_id=None):
        """
        rows: iterable (nomor_baris, dict). Baris gagal tidak menghentikan
        baris lain; hasil per baris dikembalikan ke pemanggil.
        """
        results = []
        for line_no, row in rows:
            try:
                user = self.create_user(row, acting_user_id=acting_user_id)
                results.append({'row': line_no, 'success': True, 'user_id': user.id, 'email': user.email})
            except AgendaError as exc:
                results.append({
                    'row': line_no,
                    'success': False,
                    'email': (row.get('email') or '').strip(),
                    'message': exc.message,
                    'errors': exc.errors,
                })
        return results
