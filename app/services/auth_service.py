from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app.errors import AuthenticationError, ValidationError
from app.extensions import db
from app.models import UserStatus
from app.services.user_service import EMAIL_PATTERN


class AuthService:
    def __init__(self, settings, user_service, activity_logger):
        self.settings = settings
        self.user_service = user_service
        self.activity_logger = activity_logger

    def authenticate(self, email, password):
        """
        Cek email sekolah + password. Setiap percobaan dicatat
        (login / login_failed) agar bisa dipakai deteksi aktivitas mencurigakan.
        """
        email = (email or '').strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise ValidationError('Format email tidak valid', errors={'email': 'Format email tidak valid'})
        if self.user_service.role_for_email(email) is None:
            raise ValidationError('Domain email tidak valid. Gunakan email sekolah.',
                                  errors={'email': 'Gunakan email sekolah'})

        user = self.user_service.get_by_email(email)
        if user is None or user.status != UserStatus.ACTIVE:
            self.activity_logger.record(None, 'login_failed', None, f'Login gagal untuk {email}: akun tidak ditemukan')
            raise AuthenticationError('Email tidak terdaftar atau akun tidak aktif')

        if not user.check_password(password or ''):
            self.activity_logger.record(user.id, 'login_failed', None, f'Login gagal untuk {email}: password salah')
            raise AuthenticationError('Password salah')

        user.last_login = datetime.utcnow()
        try:
            db.session.commit()
        except SQLAlchemyError:
            # last_login hanya informasi, login tetap berjalan
            db.session.rollback()
            current_app.logger.warning("Failed to update last_login for user %s", user.id)

        self.activity_logger.record(user.id, 'login', None, f'Login berhasil: {email}')
        return user
