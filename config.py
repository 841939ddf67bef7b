import os
from datetime import timedelta
from dotenv import load_dotenv

# Muat variabel dari file .env (untuk di laptop)
load_dotenv()


def _env_int(name, default):
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # 1. SECRET KEY
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'kunci-rahasia-default-jika-lupa'

    # 2. DATABASE
    db_uri = os.environ.get('DATABASE_URL')

    # Render memberi 'postgres://', SQLAlchemy butuh 'postgresql://'
    if db_uri and db_uri.startswith("postgres://"):
        db_uri = db_uri.replace("postgres://", "postgresql://", 1)

    SQLALCHEMY_DATABASE_URI = db_uri or 'sqlite:///agenda_lokal.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # 3. IDENTITAS SEKOLAH
    SCHOOL_NAME = os.environ.get('SCHOOL_NAME') or 'SMK Negeri 1 Kota Bekasi'

    # Suffix domain email menentukan role saat akun dibuat
    EMAIL_DOMAINS = {
        'admin': os.environ.get('EMAIL_DOMAIN_ADMIN') or '@smkn1kotabekasi.admin.sch.id',
        'guru': os.environ.get('EMAIL_DOMAIN_GURU') or '@smkn1kotabekasi.guru.sch.id',
        'siswa': os.environ.get('EMAIL_DOMAIN_SISWA') or '@smkn1kotabekasi.sch.id',
    }

    # 4. KEAMANAN
    PASSWORD_MIN_LENGTH = 6
    PASSWORD_MAX_LENGTH = 50
    PERMANENT_SESSION_LIFETIME = timedelta(hours=24)

    # 5. ATURAN AGENDA & LOG
    STALE_PENDING_DAYS = _env_int('STALE_PENDING_DAYS', 30)
    LOG_RETENTION_DAYS = _env_int('LOG_RETENTION_DAYS', 365)
    SUSPICIOUS_WINDOW_DAYS = 7
    SUSPICIOUS_FAILED_LOGINS = 10
    SUSPICIOUS_TOTAL_EVENTS = 100

    # 6. PAGINASI
    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 100

    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
