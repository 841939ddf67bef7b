"""
Fixture bersama: aplikasi dengan SQLite in-memory, skema baru per test,
dan empat akun (admin id=1, guru id=2, siswa id=3, guru kedua id=4).
"""
import pytest

from config import Config
from app import create_app
from app.extensions import db
from app.models import User, UserRole, UserStatus
from app.services.registry import get_services

ADMIN_EMAIL = 'admin@smkn1kotabekasi.admin.sch.id'
GURU_EMAIL = 'budi@smkn1kotabekasi.guru.sch.id'
GURU2_EMAIL = 'ani@smkn1kotabekasi.guru.sch.id'
SISWA_EMAIL = 'siti@smkn1kotabekasi.sch.id'
PASSWORD = 'rahasia123'


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    LOG_LEVEL = 'WARNING'
    EMAIL_DOMAINS = {
        'admin': '@smkn1kotabekasi.admin.sch.id',
        'guru': '@smkn1kotabekasi.guru.sch.id',
        'siswa': '@smkn1kotabekasi.sch.id',
    }


def _make_user(email, nama, role):
    user = User(email=email, nama=nama, role=role, status=UserStatus.ACTIVE)
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.flush()
    return user


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def services(app):
    return get_services()


@pytest.fixture
def users(app):
    """Admin dibuat pertama (id=1), guru kedua (id=2)."""
    admin = _make_user(ADMIN_EMAIL, 'Administrator', UserRole.ADMIN)
    guru = _make_user(GURU_EMAIL, 'Budi Santoso', UserRole.GURU)
    siswa = _make_user(SISWA_EMAIL, 'Siti Aminah', UserRole.SISWA)
    guru2 = _make_user(GURU2_EMAIL, 'Ani Lestari', UserRole.GURU)
    db.session.commit()
    return {
        'admin': admin.id,
        'guru': guru.id,
        'siswa': siswa.id,
        'guru2': guru2.id,
    }


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, email, password=PASSWORD):
    return client.post('/login', json={'email': email, 'password': password})


@pytest.fixture
def admin_client(client, users):
    response = login(client, ADMIN_EMAIL)
    assert response.status_code == 200
    return client


@pytest.fixture
def guru_client(client, users):
    response = login(client, GURU_EMAIL)
    assert response.status_code == 200
    return client


@pytest.fixture
def siswa_client(client, users):
    response = login(client, SISWA_EMAIL)
    assert response.status_code == 200
    return client


def agenda_payload(**overrides):
    payload = {
        'judul': 'Rapat',
        'deskripsi': 'Rapat koordinasi',
        'tanggal': '2025-01-10',
        'waktu': '09:00',
        'tempat': 'Aula',
    }
    payload.update(overrides)
    return payload
