from app import create_app
from app.extensions import db
from datetime import date, datetime, time, timedelta
from app.models import User, UserRole, UserStatus, Agenda, AgendaStatus

app = create_app()

with app.app_context():
    print("🧹 Menghapus database lama...")
    db.drop_all()

    print("🏗️ Membuat tabel database baru...")
    db.create_all()

    domains = app.config['EMAIL_DOMAINS']

    # ============================================
    # 1. USERS (ADMIN, GURU, SISWA)
    # ============================================
    print("👤 Creating Users (Admin, Guru, Siswa)...")

    admin_user = User(
        email=f"admin{domains['admin']}",
        nama='Administrator',
        role=UserRole.ADMIN,
        status=UserStatus.ACTIVE,
    )
    admin_user.set_password('admin123')

    guru_user = User(
        email=f"budi{domains['guru']}",
        nama='Budi Santoso, S.Pd',
        role=UserRole.GURU,
        status=UserStatus.ACTIVE,
    )
    guru_user.set_password('guru123')

    siswa_user = User(
        email=f"siti{domains['siswa']}",
        nama='Siti Aminah',
        role=UserRole.SISWA,
        status=UserStatus.ACTIVE,
    )
    siswa_user.set_password('siswa123')

    db.session.add_all([admin_user, guru_user, siswa_user])
    db.session.commit()  # Commit dulu biar dapat ID untuk relasi

    # ============================================
    # 2. AGENDA CONTOH
    # ============================================
    print("📅 Creating Agendas...")
    today = date.today()

    rapat = Agenda(
        judul='Rapat Koordinasi Guru',
        deskripsi='Pembahasan persiapan ujian semester',
        tanggal=today + timedelta(days=3),
        waktu=time(9, 0),
        tempat='Aula',
        status=AgendaStatus.APPROVED,
        created_by=admin_user.id,
        approved_by=admin_user.id,
        approved_at=datetime.utcnow(),
    )
    lomba = Agenda(
        judul='Lomba Kebersihan Kelas',
        deskripsi='Penilaian kebersihan antar kelas',
        tanggal=today + timedelta(days=10),
        waktu=time(7, 30),
        tempat='Lapangan Utama',
        status=AgendaStatus.PENDING,
        created_by=guru_user.id,
    )
    db.session.add_all([rapat, lomba])
    db.session.commit()

    print("✅ Seed selesai.")
    print(f"   Admin : {admin_user.email} / admin123")
    print(f"   Guru  : {guru_user.email} / guru123")
    print(f"   Siswa : {siswa_user.email} / siswa123")
