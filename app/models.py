from app.extensions import db
from datetime import datetime
import enum
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash


# ==========================================
# 0. BASE MODEL
# ==========================================
class BaseModel(db.Model):
    """
    Kelas abstract yang diwarisi model utama.
    Menyediakan timestamp otomatis.
    """
    __abstract__ = True

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


def _enum_values(enum_cls):
    # Simpan value ('pending'), bukan nama member ('PENDING')
    return [member.value for member in enum_cls]


# ==========================================
# 1. ENUMS
# ==========================================
class UserRole(enum.Enum):
    ADMIN = "admin"
    GURU = "guru"
    SISWA = "siswa"


class UserStatus(enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class AgendaStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ==========================================
# 2. USERS
# ==========================================
class User(UserMixin, BaseModel):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(100), unique=True, nullable=False)
    nama = db.Column(db.String(100), nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.Enum(UserRole, values_callable=_enum_values, native_enum=False, length=10),
                     default=UserRole.SISWA, nullable=False, index=True)
    status = db.Column(db.Enum(UserStatus, values_callable=_enum_values, native_enum=False, length=10),
                       default=UserStatus.ACTIVE, nullable=False, index=True)
    last_login = db.Column(db.DateTime)

    agendas = db.relationship('Agenda', backref='creator', lazy=True, foreign_keys='Agenda.created_by')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def is_active(self):
        # Flask-Login: akun nonaktif tidak boleh login
        return self.status == UserStatus.ACTIVE

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'nama': self.nama,
            'role': self.role.value if self.role else None,
            'status': self.status.value if self.status else None,
            'last_login': _iso(self.last_login),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


# ==========================================
# 3. AGENDA
# ==========================================
class Agenda(BaseModel):
    __tablename__ = 'agendas'
    id = db.Column(db.Integer, primary_key=True)
    judul = db.Column(db.String(255), nullable=False)
    deskripsi = db.Column(db.Text)
    tanggal = db.Column(db.Date, nullable=False, index=True)
    waktu = db.Column(db.Time, nullable=False)
    tempat = db.Column(db.String(255), nullable=False)
    status = db.Column(db.Enum(AgendaStatus, values_callable=_enum_values, native_enum=False, length=10),
                       default=AgendaStatus.PENDING, nullable=False, index=True)

    # Pemilik agenda tidak pernah berubah setelah dibuat
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    approved_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    rejection_reason = db.Column(db.Text)
    approved_at = db.Column(db.DateTime)

    approver = db.relationship('User', foreign_keys=[approved_by])

    def to_dict(self):
        return {
            'id': self.id,
            'judul': self.judul,
            'deskripsi': self.deskripsi or '',
            'tanggal': self.tanggal.isoformat() if self.tanggal else None,
            'waktu': self.waktu.strftime('%H:%M') if self.waktu else None,
            'tempat': self.tempat,
            'status': self.status.value if self.status else None,
            'created_by': self.created_by,
            'creator_name': self.creator.nama if self.creator else None,
            'creator_role': self.creator.role.value if self.creator else None,
            'approved_by': self.approved_by,
            'approver_name': self.approver.nama if self.approver else None,
            'rejection_reason': self.rejection_reason,
            'approved_at': _iso(self.approved_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


# ==========================================
# 4. ACTIVITY LOG (append-only)
# ==========================================
class ActivityLog(db.Model):
    """Mencatat siapa melakukan apa. Tidak pernah di-update."""
    __tablename__ = 'activity_logs'
    id = db.Column(db.Integer, primary_key=True)
    # NULL untuk event sistem
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    action = db.Column(db.String(50), nullable=False, index=True)  # login, create, approve, ...
    agenda_id = db.Column(db.Integer, db.ForeignKey('agendas.id', ondelete='SET NULL'), nullable=True, index=True)
    description = db.Column(db.Text)
    ip_address = db.Column(db.String(45), index=True)
    user_agent = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    user = db.relationship('User', backref=db.backref('activities', passive_deletes=True))
    agenda = db.relationship('Agenda', backref=db.backref('activities', passive_deletes=True))

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'user_name': self.user.nama if self.user else None,
            'user_role': self.user.role.value if self.user else None,
            'user_email': self.user.email if self.user else None,
            'action': self.action,
            'agenda_id': self.agenda_id,
            'agenda_title': self.agenda.judul if self.agenda else None,
            'description': self.description,
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'created_at': _iso(self.created_at),
        }


def _iso(value):
    return value.isoformat() if value else None
