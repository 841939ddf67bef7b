"""initial agenda schema: users, agendas, activity_logs

Revision ID: a1c3e5f7b9d2
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1c3e5f7b9d2'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=100), nullable=False),
        sa.Column('nama', sa.String(length=100), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('role', sa.Enum('admin', 'guru', 'siswa', name='userrole', native_enum=False, length=10),
                  nullable=False),
        sa.Column('status', sa.Enum('active', 'inactive', name='userstatus', native_enum=False, length=10),
                  nullable=False),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_status', 'users', ['status'])

    op.create_table(
        'agendas',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('judul', sa.String(length=255), nullable=False),
        sa.Column('deskripsi', sa.Text(), nullable=True),
        sa.Column('tanggal', sa.Date(), nullable=False),
        sa.Column('waktu', sa.Time(), nullable=False),
        sa.Column('tempat', sa.String(length=255), nullable=False),
        sa.Column('status', sa.Enum('pending', 'approved', 'rejected', name='agendastatus', native_enum=False,
                                    length=10), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=False),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.ForeignKeyConstraint(['approved_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_agendas_tanggal', 'agendas', ['tanggal'])
    op.create_index('ix_agendas_status', 'agendas', ['status'])
    op.create_index('ix_agendas_created_by', 'agendas', ['created_by'])

    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('agenda_id', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['agenda_id'], ['agendas.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_activity_logs_user_id', 'activity_logs', ['user_id'])
    op.create_index('ix_activity_logs_action', 'activity_logs', ['action'])
    op.create_index('ix_activity_logs_agenda_id', 'activity_logs', ['agenda_id'])
    op.create_index('ix_activity_logs_ip_address', 'activity_logs', ['ip_address'])
    op.create_index('ix_activity_logs_created_at', 'activity_logs', ['created_at'])


def downgrade():
    op.drop_table('activity_logs')
    op.drop_table('agendas')
    op.drop_table('users')
