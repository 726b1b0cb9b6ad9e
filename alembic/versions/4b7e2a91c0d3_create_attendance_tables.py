"""create subjects, attendance_records and notifications tables

Revision ID: 4b7e2a91c0d3
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4b7e2a91c0d3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

subject_kind = sa.Enum('student', 'employee', name='subject_kind')
attendance_status = sa.Enum('present', 'late', 'absent', name='attendance_status')
time_window = sa.Enum('early', 'on_time', 'late', 'very_late', name='attendance_time_window')
notification_method = sa.Enum('sms', 'email', 'multiple', name='attendance_notification_method')
notification_type = sa.Enum('attendance', 'absence', 'alert', 'announcement', name='notification_type')
notification_priority = sa.Enum('low', 'normal', 'high', name='notification_priority')
channel_status = sa.Enum('pending', 'sent', 'delivered', 'failed', name='notification_channel_status')
overall_status = sa.Enum('pending', 'partial', 'sent', 'failed', name='notification_overall_status')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _channel_columns(prefix: str, message_id_length: int):
    return [
        sa.Column(f'{prefix}_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(f'{prefix}_status', channel_status, nullable=False, server_default='pending'),
        sa.Column(f'{prefix}_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column(f'{prefix}_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column(f'{prefix}_message_id', sa.String(length=message_id_length), nullable=True),
        sa.Column(f'{prefix}_error', sa.Text(), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'subjects',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('subject_code', sa.String(length=50), nullable=False),
        sa.Column('kind', subject_kind, nullable=False),
        sa.Column('display_name', sa.String(length=150), nullable=False),
        sa.Column('group_name', sa.String(length=100), nullable=False),
        sa.Column('subgroup_name', sa.String(length=100), nullable=False),
        sa.Column('contact_name', sa.String(length=150), nullable=True),
        sa.Column('contact_phone', sa.String(length=30), nullable=True),
        sa.Column('contact_email', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_subjects_id', 'subjects', ['id'])
    op.create_index('ix_subjects_subject_code', 'subjects', ['subject_code'], unique=True)
    op.create_index('ix_subjects_is_active', 'subjects', ['is_active'])

    op.create_table(
        'attendance_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('subject_id', sa.Integer(), sa.ForeignKey('subjects.id'), nullable=False),
        sa.Column('recorded_by', sa.String(length=64), nullable=True),
        sa.Column('scan_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('scan_date', sa.Date(), nullable=False),
        sa.Column('status', attendance_status, nullable=False),
        sa.Column('time_window', time_window, nullable=True),
        sa.Column('minutes_late', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('location', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.String(length=200), nullable=True),
        sa.Column('raw_code', sa.Text(), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('accuracy', sa.Float(), nullable=True),
        sa.Column('device_platform', sa.String(length=50), nullable=True),
        sa.Column('device_user_agent', sa.String(length=255), nullable=True),
        sa.Column('device_ip', sa.String(length=64), nullable=True),
        sa.Column('is_valid_scan', sa.Boolean(), nullable=False, server_default=sa.true()),
        # non-native enum: plain VARCHAR on every backend
        sa.Column('invalid_reason', sa.String(length=14), nullable=True),
        sa.Column('notification_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notification_method', notification_method, nullable=True),
        sa.Column('notification_status', sa.String(length=20), nullable=True),
        sa.Column('notification_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notification_error', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_attendance_records_id', 'attendance_records', ['id'])
    op.create_index('ix_attendance_records_subject_id', 'attendance_records', ['subject_id'])
    op.create_index('ix_attendance_scan_date_status', 'attendance_records', ['scan_date', 'status'])
    op.create_index(
        'uq_attendance_valid_scan_per_day',
        'attendance_records',
        ['subject_id', 'scan_date'],
        unique=True,
        sqlite_where=sa.text('is_valid_scan = 1'),
        postgresql_where=sa.text('is_valid_scan'),
    )
    op.create_index(
        'uq_attendance_absence_per_day',
        'attendance_records',
        ['subject_id', 'scan_date'],
        unique=True,
        sqlite_where=sa.text("invalid_reason = 'absent'"),
        postgresql_where=sa.text("invalid_reason = 'absent'"),
    )

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('subject_id', sa.Integer(), sa.ForeignKey('subjects.id'), nullable=False),
        sa.Column('attendance_record_id', sa.Integer(), sa.ForeignKey('attendance_records.id'), nullable=True),
        sa.Column('type', notification_type, nullable=False, server_default='attendance'),
        sa.Column('priority', notification_priority, nullable=False, server_default='normal'),
        sa.Column('contact_name', sa.String(length=150), nullable=True),
        sa.Column('contact_phone', sa.String(length=30), nullable=True),
        sa.Column('contact_email', sa.String(length=255), nullable=True),
        sa.Column('subject_line', sa.String(length=200), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('sms_message', sa.Text(), nullable=True),
        *_channel_columns('sms', 100),
        *_channel_columns('email', 255),
        sa.Column('overall_status', overall_status, nullable=False, server_default='pending'),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
    )
    op.create_index('ix_notifications_id', 'notifications', ['id'])
    op.create_index('ix_notifications_subject_id', 'notifications', ['subject_id'])
    op.create_index('ix_notifications_attendance_record_id', 'notifications', ['attendance_record_id'])
    op.create_index('ix_notifications_overall_status', 'notifications', ['overall_status'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('notifications')
    op.drop_table('attendance_records')
    op.drop_table('subjects')

    bind = op.get_bind()
    for enum_type in (
        overall_status, channel_status, notification_priority, notification_type,
        notification_method, time_window, attendance_status, subject_kind,
    ):
        enum_type.drop(bind, checkfirst=True)
