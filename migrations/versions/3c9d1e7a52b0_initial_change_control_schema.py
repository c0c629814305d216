"""initial change control schema

Revision ID: 3c9d1e7a52b0
Revises:
Create Date: 2026-10-12 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c9d1e7a52b0'
down_revision = None
branch_labels = None
depends_on = None

TYPED_TABLES = {
    'hardware_change_requests': [
        ('before_hw_manufacturer_model', 255), ('before_hw_name', 255), ('before_hw_os', 255),
        ('after_hw_manufacturer_model', 255), ('after_hw_name', 255), ('after_hw_os', 255),
    ],
    'software_change_requests': [
        ('before_sw_manufacturer', 200), ('before_sw_name', 200), ('before_sw_version', 50),
        ('after_sw_manufacturer', 200), ('after_sw_name', 200), ('after_sw_version', 50),
    ],
    'system_change_plans': [
        ('before_manufacturer_model', 200), ('before_hw_sw_name', 200), ('before_version', 100),
        ('after_manufacturer_model', 200), ('after_hw_sw_name', 200), ('after_version', 100),
    ],
}


def _typed_columns(table_name):
    columns = [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_number', sa.String(length=50), nullable=False),
        sa.Column('created_date', sa.DateTime(), nullable=False),
        sa.Column('requester_user_id', sa.Integer(), nullable=False),
        sa.Column('department', sa.String(length=200), nullable=True),
        sa.Column('position_title', sa.String(length=200), nullable=True),
        sa.Column('requester_name', sa.String(length=200), nullable=True),
        sa.Column('installed_cbs', sa.String(length=500), nullable=True),
        sa.Column('installed_component', sa.String(length=500), nullable=True),
        sa.Column('reason', sa.String(length=1000), nullable=True),
        sa.Column('work_description', sa.String(length=2000), nullable=True),
        sa.Column('security_review_comment', sa.String(length=2000), nullable=True),
        sa.Column('review_comment', sa.String(length=1000), nullable=True),
        sa.Column('prepared_by_user_id', sa.Integer(), nullable=True),
        sa.Column('reviewed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('approved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('prepared_at', sa.DateTime(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='Draft'),
        sa.Column('change_request_id', sa.Integer(), nullable=True),
    ]
    columns += [sa.Column(name, sa.String(length=length), nullable=True) for name, length in TYPED_TABLES[table_name]]
    if table_name == 'system_change_plans':
        columns.append(sa.Column('plan_details', sa.Text(), nullable=True))
    return columns + [
        sa.ForeignKeyConstraint(['requester_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['prepared_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['reviewed_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['approved_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['change_request_id'], ['change_requests.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('request_number'),
    ]


def upgrade():
    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=100), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('is_active_user', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
    )

    op.create_table(
        'ships',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('ship_name', sa.String(length=200), nullable=False),
        sa.Column('imo_number', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('imo_number'),
    )

    op.create_table(
        'change_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_no', sa.String(length=50), nullable=False),
        sa.Column('ship_id', sa.Integer(), nullable=True),
        sa.Column('request_type_id', sa.Integer(), nullable=True),
        sa.Column('status_id', sa.Integer(), nullable=False),
        sa.Column('requested_by_id', sa.Integer(), nullable=False),
        sa.Column('requested_at', sa.DateTime(), nullable=False),
        sa.Column('purpose', sa.String(length=500), nullable=False),
        sa.Column('description', sa.String(length=2000), nullable=True),
        sa.Column('reviewed_by_id', sa.Integer(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('review_comment', sa.String(length=1000), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['ship_id'], ['ships.id']),
        sa.ForeignKeyConstraint(['requested_by_id'], ['users.id']),
        sa.ForeignKeyConstraint(['reviewed_by_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('request_no'),
    )
    with op.batch_alter_table('change_requests', schema=None) as batch_op:
        batch_op.create_index('ix_change_requests_status', ['status_id'], unique=False)
        batch_op.create_index('ix_change_requests_requested_by', ['requested_by_id'], unique=False)

    op.create_table(
        'approvals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('change_request_id', sa.Integer(), nullable=False),
        sa.Column('stage', sa.SmallInteger(), nullable=False),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('action_by_id', sa.Integer(), nullable=False),
        sa.Column('action_at', sa.DateTime(), nullable=False),
        sa.Column('comment', sa.String(length=1000), nullable=True),
        sa.ForeignKeyConstraint(['change_request_id'], ['change_requests.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['action_by_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('change_request_id', 'stage', name='uq_approval_request_stage'),
    )

    for table_name in TYPED_TABLES:
        op.create_table(table_name, *_typed_columns(table_name))

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('entity_name', sa.String(length=200), nullable=True),
        sa.Column('table_name', sa.String(length=50), nullable=True),
        sa.Column('old_values', sa.Text(), nullable=True),
        sa.Column('new_values', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('user_name', sa.String(length=200), nullable=True),
        sa.Column('ip_address', sa.String(length=100), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('additional_info', sa.String(length=500), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index('ix_audit_logs_timestamp', ['timestamp'], unique=False)
        batch_op.create_index('ix_audit_logs_user', ['user_id'], unique=False)
        batch_op.create_index('ix_audit_logs_action', ['action'], unique=False)
        batch_op.create_index('ix_audit_logs_entity', ['entity_type', 'entity_id'], unique=False)

    op.create_table(
        'login_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('username', sa.String(length=100), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('is_successful', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('failure_reason', sa.String(length=500), nullable=True),
        sa.Column('ip_address', sa.String(length=100), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('device', sa.String(length=200), nullable=True),
        sa.Column('location', sa.String(length=100), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('additional_info', sa.String(length=500), nullable=True),
        sa.Column('session_duration_minutes', sa.Integer(), nullable=True),
        sa.Column('is_security_event', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('login_logs', schema=None) as batch_op:
        batch_op.create_index('ix_login_logs_timestamp', ['timestamp'], unique=False)
        batch_op.create_index('ix_login_logs_username', ['username'], unique=False)


def downgrade():
    with op.batch_alter_table('login_logs', schema=None) as batch_op:
        batch_op.drop_index('ix_login_logs_username')
        batch_op.drop_index('ix_login_logs_timestamp')
    op.drop_table('login_logs')

    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.drop_index('ix_audit_logs_entity')
        batch_op.drop_index('ix_audit_logs_action')
        batch_op.drop_index('ix_audit_logs_user')
        batch_op.drop_index('ix_audit_logs_timestamp')
    op.drop_table('audit_logs')

    for table_name in reversed(list(TYPED_TABLES)):
        op.drop_table(table_name)

    op.drop_table('approvals')

    with op.batch_alter_table('change_requests', schema=None) as batch_op:
        batch_op.drop_index('ix_change_requests_requested_by')
        batch_op.drop_index('ix_change_requests_status')
    op.drop_table('change_requests')

    op.drop_table('ships')
    op.drop_table('users')
    op.drop_table('roles')
