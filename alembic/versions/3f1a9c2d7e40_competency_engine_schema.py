"""competency engine schema

Revision ID: 3f1a9c2d7e40
Revises: 
Create Date: 2026-10-18 10:12:41.205118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2d7e40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False, server_default='carer'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        'tasks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('target_count', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('target_count > 0', name='ck_task_target_positive'),
    )
    op.create_table(
        'care_packages',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('postcode', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        'carer_package_assignments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('carer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('package_id', sa.Integer(), sa.ForeignKey('care_packages.id'), nullable=False, index=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('assigned_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('carer_id', 'package_id', name='uq_carer_package'),
    )
    op.create_table(
        'package_task_assignments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('package_id', sa.Integer(), sa.ForeignKey('care_packages.id'), nullable=False, index=True),
        sa.Column('task_id', sa.Integer(), sa.ForeignKey('tasks.id'), nullable=False, index=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('assigned_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('package_id', 'task_id', name='uq_package_task'),
    )
    op.create_table(
        'task_progress',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('carer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('package_id', sa.Integer(), sa.ForeignKey('care_packages.id'), nullable=False),
        sa.Column('task_id', sa.Integer(), sa.ForeignKey('tasks.id'), nullable=False, index=True),
        sa.Column('completion_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completion_percentage', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('carer_id', 'package_id', 'task_id', name='uq_carer_package_task'),
        sa.CheckConstraint('completion_count >= 0', name='ck_progress_count_non_negative'),
    )
    op.create_table(
        'assessments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        'assessment_task_coverage',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('assessment_id', sa.Integer(), sa.ForeignKey('assessments.id'), nullable=False, index=True),
        sa.Column('task_id', sa.Integer(), sa.ForeignKey('tasks.id'), nullable=False),
        sa.UniqueConstraint('assessment_id', 'task_id', name='uq_assessment_task'),
    )
    op.create_table(
        'assessment_responses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('assessment_id', sa.Integer(), sa.ForeignKey('assessments.id'), nullable=False),
        sa.Column('carer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('assessor_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('assessor_name', sa.String(), nullable=True),
        sa.Column('overall_rating', sa.String(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        'competency_ratings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('carer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('task_id', sa.Integer(), sa.ForeignKey('tasks.id'), nullable=False),
        sa.Column('level', sa.String(), nullable=False),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('assessment_response_id', sa.Integer(), sa.ForeignKey('assessment_responses.id'), nullable=True),
        sa.Column('set_by_admin_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('set_by_admin_name', sa.String(), nullable=True),
        sa.Column('set_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.UniqueConstraint('carer_id', 'task_id', name='uq_carer_task_rating'),
    )
    op.create_table(
        'competency_confirmations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('carer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('task_id', sa.Integer(), sa.ForeignKey('tasks.id'), nullable=False),
        sa.Column('new_level', sa.String(), nullable=False),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('assessment_response_id', sa.Integer(), sa.ForeignKey('assessment_responses.id'), nullable=True),
        sa.Column('proposed_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('proposed_by_name', sa.String(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='PENDING'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmed', sa.Boolean(), nullable=True),
    )
    # One outstanding request per carer/task
    op.create_index(
        'uq_pending_confirmation',
        'competency_confirmations',
        ['carer_id', 'task_id'],
        unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
        sqlite_where=sa.text("status = 'PENDING'"),
    )
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('action', sa.String(), nullable=False, index=True),
        sa.Column('entity_type', sa.String(), nullable=False),
        sa.Column('entity_id', sa.String(), nullable=False),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('performed_by_id', sa.Integer(), nullable=True),
        sa.Column('performed_by_name', sa.String(), nullable=False),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('user_agent', sa.String(), nullable=True),
        sa.Column('performed_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_index('uq_pending_confirmation', table_name='competency_confirmations')
    op.drop_table('competency_confirmations')
    op.drop_table('competency_ratings')
    op.drop_table('assessment_responses')
    op.drop_table('assessment_task_coverage')
    op.drop_table('assessments')
    op.drop_table('task_progress')
    op.drop_table('package_task_assignments')
    op.drop_table('carer_package_assignments')
    op.drop_table('care_packages')
    op.drop_table('tasks')
    op.drop_table('users')
