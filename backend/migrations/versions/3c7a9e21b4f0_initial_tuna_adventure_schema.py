"""initial tuna adventure schema

Revision ID: 3c7a9e21b4f0
Revises:
Create Date: 2025-09-14 10:20:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c7a9e21b4f0'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'admin',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_admin_username', 'admin', ['username'], unique=True)

    op.create_table(
        'team',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('current_position', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('total_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_team_name', 'team', ['name'], unique=True)

    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='member'),
        sa.Column('team_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['team_id'], ['team.id']),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'scenario',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=128), nullable=False),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('reference_answer', sa.Text(), nullable=False),
        sa.Column('reference_rationale', sa.Text(), nullable=False),
        sa.Column('max_score', sa.Integer(), nullable=False, server_default='15'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_scenario_position', 'scenario', ['position'], unique=True)

    op.create_table(
        'decision',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('team_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('decision_text', sa.Text(), nullable=False),
        sa.Column('rationale_text', sa.Text(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['team_id'], ['team.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('team_id', 'position', name='uq_decision_team_position'),
    )
    op.create_index('ix_decision_team_id', 'decision', ['team_id'], unique=False)

    op.create_table(
        'session_state',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('phase', sa.String(length=16), nullable=False, server_default='waiting'),
        sa.Column('current_position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('session_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'game_setting',
        sa.Column('key', sa.String(length=64), nullable=False),
        sa.Column('value', sa.String(length=256), nullable=False),
        sa.Column('description', sa.String(length=256), nullable=True),
        sa.Column('updated_by', sa.String(length=64), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('key'),
    )

    op.create_table(
        'session_archive',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('summary', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade():
    op.drop_table('session_archive')
    op.drop_table('game_setting')
    op.drop_table('session_state')
    op.drop_index('ix_decision_team_id', table_name='decision')
    op.drop_table('decision')
    op.drop_index('ix_scenario_position', table_name='scenario')
    op.drop_table('scenario')
    op.drop_table('player')
    op.drop_index('ix_team_name', table_name='team')
    op.drop_table('team')
    op.drop_index('ix_admin_username', table_name='admin')
    op.drop_table('admin')
