"""Initial schema - families, characters, quests, boss battles, ledger

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, comment='Row creation time (UTC)'),
        sa.Column('updated_at', sa.DateTime(), nullable=False, comment='Last modification time (UTC)'),
    ]


def upgrade() -> None:
    op.create_table('families',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False, comment='Family display name'),
        sa.Column('timezone', sa.String(length=64), nullable=False, comment='IANA timezone used for recurring quest cycles'),
        sa.Column('week_start_day', sa.Integer(), nullable=False, comment='First day of the week for WEEKLY cycles (0=Sunday)'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('user_profiles',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('family_id', sa.String(length=36), nullable=True, comment='Owning family'),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False, comment='GUILD_MASTER, HERO or YOUNG_HERO'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['family_id'], ['families.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_user_profile_family', 'user_profiles', ['family_id', 'role'])

    op.create_table('characters',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('class', sa.String(length=20), nullable=True),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('xp', sa.Integer(), nullable=False),
        sa.Column('gold', sa.Integer(), nullable=False),
        sa.Column('gems', sa.Integer(), nullable=False),
        sa.Column('honor_points', sa.Integer(), nullable=False),
        sa.Column('active_family_quest_id', sa.String(length=36), nullable=True,
                  comment='FAMILY quest currently claimed by this character'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['user_profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )
    op.create_index('idx_character_active_family_quest', 'characters', ['active_family_quest_id'])

    op.create_table('quest_templates',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('family_id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=20), nullable=False),
        sa.Column('difficulty', sa.String(length=10), nullable=False),
        sa.Column('quest_type', sa.String(length=20), nullable=False),
        sa.Column('xp_reward', sa.Integer(), nullable=False),
        sa.Column('gold_reward', sa.Integer(), nullable=False),
        sa.Column('recurrence_pattern', sa.String(length=10), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_paused', sa.Boolean(), nullable=False),
        sa.Column('assigned_character_ids', sa.JSON(), nullable=False),
        sa.Column('class_bonuses', sa.JSON(), nullable=True),
        sa.Column('created_by_id', sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['family_id'], ['families.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_quest_template_family_active', 'quest_templates', ['family_id', 'is_active', 'is_paused'])

    op.create_table('character_quest_streaks',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('character_id', sa.String(length=36), nullable=False),
        sa.Column('template_id', sa.String(length=36), nullable=False),
        sa.Column('current_streak', sa.Integer(), nullable=False),
        sa.Column('longest_streak', sa.Integer(), nullable=False),
        sa.Column('last_completed_date', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['character_id'], ['characters.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['template_id'], ['quest_templates.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('character_id', 'template_id', name='uq_character_template_streak')
    )

    op.create_table('quest_instances',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('family_id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('quest_type', sa.String(length=20), nullable=False),
        sa.Column('category', sa.String(length=20), nullable=False),
        sa.Column('difficulty', sa.String(length=10), nullable=False),
        sa.Column('xp_reward', sa.Integer(), nullable=False),
        sa.Column('gold_reward', sa.Integer(), nullable=False),
        sa.Column('gems_reward', sa.Integer(), nullable=False),
        sa.Column('honor_reward', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('assigned_to_id', sa.String(length=36), nullable=True),
        sa.Column('volunteered_by', sa.String(length=36), nullable=True),
        sa.Column('volunteer_bonus', sa.Numeric(precision=4, scale=2), nullable=True),
        sa.Column('created_by_id', sa.String(length=36), nullable=True),
        sa.Column('due_date', sa.DateTime(), nullable=True),
        sa.Column('cycle_start_date', sa.DateTime(), nullable=True),
        sa.Column('cycle_end_date', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('template_id', sa.String(length=36), nullable=True),
        sa.Column('recurrence_pattern', sa.String(length=10), nullable=True),
        sa.Column('streak_count', sa.Integer(), nullable=True),
        sa.Column('streak_bonus', sa.Numeric(precision=4, scale=2), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['family_id'], ['families.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['assigned_to_id'], ['user_profiles.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['volunteered_by'], ['characters.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_quest_instance_family_status', 'quest_instances', ['family_id', 'status'])
    op.create_index('idx_quest_instance_assignee', 'quest_instances', ['assigned_to_id', 'status'])
    op.create_index('idx_quest_instance_template_cycle', 'quest_instances', ['template_id', 'cycle_start_date'])
    op.create_index('idx_quest_instance_cycle_end', 'quest_instances', ['cycle_end_date', 'status'])

    op.create_table('boss_battles',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('family_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('reward_gold', sa.Integer(), nullable=False),
        sa.Column('reward_xp', sa.Integer(), nullable=False),
        sa.Column('honor_reward', sa.Integer(), nullable=False),
        sa.Column('rewards_distributed', sa.Boolean(), nullable=False),
        sa.Column('join_window_minutes', sa.Integer(), nullable=False),
        sa.Column('join_window_expires_at', sa.DateTime(), nullable=True),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('defeated_at', sa.DateTime(), nullable=True),
        sa.Column('created_by_id', sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['family_id'], ['families.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_boss_battle_family_status', 'boss_battles', ['family_id', 'status'])

    op.create_table('boss_battle_participants',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('boss_battle_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
        sa.Column('participation_status', sa.String(length=10), nullable=True),
        sa.Column('awarded_gold', sa.Integer(), nullable=False),
        sa.Column('awarded_xp', sa.Integer(), nullable=False),
        sa.Column('honor_awarded', sa.Integer(), nullable=False),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('approved_by', sa.String(length=36), nullable=True),
        sa.ForeignKeyConstraint(['boss_battle_id'], ['boss_battles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['user_profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('boss_battle_id', 'user_id', name='uq_boss_battle_participant')
    )
    op.create_index('idx_boss_participant_user', 'boss_battle_participants', ['user_id'])

    op.create_table('transactions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('gold_change', sa.Integer(), nullable=False),
        sa.Column('xp_change', sa.Integer(), nullable=False),
        sa.Column('gems_change', sa.Integer(), nullable=False),
        sa.Column('honor_change', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('related_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['user_profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_transaction_user_created', 'transactions', ['user_id', 'created_at'])
    op.create_index('idx_transaction_related', 'transactions', ['related_id'])


def downgrade() -> None:
    op.drop_table('transactions')
    op.drop_table('boss_battle_participants')
    op.drop_table('boss_battles')
    op.drop_table('quest_instances')
    op.drop_table('character_quest_streaks')
    op.drop_table('quest_templates')
    op.drop_table('characters')
    op.drop_table('user_profiles')
    op.drop_table('families')
