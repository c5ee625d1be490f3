"""Create citizenes tables

Revision ID: 001
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _membership_table(name: str, entity_column: str, entity_table: str) -> None:
    op.create_table(name,
        sa.Column(entity_column, sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint([entity_column], [f'{entity_table}.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint(entity_column, 'user_id')
    )
    op.create_index(op.f(f'ix_{name}_user_id'), name, ['user_id'], unique=False)


def upgrade() -> None:
    # Create users table
    op.create_table('users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('username', sa.String(length=100), nullable=True),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('profile_url', sa.String(length=500), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_username'), 'users', ['username'], unique=True)
    op.create_index(op.f('ix_users_phone_number'), 'users', ['phone_number'], unique=True)

    # Create feedbacks table
    op.create_table('feedbacks',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('ticket_id', sa.String(length=16), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=False),
        sa.Column('subcategory', sa.String(length=100), nullable=True),
        sa.Column('priority', sa.String(length=20), nullable=False),
        sa.Column('author_id', sa.String(length=36), nullable=True),
        sa.Column('assigned_to_id', sa.String(length=36), nullable=True),
        sa.Column('attachments', sa.JSON(), nullable=True),
        sa.Column('chat_enabled', sa.Boolean(), nullable=False),
        sa.Column('is_anonymous', sa.Boolean(), nullable=False),
        sa.Column('likes', sa.Integer(), nullable=False),
        sa.Column('location_country', sa.String(length=100), nullable=True),
        sa.Column('location_province', sa.String(length=100), nullable=True),
        sa.Column('location_district', sa.String(length=100), nullable=True),
        sa.Column('location_sector', sa.String(length=100), nullable=True),
        sa.Column('location_details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('likes >= 0', name='ck_feedbacks_likes_non_negative'),
        sa.ForeignKeyConstraint(['author_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['assigned_to_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_feedbacks_id'), 'feedbacks', ['id'], unique=False)
    op.create_index(op.f('ix_feedbacks_ticket_id'), 'feedbacks', ['ticket_id'], unique=True)
    op.create_index(op.f('ix_feedbacks_author_id'), 'feedbacks', ['author_id'], unique=False)
    op.create_index(op.f('ix_feedbacks_assigned_to_id'), 'feedbacks', ['assigned_to_id'], unique=False)
    op.create_index(op.f('ix_feedbacks_is_anonymous'), 'feedbacks', ['is_anonymous'], unique=False)
    op.create_index('ix_feedbacks_category_status', 'feedbacks', ['category', 'status'], unique=False)
    op.create_index('ix_feedbacks_category_subcategory', 'feedbacks', ['category', 'subcategory'], unique=False)
    op.create_index('ix_feedbacks_location', 'feedbacks', ['location_country', 'location_province'], unique=False)

    _membership_table('feedback_likes', 'feedback_id', 'feedbacks')
    _membership_table('feedback_followers', 'feedback_id', 'feedbacks')

    # Create feedback_status_changes table (append-only)
    op.create_table('feedback_status_changes',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('feedback_id', sa.String(length=36), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('from_status', sa.String(length=20), nullable=True),
        sa.Column('to_status', sa.String(length=20), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('changed_by_id', sa.String(length=36), nullable=True),
        sa.Column('source', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['feedback_id'], ['feedbacks.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['changed_by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_feedback_status_changes_feedback_id'), 'feedback_status_changes', ['feedback_id'], unique=False)

    # Create comments table
    op.create_table('comments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('feedback_id', sa.String(length=36), nullable=False),
        sa.Column('parent_id', sa.String(length=36), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('author_id', sa.String(length=36), nullable=False),
        sa.Column('author_name', sa.String(length=255), nullable=False),
        sa.Column('attachments', sa.JSON(), nullable=True),
        sa.Column('likes', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('likes >= 0', name='ck_comments_likes_non_negative'),
        sa.ForeignKeyConstraint(['feedback_id'], ['feedbacks.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['author_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_comments_id'), 'comments', ['id'], unique=False)
    op.create_index(op.f('ix_comments_parent_id'), 'comments', ['parent_id'], unique=False)
    op.create_index(op.f('ix_comments_author_id'), 'comments', ['author_id'], unique=False)
    op.create_index('ix_comments_feedback_created', 'comments', ['feedback_id', 'created_at'], unique=False)

    _membership_table('comment_likes', 'comment_id', 'comments')

    # Create responses table
    op.create_table('responses',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('feedback_id', sa.String(length=36), nullable=False),
        sa.Column('by_id', sa.String(length=36), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('attachments', sa.JSON(), nullable=True),
        sa.Column('status_update', sa.String(length=20), nullable=False),
        sa.Column('likes', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('likes >= 0', name='ck_responses_likes_non_negative'),
        sa.ForeignKeyConstraint(['feedback_id'], ['feedbacks.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_responses_id'), 'responses', ['id'], unique=False)
    op.create_index(op.f('ix_responses_by_id'), 'responses', ['by_id'], unique=False)
    op.create_index('ix_responses_feedback_created', 'responses', ['feedback_id', 'created_at'], unique=False)

    _membership_table('response_likes', 'response_id', 'responses')


def downgrade() -> None:
    op.drop_table('response_likes')
    op.drop_table('responses')
    op.drop_table('comment_likes')
    op.drop_table('comments')
    op.drop_table('feedback_status_changes')
    op.drop_table('feedback_followers')
    op.drop_table('feedback_likes')
    op.drop_table('feedbacks')
    op.drop_table('users')
