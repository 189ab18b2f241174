"""Initial schema: companies, users, invites, catalog, templates, projects, stages, history

Revision ID: 3f9a1c2b7d40
Revises:
Create Date: 2026-10-18 10:12:31.402215

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f9a1c2b7d40'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated=False):
    cols = [sa.Column('created_at', sa.DateTime(), nullable=True)]
    if updated:
        cols.append(sa.Column('updated_at', sa.DateTime(), nullable=True))
    return cols


def upgrade():
    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('logo_url', sa.String(length=500), nullable=True),
        *_timestamps(updated=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=True),
        sa.Column('email', sa.String(length=200), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('job_title', sa.String(length=200), nullable=True),
        sa.Column('profile_image_url', sa.String(length=500), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False,
                  comment='guest | user | admin | superadmin'),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        *_timestamps(updated=True),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_users_company_id', 'users', ['company_id'])

    op.create_table(
        'company_invites',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('token', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=200), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('max_uses', sa.Integer(), nullable=False, comment='0 = unlimited'),
        sa.Column('used_count', sa.Integer(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token'),
    )
    op.create_index('ix_company_invites_company_id', 'company_invites', ['company_id'])

    # ── Catalog ──────────────────────────────────────────────────────────
    op.create_table(
        'factories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_factories_company_id', 'factories', ['company_id'])

    op.create_table(
        'product_types',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('name_ru', sa.String(length=200), nullable=True),
        sa.Column('name_zh', sa.String(length=200), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_product_types_company_id', 'product_types', ['company_id'])

    # ── Template Registry ────────────────────────────────────────────────
    op.create_table(
        'stage_templates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('name_ru', sa.String(length=255), nullable=True),
        sa.Column('name_zh', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=30), nullable=False,
                  comment='generic | render | model_3d | factory_proposal | quotation'),
        sa.Column('has_checklist', sa.Boolean(), nullable=False),
        sa.Column('checklist_items', sa.JSON(), nullable=True),
        sa.Column('has_conditional_substages', sa.Boolean(), nullable=False),
        sa.Column('conditional_substages', sa.JSON(), nullable=True),
        sa.Column('custom_fields', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stage_templates_company_id', 'stage_templates', ['company_id'])
    op.create_index('ix_stage_templates_company_position', 'stage_templates', ['company_id', 'position'])

    # ── Projects ─────────────────────────────────────────────────────────
    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('responsible_user_id', sa.Integer(), nullable=True),
        sa.Column('factory_id', sa.Integer(), nullable=True),
        sa.Column('product_type_id', sa.Integer(), nullable=True),
        sa.Column('deadline', sa.Date(), nullable=True),
        sa.Column('cover_image_id', sa.Integer(), nullable=True),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        *_timestamps(updated=True),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['responsible_user_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['factory_id'], ['factories.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['product_type_id'], ['product_types.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_projects_company_id', 'projects', ['company_id'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('article', sa.String(length=100), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('barcode', sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_products_project_id', 'products', ['project_id'])

    # ── Stage Instance Store ─────────────────────────────────────────────
    op.create_table(
        'stages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('template_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('kind', sa.String(length=30), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False,
                  comment='waiting | in_progress | completed | skip'),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('deadline', sa.Date(), nullable=True),
        sa.Column('checklist_data', sa.JSON(), nullable=True),
        sa.Column('checklist_input_data', sa.JSON(), nullable=True),
        sa.Column('conditional_enabled', sa.Boolean(), nullable=False),
        sa.Column('conditional_substages_data', sa.JSON(), nullable=True),
        sa.Column('custom_fields_data', sa.JSON(), nullable=True),
        sa.Column('distribution_data', sa.JSON(), nullable=True),
        sa.Column('product_quantities_data', sa.JSON(), nullable=True),
        *_timestamps(updated=True),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['template_id'], ['stage_templates.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('project_id', 'position', name='uq_stage_project_position'),
    )
    op.create_index('ix_stages_project_id', 'stages', ['project_id'])

    op.create_table(
        'stage_files',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('stage_id', sa.Integer(), nullable=False),
        sa.Column('checklist_item_key', sa.String(length=100), nullable=True),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('file_url', sa.String(length=500), nullable=False),
        sa.Column('file_type', sa.String(length=100), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('uploaded_by_id', sa.Integer(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('is_latest', sa.Boolean(), nullable=False),
        sa.Column('allowed_user_ids', sa.JSON(), nullable=True,
                  comment='NULL or empty = visible to the whole company'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['stage_id'], ['stages.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['uploaded_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stage_files_stage_id', 'stage_files', ['stage_id'])

    op.create_table(
        'comments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('stage_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('mentions', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['stage_id'], ['stages.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_comments_stage_id', 'comments', ['stage_id'])

    op.create_table(
        'tasks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('stage_id', sa.Integer(), nullable=False),
        sa.Column('assigned_to_id', sa.Integer(), nullable=False),
        sa.Column('assigned_by_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('completed', sa.Boolean(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False,
                  comment='pending | completed | needs_revision'),
        sa.Column('revision_note', sa.Text(), nullable=True),
        sa.Column('revision_response', sa.Text(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        *_timestamps(updated=True),
        sa.ForeignKeyConstraint(['stage_id'], ['stages.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['assigned_to_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['assigned_by_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tasks_stage_id', 'tasks', ['stage_id'])
    op.create_index('ix_tasks_assigned_to_id', 'tasks', ['assigned_to_id'])
    op.create_index('ix_tasks_assigned_by_id', 'tasks', ['assigned_by_id'])

    # ── History Ledger (append-only) ─────────────────────────────────────
    op.create_table(
        'status_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('stage_id', sa.Integer(), nullable=False),
        sa.Column('old_status', sa.String(length=20), nullable=True),
        sa.Column('new_status', sa.String(length=20), nullable=False),
        sa.Column('changed_by_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['stage_id'], ['stages.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['changed_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_status_history_stage_id', 'status_history', ['stage_id'])

    op.create_table(
        'deadline_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('stage_id', sa.Integer(), nullable=False),
        sa.Column('old_deadline', sa.Date(), nullable=True),
        sa.Column('new_deadline', sa.Date(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('changed_by_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['stage_id'], ['stages.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['changed_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_deadline_history_stage_id', 'deadline_history', ['stage_id'])


def downgrade():
    for table in (
        'deadline_history', 'status_history', 'tasks', 'comments', 'stage_files',
        'stages', 'products', 'projects', 'stage_templates', 'product_types',
        'factories', 'company_invites', 'users', 'companies',
    ):
        op.drop_table(table)
