"""Initial schema - workflows, definitions, executions, node executions, approvals

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create initial tables for the migraflow workflow engine"""

    # Create workflows table
    op.create_table(
        'workflows',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('team_id', sa.String(length=36), nullable=True),
        sa.Column('trigger', sa.String(length=20), nullable=False),
        sa.Column('is_published', sa.Boolean(), nullable=False),
        sa.Column('definition_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_workflows_name'), 'workflows', ['name'], unique=False)
    op.create_index(op.f('ix_workflows_team_id'), 'workflows', ['team_id'], unique=False)

    # Create workflow_definitions table
    op.create_table(
        'workflow_definitions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('workflow_id', sa.String(length=36), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('format', sa.String(length=10), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['workflow_id'], ['workflows.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('workflow_id', 'version', name='uq_workflow_definition_version')
    )
    op.create_index(op.f('ix_workflow_definitions_workflow_id'), 'workflow_definitions', ['workflow_id'], unique=False)

    # Create workflow_executions table
    op.create_table(
        'workflow_executions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('workflow_id', sa.String(length=36), nullable=False),
        sa.Column('definition_id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('triggered_by', sa.String(length=255), nullable=False),
        sa.Column('context', sa.JSON(), nullable=True),
        sa.Column('triggered_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('output', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['workflow_id'], ['workflows.id'], ),
        sa.ForeignKeyConstraint(['definition_id'], ['workflow_definitions.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_workflow_executions_workflow_id'), 'workflow_executions', ['workflow_id'], unique=False)
    op.create_index(op.f('ix_workflow_executions_status'), 'workflow_executions', ['status'], unique=False)
    op.create_index(op.f('ix_workflow_executions_triggered_at'), 'workflow_executions', ['triggered_at'], unique=False)

    # Create node_executions table
    op.create_table(
        'node_executions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('execution_id', sa.String(length=36), nullable=False),
        sa.Column('node_id', sa.String(length=255), nullable=False),
        sa.Column('node_type', sa.String(length=50), nullable=False),
        sa.Column('node_name', sa.String(length=255), nullable=True),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('input', sa.JSON(), nullable=True),
        sa.Column('output', sa.JSON(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('duration', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['execution_id'], ['workflow_executions.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_node_executions_execution_id'), 'node_executions', ['execution_id'], unique=False)
    op.create_index(op.f('ix_node_executions_node_id'), 'node_executions', ['node_id'], unique=False)

    # Create workflow_approvals table
    op.create_table(
        'workflow_approvals',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('workflow_id', sa.String(length=36), nullable=False),
        sa.Column('execution_id', sa.String(length=36), nullable=False),
        sa.Column('node_id', sa.String(length=255), nullable=False),
        sa.Column('node_name', sa.String(length=255), nullable=True),
        sa.Column('approvers', sa.JSON(), nullable=False),
        sa.Column('approval_type', sa.String(length=20), nullable=False),
        sa.Column('required_approvals', sa.Integer(), nullable=False),
        sa.Column('timeout_seconds', sa.Integer(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('context', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['workflow_id'], ['workflows.id'], ),
        sa.ForeignKeyConstraint(['execution_id'], ['workflow_executions.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_workflow_approvals_workflow_id'), 'workflow_approvals', ['workflow_id'], unique=False)
    op.create_index(op.f('ix_workflow_approvals_execution_id'), 'workflow_approvals', ['execution_id'], unique=False)
    op.create_index(op.f('ix_workflow_approvals_expires_at'), 'workflow_approvals', ['expires_at'], unique=False)
    op.create_index(op.f('ix_workflow_approvals_status'), 'workflow_approvals', ['status'], unique=False)

    # Create approval_responses table
    op.create_table(
        'approval_responses',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('approval_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('decision', sa.String(length=20), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['approval_id'], ['workflow_approvals.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('approval_id', 'user_id', name='uq_approval_response_user')
    )
    op.create_index(op.f('ix_approval_responses_approval_id'), 'approval_responses', ['approval_id'], unique=False)


def downgrade() -> None:
    """Drop all tables"""
    op.drop_index(op.f('ix_approval_responses_approval_id'), table_name='approval_responses')
    op.drop_table('approval_responses')

    op.drop_index(op.f('ix_workflow_approvals_status'), table_name='workflow_approvals')
    op.drop_index(op.f('ix_workflow_approvals_expires_at'), table_name='workflow_approvals')
    op.drop_index(op.f('ix_workflow_approvals_execution_id'), table_name='workflow_approvals')
    op.drop_index(op.f('ix_workflow_approvals_workflow_id'), table_name='workflow_approvals')
    op.drop_table('workflow_approvals')

    op.drop_index(op.f('ix_node_executions_node_id'), table_name='node_executions')
    op.drop_index(op.f('ix_node_executions_execution_id'), table_name='node_executions')
    op.drop_table('node_executions')

    op.drop_index(op.f('ix_workflow_executions_triggered_at'), table_name='workflow_executions')
    op.drop_index(op.f('ix_workflow_executions_status'), table_name='workflow_executions')
    op.drop_index(op.f('ix_workflow_executions_workflow_id'), table_name='workflow_executions')
    op.drop_table('workflow_executions')

    op.drop_index(op.f('ix_workflow_definitions_workflow_id'), table_name='workflow_definitions')
    op.drop_table('workflow_definitions')

    op.drop_index(op.f('ix_workflows_team_id'), table_name='workflows')
    op.drop_index(op.f('ix_workflows_name'), table_name='workflows')
    op.drop_table('workflows')
