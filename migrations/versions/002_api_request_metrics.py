"""Add api_request_metrics

Revision ID: 002_api_request_metrics
Revises: 001_initial
Create Date: 2026-02-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002_api_request_metrics'
down_revision = '001_initial'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'api_request_metrics',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('endpoint', sa.String(500), nullable=False),
        sa.Column('method', sa.String(10), nullable=False),
        sa.Column('status_code', sa.Integer(), nullable=False),
        sa.Column('response_time_ms', sa.Integer(), nullable=False),
        sa.Column('client_ip', sa.String(100), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_api_request_metrics_endpoint', 'api_request_metrics', ['endpoint'])
    op.create_index('ix_api_request_metrics_timestamp', 'api_request_metrics', ['timestamp'])


def downgrade() -> None:
    op.drop_index('ix_api_request_metrics_timestamp', table_name='api_request_metrics')
    op.drop_index('ix_api_request_metrics_endpoint', table_name='api_request_metrics')
    op.drop_table('api_request_metrics')
