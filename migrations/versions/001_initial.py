"""Initial migration - create air_quality_data

Revision ID: 001_initial
Revises:
Create Date: 2026-01-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'air_quality_data',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('city', sa.String(200), nullable=False),
        sa.Column('country', sa.String(200), nullable=False),
        sa.Column('city_key', sa.String(200), nullable=False),
        sa.Column('country_key', sa.String(200), nullable=False),
        sa.Column('location_id', sa.String(50), nullable=True),
        sa.Column('aqi', sa.Integer(), nullable=True),
        sa.Column('pm25', sa.Float(), nullable=True),
        sa.Column('pm10', sa.Float(), nullable=True),
        sa.Column('no2', sa.Float(), nullable=True),
        sa.Column('o3', sa.Float(), nullable=True),
        sa.Column('co', sa.Float(), nullable=True),
        sa.Column('so2', sa.Float(), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('city_key', 'country_key', name='uq_air_quality_city_country'),
    )
    op.create_index('ix_air_quality_data_country_key', 'air_quality_data', ['country_key'])
    op.create_index('ix_air_quality_data_aqi', 'air_quality_data', ['aqi'])


def downgrade() -> None:
    op.drop_index('ix_air_quality_data_aqi', table_name='air_quality_data')
    op.drop_index('ix_air_quality_data_country_key', table_name='air_quality_data')
    op.drop_table('air_quality_data')
