"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-01 12:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, JSONB

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    # Trigram similarity for title lookups and duplicate detection
    op.execute('CREATE EXTENSION IF NOT EXISTS pg_trgm')

    # Create cinemas table
    op.create_table(
        'cinemas',
        sa.Column('id', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('short_name', sa.String(length=100), nullable=True),
        sa.Column('chain', sa.String(length=100), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=False, server_default='london'),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('postcode', sa.String(length=20), nullable=True),
        sa.Column('website', sa.String(length=500), nullable=True),
        sa.Column('features', ARRAY(sa.String()), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('last_scraped_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_cinemas_chain'), 'cinemas', ['chain'], unique=False)
    op.create_index(op.f('ix_cinemas_city'), 'cinemas', ['city'], unique=False)

    # Create films table
    op.create_table(
        'films',
        sa.Column('id', sa.String(length=100), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('normalized_title', sa.String(length=500), nullable=False),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('tmdb_id', sa.Integer(), nullable=True),
        sa.Column('imdb_id', sa.String(length=20), nullable=True),
        sa.Column('directors', ARRAY(sa.String()), nullable=True),
        sa.Column('cast', ARRAY(sa.String()), nullable=True),
        sa.Column('countries', ARRAY(sa.String()), nullable=True),
        sa.Column('genres', ARRAY(sa.String()), nullable=True),
        sa.Column('overview', sa.Text(), nullable=True),
        sa.Column('poster_url', sa.String(length=1000), nullable=True),
        sa.Column('runtime', sa.Integer(), nullable=True),
        sa.Column('match_confidence', sa.Float(), nullable=True),
        sa.Column('match_strategy', sa.String(length=50), nullable=True),
        sa.Column('matched_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_films_title'), 'films', ['title'], unique=False)
    op.create_index(op.f('ix_films_normalized_title'), 'films', ['normalized_title'], unique=False)
    op.create_index(op.f('ix_films_tmdb_id'), 'films', ['tmdb_id'], unique=True)
    op.execute(
        'CREATE INDEX ix_films_normalized_title_trgm ON films '
        'USING gin (normalized_title gin_trgm_ops)'
    )

    # Create screenings table
    op.create_table(
        'screenings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('cinema_id', sa.String(length=100), nullable=False),
        sa.Column('film_id', sa.String(length=100), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('booking_url', sa.String(length=1000), nullable=True),
        sa.Column('screen_name', sa.String(length=100), nullable=True),
        sa.Column('format', sa.String(length=50), nullable=True),
        sa.Column('event_type', sa.String(length=50), nullable=True),
        sa.Column('event_description', sa.Text(), nullable=True),
        sa.Column('is_special_event', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_3d', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('has_subtitles', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('subtitle_language', sa.String(length=20), nullable=True),
        sa.Column('has_audio_description', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_relaxed_screening', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('season', sa.String(length=200), nullable=True),
        sa.Column('source_id', sa.String(length=200), nullable=True),
        sa.Column('raw_title', sa.Text(), nullable=True),
        sa.Column('scraped_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['cinema_id'], ['cinemas.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['film_id'], ['films.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cinema_id', 'film_id', 'start_time', name='uq_cinema_film_time')
    )
    op.create_index(op.f('ix_screenings_cinema_id'), 'screenings', ['cinema_id'], unique=False)
    op.create_index(op.f('ix_screenings_film_id'), 'screenings', ['film_id'], unique=False)
    op.create_index(op.f('ix_screenings_start_time'), 'screenings', ['start_time'], unique=False)
    op.create_index(op.f('ix_screenings_source_id'), 'screenings', ['source_id'], unique=False)

    # Create seasons and season_films tables
    op.create_table(
        'seasons',
        sa.Column('id', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=300), nullable=False),
        sa.Column('cinema_id', sa.String(length=100), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['cinema_id'], ['cinemas.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_seasons_cinema_id'), 'seasons', ['cinema_id'], unique=False)

    op.create_table(
        'season_films',
        sa.Column('season_id', sa.String(length=100), nullable=False),
        sa.Column('film_id', sa.String(length=100), nullable=False),
        sa.ForeignKeyConstraint(['season_id'], ['seasons.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['film_id'], ['films.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('season_id', 'film_id')
    )
    op.create_index(op.f('ix_season_films_film_id'), 'season_films', ['film_id'], unique=False)

    # Create user_film_statuses table
    op.create_table(
        'user_film_statuses',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=100), nullable=False),
        sa.Column('film_id', sa.String(length=100), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['film_id'], ['films.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'film_id', name='uq_user_film')
    )
    op.create_index(op.f('ix_user_film_statuses_user_id'), 'user_film_statuses', ['user_id'], unique=False)
    op.create_index(op.f('ix_user_film_statuses_film_id'), 'user_film_statuses', ['film_id'], unique=False)

    # Create scraper_runs and cinema_baselines tables
    op.create_table(
        'scraper_runs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('cinema_id', sa.String(length=100), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('screening_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('baseline_count', sa.Float(), nullable=True),
        sa.Column('anomaly_type', sa.String(length=30), nullable=True),
        sa.Column('anomaly_details', JSONB(), nullable=True),
        sa.Column('metadata', JSONB(), nullable=True),
        sa.ForeignKeyConstraint(['cinema_id'], ['cinemas.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_scraper_runs_cinema_id'), 'scraper_runs', ['cinema_id'], unique=False)
    op.create_index(op.f('ix_scraper_runs_started_at'), 'scraper_runs', ['started_at'], unique=False)

    op.create_table(
        'cinema_baselines',
        sa.Column('cinema_id', sa.String(length=100), nullable=False),
        sa.Column('weekday_avg', sa.Float(), nullable=True),
        sa.Column('weekend_avg', sa.Float(), nullable=True),
        sa.Column('tolerance_percent', sa.Float(), nullable=False, server_default='30'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['cinema_id'], ['cinemas.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('cinema_id')
    )


def downgrade() -> None:
    op.drop_table('cinema_baselines')
    op.drop_table('scraper_runs')
    op.drop_table('user_film_statuses')
    op.drop_table('season_films')
    op.drop_table('seasons')
    op.drop_table('screenings')
    op.execute('DROP INDEX IF EXISTS ix_films_normalized_title_trgm')
    op.drop_table('films')
    op.drop_table('cinemas')
