"""Initial database schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000

Creates artists, working_hours, artist_leaves, offerings and reservations,
enables ``btree_gist`` and installs the ``reservations_no_overlap`` exclusion
constraint: no two pending/confirmed reservations of one artist may have
overlapping ``[start_time, blocked_until)`` ranges.
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

booking_status = sa.Enum("pending", "confirmed", "cancelled", "completed", name="booking_status")
payment_status = sa.Enum("pending", "deposit_paid", "refunded", name="payment_status")
offering_kind = sa.Enum("flash", "service", name="offering_kind")
offering_status = sa.Enum("available", "sold_out", "disabled", name="offering_status")


def upgrade() -> None:
    op.create_table(
        "artists",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("display_name", sa.String(length=200), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=True),
        sa.Column("deposit_percentage", sa.Integer(), nullable=True),
        sa.Column("minimum_lead_time_hours", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("buffer_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("stripe_account_id", sa.String(length=64), nullable=True),
        sa.Column("stripe_onboarding_complete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cal_com_username", sa.String(length=120), nullable=True),
        sa.Column("cal_com_event_type_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_artists_slug", "artists", ["slug"], unique=True)

    op.create_table(
        "working_hours",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("artist_id", sa.Uuid(), sa.ForeignKey("artists.id", ondelete="CASCADE"), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("day_of_week BETWEEN 1 AND 7", name="ck_working_hours_day_of_week"),
    )
    op.create_index("ix_working_hours_artist_id", "working_hours", ["artist_id"])

    op.create_table(
        "artist_leaves",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("artist_id", sa.Uuid(), sa.ForeignKey("artists.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("reason", sa.String(length=200), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_artist_leaves_artist_id", "artist_leaves", ["artist_id"])

    op.create_table(
        "offerings",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("artist_id", sa.Uuid(), sa.ForeignKey("artists.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", offering_kind, nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("status", offering_status, nullable=False),
        sa.Column("stock_limit", sa.Integer(), nullable=True),
        sa.Column("stock_current", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("slot_step_minutes", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_offerings_artist_id", "offerings", ["artist_id"])

    op.create_table(
        "reservations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("artist_id", sa.Uuid(), sa.ForeignKey("artists.id"), nullable=False),
        sa.Column("offering_id", sa.Uuid(), sa.ForeignKey("offerings.id"), nullable=True),
        sa.Column("client_email", sa.String(length=254), nullable=False),
        sa.Column("client_name", sa.String(length=200), nullable=True),
        sa.Column("client_phone", sa.String(length=50), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("blocked_until", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("price_total_cents", sa.Integer(), nullable=False),
        sa.Column("deposit_amount_cents", sa.Integer(), nullable=False),
        sa.Column("deposit_percentage", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("payment_status", payment_status, nullable=False),
        sa.Column("booking_status", booking_status, nullable=False),
        sa.Column("payment_intent_id", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("start_time < end_time", name="ck_reservations_start_before_end"),
        sa.CheckConstraint("end_time <= blocked_until", name="ck_reservations_blocked_until"),
    )
    op.create_index("ix_reservations_artist_start", "reservations", ["artist_id", "start_time"])

    # GiST support for the uuid equality part of the exclusion constraint
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist;")
    op.execute(
        "ALTER TABLE reservations ADD CONSTRAINT reservations_no_overlap "
        "EXCLUDE USING gist (artist_id WITH =, tstzrange(start_time, blocked_until, '[)') WITH &&) "
        "WHERE (booking_status IN ('pending'::booking_status, 'confirmed'::booking_status));"
    )


def downgrade() -> None:
    op.execute("ALTER TABLE reservations DROP CONSTRAINT IF EXISTS reservations_no_overlap;")
    op.drop_index("ix_reservations_artist_start", table_name="reservations")
    op.drop_table("reservations")
    op.drop_index("ix_offerings_artist_id", table_name="offerings")
    op.drop_table("offerings")
    op.drop_index("ix_artist_leaves_artist_id", table_name="artist_leaves")
    op.drop_table("artist_leaves")
    op.drop_index("ix_working_hours_artist_id", table_name="working_hours")
    op.drop_table("working_hours")
    op.drop_index("ix_artists_slug", table_name="artists")
    op.drop_table("artists")
    bind = op.get_bind()
    for enum in (booking_status, payment_status, offering_status, offering_kind):
        enum.drop(bind, checkfirst=True)
