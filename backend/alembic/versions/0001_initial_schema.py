"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Creates all tables for the gathering planner:
recurring_events, events, event_place_options, event_votes,
event_participants, event_waitlists, event_check_ins, event_audit_logs.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns store member names.
EVENT_STATUS = ("planning", "voting", "confirmed", "cancelled", "completed")


def upgrade() -> None:
    # --- recurring_events ---
    op.create_table(
        "recurring_events",
        sa.Column("recurring_event_id", sa.String(36), primary_key=True),
        sa.Column("organizer_id", sa.String(36), nullable=False, index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("event_type", sa.String(50), nullable=False, server_default="dining"),
        sa.Column("pattern", sa.Enum("daily", "weekly", "monthly", "yearly", name="recurrencepattern"), nullable=False),
        sa.Column("days_of_week", sa.JSON, nullable=True),
        sa.Column("day_of_month", sa.Integer, nullable=True),
        sa.Column("month", sa.Integer, nullable=True),
        sa.Column("day_of_year", sa.Integer, nullable=True),
        sa.Column("scheduled_time", sa.Time, nullable=False),
        sa.Column("timezone", sa.String(50), nullable=False, server_default="UTC"),
        sa.Column("estimated_duration", sa.Integer, nullable=True),
        sa.Column("expected_attendees", sa.Integer, nullable=False, server_default="2"),
        sa.Column("max_attendees", sa.Integer, nullable=True),
        sa.Column("budget_per_person", sa.Numeric(10, 2), nullable=True),
        sa.Column("acceptance_threshold", sa.Numeric(3, 2), nullable=True),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date, nullable=True),
        sa.Column("occurrence_count", sa.Integer, nullable=True),
        sa.Column(
            "status", sa.Enum("active", "paused", "completed", "cancelled", name="recurringstatus"),
            nullable=False, server_default="active",
        ),
        sa.Column("auto_create_events", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("days_in_advance", sa.Integer, nullable=False, server_default="7"),
        sa.Column("last_generated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- events ---
    op.create_table(
        "events",
        sa.Column("event_id", sa.String(36), primary_key=True),
        sa.Column("organizer_id", sa.String(36), nullable=False, index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("event_type", sa.String(50), nullable=False, server_default="dining"),
        sa.Column("status", sa.Enum(*EVENT_STATUS, name="eventstatus"), nullable=False, index=True),
        sa.Column("scheduled_date", sa.Date, nullable=False),
        sa.Column("scheduled_time", sa.Time, nullable=False),
        sa.Column("timezone", sa.String(50), nullable=False, server_default="UTC"),
        sa.Column("estimated_duration", sa.Integer, nullable=True),
        sa.Column("expected_attendees", sa.Integer, nullable=False, server_default="2"),
        sa.Column("max_attendees", sa.Integer, nullable=True),
        sa.Column("budget_per_person", sa.Numeric(10, 2), nullable=True),
        sa.Column("acceptance_threshold", sa.Numeric(3, 2), nullable=True),
        sa.Column("voting_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rsvp_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("acceptance_unresolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("final_option_id", sa.String(36), nullable=True),
        sa.Column("final_place_id", sa.String(300), nullable=True),
        sa.Column(
            "recurring_event_id", sa.String(36),
            sa.ForeignKey("recurring_events.recurring_event_id"), nullable=True, index=True,
        ),
        sa.Column("occurrence_key", sa.String(64), nullable=True, unique=True),
        sa.Column("template_id", sa.String(36), nullable=True),
        sa.Column("previous_scheduled_date", sa.Date, nullable=True),
        sa.Column("previous_scheduled_time", sa.Time, nullable=True),
        sa.Column("reschedule_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_rescheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reschedule_reason", sa.String(500), nullable=True),
        sa.Column("ai_analysis_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ai_analysis_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ai_analysis_progress", sa.JSON, nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by_user_id", sa.String(36), nullable=True),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- event_place_options ---
    op.create_table(
        "event_place_options",
        sa.Column("option_id", sa.String(36), primary_key=True),
        sa.Column(
            "event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("place_id", sa.String(36), nullable=True),
        sa.Column(
            "suggested_by", sa.Enum("organizer", "participant", "ai", name="suggestedby"),
            nullable=False, server_default="organizer",
        ),
        sa.Column("suggested_by_user_id", sa.String(36), nullable=True),
        sa.Column("ai_score", sa.Numeric(4, 2), nullable=True),
        sa.Column("ai_reasoning", sa.Text, nullable=True),
        sa.Column("pros", sa.JSON, nullable=True),
        sa.Column("cons", sa.JSON, nullable=True),
        sa.Column("estimated_cost_per_person", sa.Numeric(8, 2), nullable=True),
        sa.Column("availability_confirmed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("external_provider", sa.String(50), nullable=True),
        sa.Column("external_place_id", sa.String(255), nullable=True),
        sa.Column("external_name", sa.String(200), nullable=True),
        sa.Column("external_address", sa.String(500), nullable=True),
        sa.Column("external_latitude", sa.Float, nullable=True),
        sa.Column("external_longitude", sa.Float, nullable=True),
        sa.Column("external_rating", sa.Numeric(3, 2), nullable=True),
        sa.Column("external_total_reviews", sa.Integer, nullable=True),
        sa.Column("external_phone_number", sa.String(20), nullable=True),
        sa.Column("external_website", sa.String(500), nullable=True),
        sa.Column("external_photo_url", sa.String(1000), nullable=True),
        sa.Column("external_category", sa.String(100), nullable=True),
        # Internal catalog place xor external provider reference.
        sa.CheckConstraint(
            "(place_id IS NOT NULL AND external_place_id IS NULL) OR "
            "(place_id IS NULL AND external_provider IS NOT NULL AND external_place_id IS NOT NULL)",
            name="ck_event_place_option_venue",
        ),
    )

    # --- event_votes ---
    op.create_table(
        "event_votes",
        sa.Column("vote_id", sa.String(36), primary_key=True),
        sa.Column(
            "event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column(
            "option_id", sa.String(36), sa.ForeignKey("event_place_options.option_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("voter_id", sa.String(36), nullable=False),
        sa.Column("vote_value", sa.Integer, nullable=True),
        sa.Column("comment", sa.String(1000), nullable=True),
        sa.Column("voted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "option_id", "voter_id", name="uq_event_vote_option_voter"),
    )

    # --- event_participants ---
    op.create_table(
        "event_participants",
        sa.Column("participant_id", sa.String(36), primary_key=True),
        sa.Column(
            "event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column(
            "invitation_status",
            sa.Enum("pending", "accepted", "declined", "waitlisted", name="invitationstatus"),
            nullable=False, server_default="pending",
        ),
        sa.Column("invited_by", sa.String(36), nullable=True),
        sa.Column("invited_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("rsvp_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("one_hour_reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_participant_user"),
    )

    # --- event_waitlists ---
    op.create_table(
        "event_waitlists",
        sa.Column("waitlist_id", sa.String(36), primary_key=True),
        sa.Column(
            "event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column(
            "status", sa.Enum("waiting", "notified", "responded", "expired", name="waitliststatus"),
            nullable=False, server_default="waiting",
        ),
        sa.Column("priority", sa.Integer, nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("response_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_waitlist_user"),
    )

    # --- event_check_ins ---
    op.create_table(
        "event_check_ins",
        sa.Column("check_in_id", sa.String(36), primary_key=True),
        sa.Column(
            "event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("method", sa.Enum("manual", "qr", "geo", name="checkinmethod"), nullable=True),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column("is_no_show", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_check_in_user"),
    )

    # --- event_audit_logs ---
    op.create_table(
        "event_audit_logs",
        sa.Column("log_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("old_status", sa.Enum(*EVENT_STATUS, name="eventstatus"), nullable=False),
        sa.Column("new_status", sa.Enum(*EVENT_STATUS, name="eventstatus"), nullable=False),
        sa.Column("changed_by", sa.String(36), nullable=True),
        sa.Column("reason", sa.String(1000), nullable=False),
        sa.Column("additional_data", sa.JSON, nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("event_audit_logs")
    op.drop_table("event_check_ins")
    op.drop_table("event_waitlists")
    op.drop_table("event_participants")
    op.drop_table("event_votes")
    op.drop_table("event_place_options")
    op.drop_table("events")
    op.drop_table("recurring_events")
