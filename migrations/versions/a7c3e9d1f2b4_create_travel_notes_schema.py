"""create users, travel notes, note media and audit events

Revision ID: a7c3e9d1f2b4
Revises:
Create Date: 2026-10-17

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "a7c3e9d1f2b4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum("user", "auditor", "admin", name="user_role")
note_status = sa.Enum("pending", "approved", "rejected", name="note_status")
media_type = sa.Enum("image", "video", name="media_type")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
    ]


def upgrade() -> None:
    existing_tables = set(inspect(op.get_bind()).get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("username", sa.String(length=255), nullable=False),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("nickname", sa.String(length=255), nullable=False),
            sa.Column("avatar_url", sa.Text(), nullable=True),
            sa.Column("role", user_role, nullable=False, server_default="user"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.UniqueConstraint("username", name="uq_users_username"),
            sa.UniqueConstraint("nickname", name="uq_users_nickname"),
        )

    if "travel_notes" not in existing_tables:
        op.create_table(
            "travel_notes",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("location", sa.Text(), nullable=True),
            sa.Column("status", note_status, nullable=False, server_default="pending"),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        )
        op.create_index("idx_travel_notes_user_id", "travel_notes", ["user_id"])
        op.create_index("idx_travel_notes_status_deleted", "travel_notes", ["status", "is_deleted"])
        op.create_index("idx_travel_notes_created_at", "travel_notes", ["created_at"])

    if "note_media" not in existing_tables:
        op.create_table(
            "note_media",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("note_id", sa.Integer(), nullable=False),
            sa.Column("media_type", media_type, nullable=False),
            sa.Column("url", sa.Text(), nullable=False),
            sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
            sa.ForeignKeyConstraint(["note_id"], ["travel_notes.id"], ondelete="CASCADE"),
        )
        op.create_index("idx_note_media_note_id", "note_media", ["note_id"])

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("actor_role", sa.String(length=16), nullable=True),
            sa.Column("action", sa.String(length=128), nullable=False),
            sa.Column("entity_type", sa.String(length=128), nullable=True),
            sa.Column("entity_id", sa.String(length=128), nullable=True),
            sa.Column("reason", sa.String(length=512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("client_ip", sa.String(length=64), nullable=True),
            sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
        )
        op.create_index("idx_audit_events_entity", "audit_events", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_index("idx_audit_events_entity", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_index("idx_note_media_note_id", table_name="note_media")
    op.drop_table("note_media")
    op.drop_index("idx_travel_notes_created_at", table_name="travel_notes")
    op.drop_index("idx_travel_notes_status_deleted", table_name="travel_notes")
    op.drop_index("idx_travel_notes_user_id", table_name="travel_notes")
    op.drop_table("travel_notes")
    op.drop_table("users")
    bind = op.get_bind()
    for enum_type in (media_type, note_status, user_role):
        enum_type.drop(bind, checkfirst=True)
