from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.travelnotes.models import Base, User, _enum_values


class NoteStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class MediaKind(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"


class Note(Base):
    __tablename__ = "travel_notes"
    __table_args__ = (
        Index("idx_travel_notes_user_id", "user_id"),
        Index("idx_travel_notes_status_deleted", "status", "is_deleted"),
        Index("idx_travel_notes_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str | None] = mapped_column(Text, nullable=True)

    # pending -> approved | rejected; any owner edit goes back to pending
    status: Mapped[NoteStatus] = mapped_column(
        Enum(NoteStatus, name="note_status", values_callable=_enum_values),
        nullable=False,
        default=NoteStatus.PENDING,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)  # set only while rejected
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    owner: Mapped[User] = relationship("User", back_populates="notes")
    media: Mapped[list["NoteMedia"]] = relationship(
        "NoteMedia",
        back_populates="note",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="[NoteMedia.order, NoteMedia.id]",
    )

    @property
    def cover(self) -> "NoteMedia | None":
        """First image in display order; a video only when the note has no image."""
        for item in self.media:
            if item.media_type == MediaKind.IMAGE:
                return item
        return self.media[0] if self.media else None


class NoteMedia(Base):
    __tablename__ = "note_media"
    __table_args__ = (
        Index("idx_note_media_note_id", "note_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    note_id: Mapped[int] = mapped_column(ForeignKey("travel_notes.id", ondelete="CASCADE"), nullable=False)

    media_type: Mapped[MediaKind] = mapped_column(
        Enum(MediaKind, name="media_type", values_callable=_enum_values),
        nullable=False,
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # display sequence, need not be contiguous

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    note: Mapped[Note] = relationship("Note", back_populates="media")
