from __future__ import annotations

from sqlalchemy import Boolean, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class Room(TimestampMixin, Base):
    __tablename__ = "rc_rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    preset: Mapped[str] = mapped_column(Text, nullable=False, default="")
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)

    is_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_waiting: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    generation: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    messages_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    last_message_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    __table_args__ = (
        UniqueConstraint("name", name="uq_rc_room_name"),
    )


Index("ix_rc_room_last_message_id", Room.last_message_id)
