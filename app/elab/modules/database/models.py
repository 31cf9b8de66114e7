from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.elab.models import Base

if TYPE_CHECKING:
    from app.elab.modules.teams.models import ItemType


class Item(Base):
    """An entry of the team's inventory ("database"): antibodies, plasmids, equipment..."""

    __tablename__ = "items"
    __table_args__ = (
        Index("idx_items_team", "team_id"),
        Index("idx_items_type", "type_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    type_id: Mapped[int] = mapped_column(ForeignKey("items_types.id"), nullable=False)
    # Last user who saved the item
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False, default="Untitled")
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, default=dt.date.today)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)

    item_type: Mapped["ItemType"] = relationship("ItemType", lazy="selectin")
