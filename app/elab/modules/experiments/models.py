from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.elab.models import Base

if TYPE_CHECKING:
    from app.elab.modules.teams.models import Status


class Experiment(Base):
    __tablename__ = "experiments"
    __table_args__ = (
        Index("idx_experiments_team", "team_id"),
        Index("idx_experiments_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status_id: Mapped[int | None] = mapped_column(ForeignKey("status.id", ondelete="SET NULL"), nullable=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False, default="Untitled")
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, default=dt.date.today)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)

    status: Mapped[Optional["Status"]] = relationship("Status", lazy="selectin")
