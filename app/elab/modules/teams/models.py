from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.elab.models import Base


class Team(Base):
    __tablename__ = "teams"
    __table_args__ = (Index("idx_teams_created_at", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Whether users of this team may delete their experiments.
    deletable_xp: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Link shown in the header (team documentation).
    link_name: Mapped[str] = mapped_column(String(255), nullable=False, default="Documentation")
    link_href: Mapped[str] = mapped_column(String(512), nullable=False, default="doc/_build/html/")

    # Trusted timestamping (RFC 3161) provider settings.
    stamp_login: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stamp_password: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stamp_provider: Mapped[str | None] = mapped_column(String(512), nullable=True)
    stamp_cert: Mapped[str | None] = mapped_column(String(512), nullable=True)

    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    statuses: Mapped[list["Status"]] = relationship(
        "Status",
        back_populates="team",
        cascade="all, delete-orphan",
        order_by="Status.ordering",
        lazy="selectin",
    )
    item_types: Mapped[list["ItemType"]] = relationship(
        "ItemType",
        back_populates="team",
        cascade="all, delete-orphan",
        order_by="ItemType.ordering",
        lazy="selectin",
    )
    experiment_templates: Mapped[list["ExperimentTemplate"]] = relationship(
        "ExperimentTemplate",
        back_populates="team",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class Status(Base):
    """Experiment status label (Running, Success, ...), one set per team."""

    __tablename__ = "status"
    __table_args__ = (Index("idx_status_team", "team_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    color: Mapped[str] = mapped_column(String(6), nullable=False)  # hex, no leading '#'
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ordering: Mapped[int | None] = mapped_column(Integer, nullable=True)

    team: Mapped[Team] = relationship("Team", back_populates="statuses")


class ItemType(Base):
    __tablename__ = "items_types"
    __table_args__ = (Index("idx_items_types_team", "team_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    bgcolor: Mapped[str] = mapped_column(String(6), nullable=False, default="29aeb9")
    template: Mapped[str | None] = mapped_column(Text, nullable=True)  # HTML body for new items
    ordering: Mapped[int | None] = mapped_column(Integer, nullable=True)

    team: Mapped[Team] = relationship("Team", back_populates="item_types")


class ExperimentTemplate(Base):
    __tablename__ = "experiments_templates"
    __table_args__ = (Index("idx_experiments_templates_team", "team_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    # NULL for the team-wide default template
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    team: Mapped[Team] = relationship("Team", back_populates="experiment_templates")
