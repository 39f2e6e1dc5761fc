"""
SQLAlchemy ORM Models for IPTV EPG Service

This module defines the database models for channels and programmes.
"""
from datetime import datetime, timezone
from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


class Channel(Base):
    """Channel model merged from XMLTV metadata and playlist stream URLs"""
    __tablename__ = "channels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    xui_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tvg_id: Mapped[str] = mapped_column(String, nullable=False, default="", index=True)
    tvg_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    tvg_logo: Mapped[str] = mapped_column(String, nullable=False, default="")
    group_title: Mapped[str] = mapped_column(String, nullable=False, default="")
    url: Mapped[str] = mapped_column(String, nullable=False, default="")
    country: Mapped[str] = mapped_column(String, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def __repr__(self) -> str:
        return f"<Channel(tvg_id={self.tvg_id}, tvg_name={self.tvg_name})>"


class Programme(Base):
    """Programme model for storing XMLTV schedule entries"""
    __tablename__ = "programmes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    channel: Mapped[str] = mapped_column(String, nullable=False)
    start: Mapped[str] = mapped_column(String, nullable=False)
    stop: Mapped[str] = mapped_column(String, nullable=False)
    start_timestamp: Mapped[int] = mapped_column(Integer, nullable=False)
    stop_timestamp: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String, nullable=False, default="")
    subtitle: Mapped[str] = mapped_column(String, nullable=False, default="")
    episode_num: Mapped[str] = mapped_column(String, nullable=False, default="")
    season: Mapped[int | None] = mapped_column(Integer, nullable=True)
    episode: Mapped[int | None] = mapped_column(Integer, nullable=True)
    icon: Mapped[str] = mapped_column(String, nullable=False, default="")
    image: Mapped[str] = mapped_column(String, nullable=False, default="")
    date: Mapped[str] = mapped_column(String, nullable=False, default="")
    previously_shown: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("idx_programmes_channel_start", "channel", "start_timestamp"),
        Index("idx_programmes_stop", "stop_timestamp"),
    )

    def __repr__(self) -> str:
        return f"<Programme(title={self.title}, channel={self.channel}, start={self.start})>"
