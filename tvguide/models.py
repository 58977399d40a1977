"""
SQLAlchemy ORM Models for the guide store

This module defines the database models for channels and programmes.
Table and column names match the on-disk layout shared with earlier guide databases.
"""
from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


class Channel(Base):
    """Channel model for storing XMLTV channel information"""
    __tablename__ = "channels"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    icon: Mapped[str | None] = mapped_column(String, nullable=True)

    def __repr__(self) -> str:
        return f"<Channel(id={self.id}, name={self.name})>"


class Programme(Base):
    """Programme model for storing scheduled broadcasts"""
    __tablename__ = "programmes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    channel_id: Mapped[str] = mapped_column(
        "channelId",
        String,
        ForeignKey("channels.id", ondelete="CASCADE"),
        nullable=False,
    )
    start: Mapped[int] = mapped_column(Integer, nullable=False)
    stop: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    desc: Mapped[str | None] = mapped_column("desc", Text, nullable=True)

    # Constraints
    __table_args__ = (
        UniqueConstraint("channelId", "start"),
        Index("idx_programmes_channel_start", "channelId", "start"),
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return f"<Programme(id={self.id}, title={self.title}, channel={self.channel_id})>"
