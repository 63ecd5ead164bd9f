from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from runtracker.db.base import Base


class File(Base):
    __tablename__ = "files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    manufacturer: Mapped[str | None] = mapped_column(String(120), nullable=True)
    product: Mapped[str | None] = mapped_column(String(120), nullable=True)
    serial_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    # content fingerprint, used for deduplication
    fingerprint: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    imported_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    records: Mapped[list["Record"]] = relationship(back_populates="file", cascade="all, delete-orphan")
    laps: Mapped[list["Lap"]] = relationship(back_populates="file", cascade="all, delete-orphan")


class Record(Base):
    __tablename__ = "records"
    __table_args__ = (
        Index("ix_records_file_timestamp", "file_id", "timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_id: Mapped[int] = mapped_column(ForeignKey("files.id", ondelete="CASCADE"), nullable=False)
    lat: Mapped[int | None] = mapped_column(Integer, nullable=True)
    lon: Mapped[int | None] = mapped_column(Integer, nullable=True)
    speed: Mapped[float | None] = mapped_column(Float, nullable=True)
    distance: Mapped[float | None] = mapped_column(Float, nullable=True)
    elevation: Mapped[float | None] = mapped_column(Float, nullable=True)
    heart_rate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    file: Mapped[File] = relationship(back_populates="records")


class Lap(Base):
    __tablename__ = "laps"
    __table_args__ = (
        Index("ix_laps_file_start_time", "file_id", "start_time"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_id: Mapped[int] = mapped_column(ForeignKey("files.id", ondelete="CASCADE"), nullable=False)
    start_lat: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_lon: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_elevation: Mapped[float | None] = mapped_column(Float, nullable=True)
    end_lat: Mapped[int | None] = mapped_column(Integer, nullable=True)
    end_lon: Mapped[int | None] = mapped_column(Integer, nullable=True)
    end_elevation: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_speed: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_heart_rate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_calories: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_distance: Mapped[float | None] = mapped_column(Float, nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    file: Mapped[File] = relationship(back_populates="laps")
