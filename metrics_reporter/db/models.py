from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .session import Base

# BIGINT primary keys do not autoincrement on SQLite
_PK = BigInteger().with_variant(Integer, "sqlite")


class MetricPoint(Base):
    """
    One reported time-series point.
    Table: points
    """

    __tablename__ = "points"
    __table_args__ = (Index("ix_points_measurement_ts", "measurement", "timestamp_ms"),)

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    measurement: Mapped[str] = mapped_column(String(255), nullable=False)
    timestamp_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tags: Mapped[Dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
    fields: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
