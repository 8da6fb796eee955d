"""
Database ORM Models.

============================================================
SCHEMA
============================================================
metrics
    id     TEXT              NOT NULL  } primary key
    type   VARCHAR(16)       NOT NULL  }
    delta  BIGINT            NULL      (counters)
    value  DOUBLE PRECISION  NULL      (gauges)

One row per (id, type).

============================================================
"""

from typing import Optional

from sqlalchemy import BigInteger, Double, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from storage.models import Metric, MetricKind


class Base(DeclarativeBase):
    """Declarative base for the collector's tables."""


class MetricRecord(Base):
    """
    Stored metric row.

    Exactly one of value/delta is non-null, matching the type.
    """

    __tablename__ = "metrics"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    type: Mapped[str] = mapped_column(String(16), primary_key=True)
    delta: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    value: Mapped[Optional[float]] = mapped_column(Double, nullable=True)

    def to_metric(self) -> Metric:
        kind = MetricKind.parse(self.type)
        if kind == MetricKind.GAUGE:
            return Metric(id=self.id, type=kind, value=self.value)
        return Metric(id=self.id, type=kind, delta=self.delta)

    def __repr__(self) -> str:
        return f"<MetricRecord {self.type}/{self.id} value={self.value} delta={self.delta}>"
