from dataclasses import dataclass

from sqlalchemy import String, Integer, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from .db import Base

DIRECTIONS = ("in", "out")


@dataclass(frozen=True)
class ParsedCount:
    """Values of one accepted message, ready to become a CountEvent."""
    timestamp: str
    direction: str
    count: int
    raw_payload: str


class CountEvent(Base):
    __tablename__ = "counts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # local wall-clock, "YYYY-MM-DD HH:MM:SS"; set once at insert
    timestamp: Mapped[str] = mapped_column(String(19), nullable=False, index=True)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    raw_payload: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        CheckConstraint("count >= 0", name="ck_counts_count_non_negative"),
        CheckConstraint("direction IN ('in', 'out')", name="ck_counts_direction"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "direction": self.direction,
            "count": self.count,
            "raw_payload": self.raw_payload,
        }
