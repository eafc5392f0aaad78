from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .models import CountEvent, ParsedCount

HOUR_FORMAT = "%Y-%m-%d %H:00:00"


# =========================
# Writes (append-only)
# =========================
def insert_count(db: Session, parsed: ParsedCount) -> CountEvent:
    ev = CountEvent(
        timestamp=parsed.timestamp,
        direction=parsed.direction,
        count=parsed.count,
        raw_payload=parsed.raw_payload,
    )
    db.add(ev)
    db.commit()
    db.refresh(ev)
    return ev


# =========================
# Reads
# =========================
def list_recent_counts(db: Session, limit: int = 100) -> list[CountEvent]:
    q = (
        select(CountEvent)
        .order_by(CountEvent.timestamp.desc(), CountEvent.id.desc())
        .limit(limit)
    )
    return list(db.scalars(q).all())


def direction_totals(db: Session) -> list[dict]:
    q = (
        select(CountEvent.direction, func.sum(CountEvent.count).label("total"))
        .group_by(CountEvent.direction)
        .order_by(CountEvent.direction)
    )
    return [{"direction": direction, "total": int(total or 0)} for direction, total in db.execute(q)]


def hourly_totals(db: Session) -> list[dict]:
    """
    Sum of count per (hour, direction). Hours are the stored local
    timestamps truncated with SQLite's strftime.
    """
    hour = func.strftime(HOUR_FORMAT, CountEvent.timestamp).label("hour")
    q = (
        select(hour, CountEvent.direction, func.sum(CountEvent.count).label("count"))
        .group_by(hour, CountEvent.direction)
        .order_by(hour.asc(), CountEvent.direction)
    )
    return [
        {"hour": h, "direction": direction, "count": int(total or 0)}
        for h, direction, total in db.execute(q)
    ]
