from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud
from .db import get_db
from .settings import settings

logger = logging.getLogger("gs_retail.web")

router = APIRouter(prefix="/api")


def _db_error(e: SQLAlchemyError) -> JSONResponse:
    logger.error("Query failed: %s", e)
    return JSONResponse(status_code=500, content={"error": str(e)})


# =========================
# COUNTS
# =========================
@router.get("/counts")
def counts_list(db: Session = Depends(get_db)):
    try:
        rows = crud.list_recent_counts(db, settings.COUNTS_LIMIT)
    except SQLAlchemyError as e:
        return _db_error(e)
    return [r.to_dict() for r in rows]


# =========================
# STATS
# =========================
@router.get("/stats")
def stats(db: Session = Depends(get_db)):
    try:
        summary = crud.direction_totals(db)
        hourly = crud.hourly_totals(db)
    except SQLAlchemyError as e:
        return _db_error(e)
    return {"summary": summary, "hourly": hourly}


# =========================
# CONFIG (for the dashboards' own MQTT connection)
# =========================
@router.get("/config")
def mqtt_config():
    return {
        "host": settings.MQTT_HOST,
        "port": settings.MQTT_PORT,
        "protocol": settings.MQTT_PROTOCOL,
        "path": settings.MQTT_PATH,
        "useSSL": settings.use_ssl,
        "username": settings.MQTT_USERNAME,
        "password": settings.MQTT_PASSWORD,
        "topic": settings.MQTT_TOPIC,
    }
