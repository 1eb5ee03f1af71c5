# app/api/routes/history.py
from __future__ import annotations

import io
import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from openpyxl import Workbook
from sqlalchemy.orm import Session

from app.core.config import SENSOR_METRICS, settings
from app.db.models import SensorReading
from app.db.session import get_db

router = APIRouter()
log = logging.getLogger("web")

DEFAULT_LIMIT = 100
HARD_MAX_LIMIT = 5000


def _ts_utc(ts: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes; they were written as UTC
    if ts is not None and ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _row_to_dict(r: SensorReading) -> dict:
    ts = _ts_utc(r.timestamp)
    out = {"id": r.id}
    out.update({m: getattr(r, m) for m in SENSOR_METRICS})
    out["timestamp"] = ts.isoformat() if ts else None
    return out


def _effective_limit(limit: Optional[int]) -> int:
    H = settings.history
    # 0 means "not given"
    if not limit:
        limit = int(H.get("default_limit", DEFAULT_LIMIT) or DEFAULT_LIMIT)
    return min(limit, int(H.get("max_limit", HARD_MAX_LIMIT) or HARD_MAX_LIMIT))


def _latest(db: Session, limit: int) -> List[SensorReading]:
    return (
        db.query(SensorReading)
        .order_by(SensorReading.timestamp.desc(), SensorReading.id.desc())
        .limit(limit)
        .all()
    )


@router.get("/get-sensor-history")
def sensor_history(
    limit: Optional[int] = Query(None, ge=0, le=HARD_MAX_LIMIT),
    db: Session = Depends(get_db),
):
    """Persisted minute readings, newest first."""
    try:
        rows = _latest(db, _effective_limit(limit))
    except Exception as e:
        log.error("error fetching sensor history: %s", e)
        raise HTTPException(500, "Failed to fetch history")
    return [_row_to_dict(r) for r in rows]


# same data under the /api prefix
@router.get("/api/history")
def sensor_history_alias(
    limit: Optional[int] = Query(None, ge=0, le=HARD_MAX_LIMIT),
    db: Session = Depends(get_db),
):
    return sensor_history(limit, db)  # type: ignore


@router.get("/api/history/export")
def export_history_xlsx(
    limit: Optional[int] = Query(None, ge=0, le=HARD_MAX_LIMIT),
    db: Session = Depends(get_db),
):
    try:
        rows = _latest(db, _effective_limit(limit))
    except Exception as e:
        log.error("error exporting sensor history: %s", e)
        raise HTTPException(500, "Failed to fetch history")

    headers = ["Time", "Voltage (V)", "Current (A)", "Power (W)",
               "Energy (kWh)", "Frequency (Hz)", "Power factor"]

    wb = Workbook()
    ws = wb.active
    ws.title = "history"
    ws.append(headers)

    for r in rows:
        ts = _ts_utc(r.timestamp)
        ws.append([
            # as text: excel can't store aware datetimes
            ts.astimezone().isoformat(timespec="seconds") if ts else "",
            r.voltage, r.current, r.power, r.energy, r.frequency, r.pf,
        ])

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return StreamingResponse(
        buf,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": 'attachment; filename="sensor_history.xlsx"'},
    )
