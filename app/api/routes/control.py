# app/api/routes/control.py
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.api.deps import require_runtime
from app.services.control_debouncer import InvalidControlValue
from app.services.current_store import current_store
from app.services.runtime import Runtime

router = APIRouter()
log = logging.getLogger("web")


class ControlDTO(BaseModel):
    value: Any = None              # must be 0 or 1, checked by the debouncer
    device: Optional[str] = None   # sent by the dashboard, only SW01 exists


@router.post("/api/control")
def control(dto: ControlDTO, rt: Runtime = Depends(require_runtime)):
    log.info("API /api/control called with value = %r", dto.value)
    try:
        value = rt.debouncer.request(dto.value)
    except InvalidControlValue as e:
        raise HTTPException(400, str(e))

    return {
        "success": True,
        "message": f"Control value {value} sent to ESP32 switch",
        "status": value,
    }


@router.get("/api/switch-status")
def switch_status():
    return {"status": current_store.switch_status}
