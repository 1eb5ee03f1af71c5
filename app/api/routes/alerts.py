# app/api/routes/alerts.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.deps import require_runtime
from app.services.runtime import Runtime

router = APIRouter(prefix="/api/alerts")


class TestMessageDTO(BaseModel):
    text: Optional[str] = None


@router.get("/state")
def alerts_state(rt: Runtime = Depends(require_runtime)):
    return {
        "engine": rt.engine.diag(),
        "telegram_configured": rt.notifier.sender.configured,
        "recent_notifications": rt.notifier.recent(),
        "history": rt.recorder.diag(),
        "mqtt_connected": rt.bridge.connected,
        "control_pending": rt.debouncer.pending,
    }


@router.post("/test")
def alerts_test(dto: TestMessageDTO, rt: Runtime = Depends(require_runtime)):
    """Send a message right now, bypassing the queue, to check token/chat."""
    ok, err = rt.notifier.send_test(dto.text or "✅ SW01 power guard: test message")
    out = {"ok": ok}
    if not ok:
        out["error"] = err
    return out
