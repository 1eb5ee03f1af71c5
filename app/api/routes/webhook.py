# app/api/routes/webhook.py
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body

from app.services.current_store import current_store

router = APIRouter()
log = logging.getLogger("web")

INTENT_CURRENT_POWER = "GetCurrentPower"
FALLBACK_TEXT = "Sorry, I can't check the data right now."


def _intent_name(body: Dict[str, Any]) -> str:
    try:
        return str(body["queryResult"]["intent"]["displayName"])
    except (KeyError, TypeError):
        return ""


def answer_intent(intent: str) -> str:
    if intent == INTENT_CURRENT_POWER:
        return f"Current power usage is {current_store.power:.2f} W."
    return FALLBACK_TEXT


@router.post("/ai-webhook")
def ai_webhook(body: Any = Body(None)):
    """Dialogflow fulfilment: the intent arrives already classified."""
    intent = _intent_name(body) if isinstance(body, dict) else ""
    log.info("[ai-webhook] received intent: %s", intent or "-")
    return {"fulfillmentText": answer_intent(intent)}
