# app/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings

from app.api.routes.control import router as control_router
from app.api.routes.current import router as current_router
from app.api.routes.history import router as history_router
from app.api.routes.webhook import router as webhook_router
from app.api.routes.alerts import router as alerts_router

from app.db.session import init_db
from app.services.runtime import ensure_started, stop_if_running


# ─────────────────────────────────────────────────────────────────────────────
# Application
# ─────────────────────────────────────────────────────────────────────────────
app = FastAPI(title="SW01 power guard")

# the Nuxt dashboard runs on its own origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─────────────────────────────────────────────────────────────────────────────
# Routers
# ─────────────────────────────────────────────────────────────────────────────
app.include_router(control_router, tags=["control"])
app.include_router(current_router, tags=["current"])
app.include_router(history_router, tags=["history"])
app.include_router(webhook_router, tags=["webhook"])
app.include_router(alerts_router, tags=["alerts"])


# ─────────────────────────────────────────────────────────────────────────────
# Start/stop
# ─────────────────────────────────────────────────────────────────────────────
@app.on_event("startup")
def _startup():
    # 1) YAML + limits from env (ValueError here stops the process)
    settings.load_yaml_config()

    # 2) sensor_readings table
    init_db()

    # 3) MQTT, alerts, history writer
    ensure_started()
    logging.getLogger("web").info("api ready")


@app.on_event("shutdown")
def _shutdown():
    stop_if_running()


@app.get("/.well-known/appspecific/com.chrome.devtools.json")
def _chrome_devtools_probe():
    # Chrome DevTools probe, keep it out of the logs
    return Response(status_code=204)
