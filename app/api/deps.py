# app/api/deps.py
from fastapi import HTTPException

from app.services.runtime import Runtime, runtime_instance


def require_runtime() -> Runtime:
    rt = runtime_instance()
    if rt is None:
        raise HTTPException(503, "runtime not ready")
    return rt
