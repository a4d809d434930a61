from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Optional
from crm.database import get_db
from crm.core.feature_flags import FlagProvider, YamlFlagProvider, get_flag_provider
from crm.core.kv_store import KeyValueStore, get_kv_store
from crm.core.logging_config import logger

router = APIRouter()


@router.get("/live")
def liveness():
    """Process is up. Does not touch any dependency."""
    return {"status": "alive"}


@router.get("/ready")
def readiness(
    db: Session = Depends(get_db),
    store: Optional[KeyValueStore] = Depends(get_kv_store),
    flags: FlagProvider = Depends(get_flag_provider)
):
    """
    Check every dependency the API needs to serve traffic.

    Returns 200 when all checks pass and 503 otherwise, with the result of
    each check in the body.
    """
    checks = {}

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as e:
        logger.error(f"Readiness: database check failed: {type(e).__name__}: {str(e)}")
        checks["database"] = "error"

    if store is None:
        checks["kv_store"] = "not_configured"
    else:
        try:
            checks["kv_store"] = "ok" if store.ping() else "error"
        except Exception as e:
            logger.error(f"Readiness: key-value store check failed: {type(e).__name__}: {str(e)}")
            checks["kv_store"] = "error"

    if isinstance(flags, YamlFlagProvider):
        flags.get("")  # triggers a reload when the file is stale
        checks["feature_flags"] = "ok" if flags.loaded else "error"
    else:
        checks["feature_flags"] = "ok"

    ready = all(value in ("ok", "not_configured") for value in checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "unavailable", "checks": checks}
    )
