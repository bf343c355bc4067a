"""
Admin API Routes

Operational endpoints:
- Service status (queue, scheduler, pending payments)
- Manual daily batch trigger
- Recent logs from the in-memory buffer
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from lessonbot.config import config
from lessonbot.security import verify_admin_key
from lessonbot.services import get_services
from lessonbot.utils.logging import LogLevel, get_log_buffer, get_logger

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(verify_admin_key)],
)
logger = get_logger("admin")


# ===== Status =====

@router.get("/status")
async def get_status(request: Request):
    services = get_services(request)
    last_report = services.scheduler.last_report

    return {
        "queue": services.queue.status(),
        "pending_payments": len(services.pending),
        "cached_tiers": services.cache.cached_tiers,
        "scheduler": {
            "next_run": services.scheduler.next_run_time(),
            "last_report": last_report.to_dict() if last_report else None,
        },
        "config": {
            "telegram_configured": config.telegram_configured,
            "llm_configured": config.llm_configured,
            "ledger_configured": config.ledger_configured,
            "timezone": config.TIMEZONE,
            "model": config.MODEL_NAME,
            "difficulty_levels": config.difficulty_levels,
        },
    }


@router.post("/batch/run")
async def run_batch(request: Request):
    """Run the daily batch now, e.g. after a missed 09:00 run."""
    services = get_services(request)
    logger.info("Daily batch triggered manually")
    report = await services.scheduler.run_daily_batch()
    return report.to_dict()


# ===== Logs =====

@router.get("/logs")
async def get_logs(
    limit: int = Query(100, ge=1, le=500),
    level: Optional[str] = Query(None, description="Filter by level (debug, info, warning, error, critical)"),
    source: Optional[str] = Query(None, description="Filter by source")
):
    """Get recent log entries from the in-memory buffer."""
    log_buffer = get_log_buffer()

    level_filter = None
    if level:
        try:
            level_filter = LogLevel(level.lower())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid log level: {level}")

    return {
        "logs": log_buffer.get_recent(limit=limit, level=level_filter, source=source),
        "stats": log_buffer.get_stats(),
    }


@router.get("/logs/errors")
async def get_error_logs(limit: int = Query(50, ge=1, le=200)):
    """Get recent error and critical log entries."""
    return {"errors": get_log_buffer().get_errors(limit=limit)}


@router.post("/logs/clear")
async def clear_logs():
    get_log_buffer().clear()
    logger.info("Log buffer cleared by admin")
    return {"status": "cleared"}
