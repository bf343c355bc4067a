"""
FastAPI application for the Thai lesson bot.

Hosts the health check, the payment webhook and the admin endpoints, and
owns the lifecycle of the background services (delivery queue worker,
daily scheduler, Telegram poller).
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from lessonbot.config import config
from lessonbot.routes import admin_router, payment_webhook_router
from lessonbot.services import build_services
from lessonbot.utils.logging import api_logger as logger, configure_logging, get_log_buffer


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start services on startup, stop them on shutdown."""
    configure_logging(config.LOG_LEVEL)
    app.state.services = None

    try:
        services = await build_services()
        await services.start()
        app.state.services = services
        logger.info(
            "Thai Lesson Bot API started",
            environment=config.ENVIRONMENT,
            timezone=config.TIMEZONE,
            daily_send=f"{config.DAILY_SEND_HOUR:02d}:{config.DAILY_SEND_MINUTE:02d}",
        )
    except Exception as e:
        # Keep serving /health so the failure is visible
        logger.critical("Service startup failed", error=str(e))

    yield

    services = app.state.services
    if services is not None:
        try:
            await services.stop()
        except Exception as e:
            logger.error("Error during shutdown", error=str(e))
    logger.info("Thai Lesson Bot API stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Thai Lesson Bot API",
        description="Daily Thai lessons over Telegram with TON-paid subscriptions",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = None

    app.include_router(payment_webhook_router)
    app.include_router(admin_router)

    @app.get("/")
    async def root():
        return {
            "message": "Thai Learning Bot API",
            "status": "running",
            "version": app.version,
        }

    @app.get("/health")
    async def health_check():
        """Always 200; "degraded" means startup did not complete."""
        services = app.state.services
        body = {
            "status": "healthy" if services is not None else "degraded",
            "logs": get_log_buffer().get_stats(),
        }
        if services is not None:
            body["queue"] = services.queue.status()
            body["pending_payments"] = len(services.pending)
        return body

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        logger.error("Unhandled error", path=request.url.path, error=str(exc), type=type(exc).__name__)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if config.DEBUG else "An error occurred",
                "type": type(exc).__name__
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "lessonbot.api.main:app",
        host=config.API_HOST,
        port=config.API_PORT,
        workers=1,
        log_level=config.LOG_LEVEL.lower()
    )
