"""Main FastAPI application"""
from fastapi import FastAPI, Depends, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles
from contextlib import asynccontextmanager
from pathlib import Path
import logging

from chatbuddy.config import get_settings, validate_environment
from chatbuddy.database import get_config_cache, get_storage, init_storage, reset_storage
from chatbuddy.middleware.auth import require_api_key_in_production
from chatbuddy.middleware.cors import setup_cors
from chatbuddy.middleware.error_handler import setup_error_handlers
from chatbuddy.middleware.monitoring import MonitoringMiddleware, RequestStats
from chatbuddy.middleware.rate_limit import RateLimitMiddleware, create_limiters
from chatbuddy.middleware.security import SecurityHeadersMiddleware
from chatbuddy.services.users import purge_expired_sessions, seed_dashboard_users
from chatbuddy.utils.log_redaction import install_redaction

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

# APScheduler setup
scheduler = None


def setup_scheduler(storage):
    """Start the background scheduler that purges expired dashboard sessions"""
    global scheduler
    try:
        from apscheduler.schedulers.background import BackgroundScheduler

        scheduler = BackgroundScheduler()

        scheduler.add_job(
            purge_expired_sessions,
            'interval',
            minutes=30,
            args=[storage],
            id='purge_expired_sessions',
            name='Delete expired dashboard sessions',
            replace_existing=True
        )

        scheduler.start()
        logger.info("Background scheduler started - purging expired sessions every 30 minutes")
    except Exception as e:
        logger.error(f"Failed to start scheduler: {e}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully"""
    global scheduler
    if scheduler:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Background scheduler stopped")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    settings = get_settings()
    validate_environment(settings)
    if settings.is_production:
        install_redaction()

    storage = init_storage()
    seed_dashboard_users(storage, settings.dashboard_users)
    await get_config_cache().connect()
    setup_scheduler(storage)
    logger.info(f"Chat Buddy API ready ({storage.name} storage, {settings.environment})")
    yield
    shutdown_scheduler()
    await get_config_cache().close()
    reset_storage()


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Chat Buddy API",
        description="Lead capture chat widget backend",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.limiters = create_limiters()
    app.state.stats = RequestStats()

    # Middleware: the last one added runs first
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(MonitoringMiddleware, stats=app.state.stats)
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(SecurityHeadersMiddleware)
    setup_error_handlers(app)
    setup_cors(app)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {"status": "ok", "service": "chat-buddy-api", "version": VERSION, "docs": "/docs"}

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "chat-buddy-api",
            "storage": get_storage().name,
            "scheduler": "running" if scheduler and scheduler.running else "stopped",
        }

    @app.get("/api/health")
    async def api_health_check():
        return await health_check()

    @app.get("/api")
    async def api_index():
        return {
            "service": "chat-buddy-api",
            "version": VERSION,
            "endpoints": [
                "/api/widget-config/{projectId}",
                "/api/leads",
                "/api/chat-sessions",
                "/api/events",
                "/api/users",
                "/api/upload/profile-picture",
                "/api/monitoring/stats",
            ],
        }

    @app.get("/api/monitoring/stats", dependencies=[Depends(require_api_key_in_production)])
    async def monitoring_stats(request: Request):
        return request.app.state.stats.snapshot()

    from chatbuddy.routers import chat_sessions, events, leads, upload, users, widget

    app.include_router(widget.router, prefix="/api/widget-config", tags=["Widget Config"])
    app.include_router(leads.router, prefix="/api/leads", tags=["Leads"])
    app.include_router(chat_sessions.router, prefix="/api/chat-sessions", tags=["Chat Sessions"])
    app.include_router(events.router, prefix="/api/events", tags=["Events"])
    app.include_router(users.router, prefix="/api/users", tags=["Users"])
    app.include_router(upload.router, prefix="/api/upload", tags=["Upload"])

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=str(upload_dir)), name="uploads")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().api_port)
