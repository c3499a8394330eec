from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import models  # noqa: F401  registers tables on Base.metadata
from api import achievements, learner
from core.config import settings
from core.database import engine, Base
from core.logging import configure_logging, get_logger
from core.middleware import RequestLoggingMiddleware, SlowRequestMiddleware
from core.errors import register_error_handlers

# Initialize logging before anything else
configure_logging(
    level=settings.LOG_LEVEL,
    json_logs=settings.LOG_JSON,
    log_sql=settings.LOG_SQL,
)

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("startup", message="Progression API starting up")

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        log.info("database_connected", message="Database tables initialized")
    except Exception as e:
        log.warning("database_unavailable", error=str(e), message="App starting without database")

    yield

    log.info("shutdown", message="Progression API shutting down")
    await engine.dispose()
    log.debug("database_disposed", message="Database connections closed")


app = FastAPI(
    title="Progression API",
    description="Learner progression and gamification: sequential access, progress, XP and levels, badges and streaks",
    version="0.1.0",
    lifespan=lifespan,
)

register_error_handlers(app)

# Middleware (order matters: last added = first executed)
app.add_middleware(SlowRequestMiddleware, slow_threshold_ms=1000)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(learner.router, prefix="/api/learner", tags=["learner"])
app.include_router(achievements.router, prefix="/api/achievements", tags=["achievements"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": "0.1.0"}


if __name__ == "__main__":
    import uvicorn

    log.info("server_config", host=settings.BACKEND_HOST, port=settings.BACKEND_PORT, debug=settings.APP_DEBUG)
    uvicorn.run(
        "main:app",
        host=settings.BACKEND_HOST,
        port=settings.BACKEND_PORT,
        reload=settings.APP_DEBUG,
        log_config=None,
    )
