import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api import activities, rollback
from .core.config import settings
from .core.exceptions import LedgerError
from .core.middleware import setup_middleware
from .db import create_tables

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("activity_ledger")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting %s", settings.app_name)
    create_tables()
    yield
    # Shutdown
    logger.info("Shutting down %s", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    description="Hash-chained activity log with rollback, redo and rollback-to-point",
    version="1.0.0",
    lifespan=lifespan
)

setup_middleware(app)


@app.exception_handler(LedgerError)
async def ledger_exception_handler(request: Request, exc: LedgerError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
    )


# Include routers
app.include_router(activities.router, prefix="/activities", tags=["Activities"])
app.include_router(rollback.router, tags=["Rollback"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {"message": f"Welcome to {settings.app_name}", "status": "running"}


@app.get("/healthz")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": settings.app_name}


if __name__ == "__main__":
    uvicorn.run(
        "activity_ledger.app:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
