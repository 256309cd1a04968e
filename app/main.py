import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api_routers.v1 import api_router
from app.features.audit.services.orchestrator import build_orchestrator
from app.features.health.routes.health import router as health_router
from app.platform.config import settings
from app.platform.exceptions import add_exception_handlers
from app.platform.logger import LOG_FORMAT, get_logger

# Configure logging to show INFO level messages
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

logger = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Built once per process and injected into routes via get_orchestrator
    app.state.audit_orchestrator = build_orchestrator()
    logger.info("Audit engine started")
    yield
    app.state.audit_orchestrator.shutdown(wait=False)
    logger.info("Audit engine stopped")


app = FastAPI(
    title="Site Audit Engine API",
    description="Security, performance, SEO and accessibility audits for any website",
    version="1.0.0",
    lifespan=lifespan,
)


# Root endpoint for basic info
@app.get("/", tags=["Info"])
def root():
    return {
        "app_name": "Site Audit Engine API",
        "description": "Audits a website for security, performance, SEO and accessibility.",
        "version": "1.0.0",
        "docs_url": "/docs",
        "api_base": "/api/v1",
    }


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

add_exception_handlers(app)

app.include_router(health_router)
app.include_router(api_router, prefix="/api/v1")
