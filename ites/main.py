"""ITES FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ites.api.evaluations import router as evaluations_router
from ites.api.health import router as health_router
from ites.api.responses import workflow_error_handler
from ites.api.users import router as users_router
from ites.config import settings
from ites.database import engine
from ites.engine.errors import WorkflowError

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "ITES starting (database=%s, audit_strict=%s)", engine.dialect.name, settings.audit_strict
    )
    yield
    await engine.dispose()


app = FastAPI(
    title="ITES - Item Technical Evaluation Service",
    description="Role-based review and approval workflow for item technical evaluations",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(WorkflowError, workflow_error_handler)

app.include_router(health_router, tags=["Health"])
app.include_router(evaluations_router, prefix="/v1", tags=["Evaluations"])
app.include_router(users_router, prefix="/v1/users", tags=["Users"])


@app.get("/")
async def root():
    return {"service": "ITES", "version": "0.1.0", "docs": "/docs"}
