"""FastAPI application entry point."""

import logging
import os

import sqlalchemy
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from proposal_service.config import settings
from proposal_service.database import engine
from proposal_service.routes import jobs
from proposal_service.services.job_store import JobStore
from proposal_service.worker import create_worker

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Proposal Builder",
    description="Background proposal document generation from merchant cost analyses",
    version="0.1.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(jobs.router)


def run_migrations():
    """Apply Alembic migrations; each revision skips objects that already exist."""
    if not sqlalchemy.inspect(engine).has_table("proposal_jobs"):
        logger.info("Database tables not found, creating schema")

    logger.info("Running database migrations...")
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config(os.path.join(os.path.dirname(os.path.dirname(__file__)), "alembic.ini"))
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed successfully")


@app.on_event("startup")
async def startup_event():
    """Prepare the database, start the worker and recover unfinished jobs."""
    logger.info("Starting application...")
    run_migrations()

    store = JobStore()
    app.state.store = store
    app.state.worker = create_worker(store)

    if settings.RECOVER_JOBS_ON_STARTUP:
        app.state.worker.recover(store)
    logger.info("Background worker started")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the worker, letting running jobs finish."""
    logger.info("Shutting down application...")
    worker = getattr(app.state, "worker", None)
    if worker is not None:
        worker.shutdown(wait=True)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "name": "Proposal Builder",
        "version": "0.1.0",
        "status": "running",
    }
