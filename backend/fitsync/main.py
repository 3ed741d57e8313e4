"""
fitsync API

FastAPI application hosting the fitness sync engine. The lifespan is the
composition root: it builds one orchestrator and its collaborators and
tears them down on shutdown.
"""

from contextlib import asynccontextmanager
import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fitsync import __version__
from fitsync.config import settings
from fitsync.db.session import init_db, AsyncSessionLocal
from fitsync.api.v1.router import api_router
from fitsync.features.fit import (
    AuthorizationFlow,
    CalorieDecomposer,
    FitnessDataClient,
    LoopbackSurface,
    SqlSyncStateStore,
    TokenStore,
)
from fitsync.features.fit.sync import SyncOrchestrator
from fitsync.features.ledger import HttpActivityLedger


# === Logging Setup ===
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)
logger = logging.getLogger(__name__)


def build_orchestrator() -> SyncOrchestrator:
    """Wire the sync engine from settings."""
    token_store = TokenStore()
    surface = LoopbackSurface(host=settings.fit_auth_host, port=settings.fit_auth_port)
    return SyncOrchestrator(
        auth_flow=AuthorizationFlow(surface=surface),
        data_client=FitnessDataClient(token_store),
        ledger=HttpActivityLedger(),
        token_store=token_store,
        state_store=SqlSyncStateStore(AsyncSessionLocal, settings.sync_user_id),
        decomposer=CalorieDecomposer(
            settings.resting_baseline_kcal, settings.steps_baseline
        ),
    )


# === Lifespan ===
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    logger.info("Starting fitsync API...")
    await init_db()
    logger.info("Database initialized")

    orchestrator = build_orchestrator()
    if settings.fit_client_id:
        await orchestrator.initialize()
    else:
        logger.info("Fitness provider not configured (FIT_CLIENT_ID not set)")
    app.state.orchestrator = orchestrator

    yield

    # Shutdown
    await orchestrator.dispose()
    await orchestrator.ledger.close()
    logger.info("Shutting down...")


# === App Creation ===
app = FastAPI(
    title="fitsync API",
    description="Fitness provider sync and activity reconciliation",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# === Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# === Routes ===
app.include_router(api_router, prefix="/api/v1")


# === Health Check ===
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}
