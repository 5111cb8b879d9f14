"""FastAPI application entry point."""

import logging
import os
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes import migrations, reconcile
from ..models.migration import MigrationConfig
from ..orchestrator import MigrationOrchestrator

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TABLEMIGRATE_CONFIG"


def load_base_config() -> MigrationConfig:
    """Config file named by TABLEMIGRATE_CONFIG, or the defaults."""
    path = os.environ.get(CONFIG_ENV_VAR)
    if path:
        logger.info(f"Loading migration config from {path}")
        return MigrationConfig.from_json_file(path)
    return MigrationConfig()


def create_app(
    config: Optional[MigrationConfig] = None,
    orchestrator_factory: Optional[Callable[[MigrationConfig], MigrationOrchestrator]] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        config: Base configuration; requests may override parts of it
        orchestrator_factory: Builds an orchestrator from a config
    """
    app = FastAPI(
        title="Table Migration API",
        description="API for SQL Server to Snowflake table migrations",
        version="0.1.0",
    )

    app.state.config = config or load_base_config()
    app.state.orchestrator_factory = orchestrator_factory or MigrationOrchestrator

    # CORS middleware for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(migrations.router, prefix="/api/migrations", tags=["migrations"])
    app.include_router(reconcile.router, prefix="/api/reconcile", tags=["reconcile"])

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
