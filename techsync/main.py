"""
Main entry point for TechSync
Builds the sync service and serves the HTTP API
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from techsync import __version__
from techsync.api import register_error_handlers, sync_router
from techsync.api.dependencies import init_api_dependencies
from techsync.api.schemas import HealthResponse
from techsync.config.config_loader import load_config
from techsync.core.logging_manager import setup_logging
from techsync.core.models import utc_now
from techsync.core.service import SyncService

logger = logging.getLogger(__name__)


class TechSyncApp:
    """FastAPI application around one SyncService"""

    def __init__(self, config: Dict[str, Any], service: Optional[SyncService] = None):
        self.config = config
        self.service = service or SyncService.from_config(config)

        self.app = FastAPI(
            title="TechSync",
            description="Queue-backed synchronization between the catalogue databases",
            version=__version__,
            lifespan=self.lifespan
        )

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=config.get('api', {}).get('cors_origins', ["*"]),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"]
        )

        api_key = config.get('api', {}).get('api_key')
        init_api_dependencies(api_key, self.service)

        register_error_handlers(self.app)
        self.app.include_router(sync_router, prefix="/api/v1/sync", tags=["Synchronization"])

        @self.app.get("/health", response_model=HealthResponse)
        async def health_check():
            """Liveness plus queue database connectivity (no auth required)"""
            database_ok = await self.service.db.health_check()
            if not database_ok:
                raise HTTPException(status_code=503, detail="Queue database unavailable")

            return HealthResponse(
                status="healthy",
                version=__version__,
                database="connected",
                source_configured=self.service.source is not None,
                target_configured=self.service.target is not None,
                timestamp=utc_now()
            )

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        """FastAPI lifespan context manager for startup and shutdown"""
        logger.info(f"Starting TechSync {__version__}...")
        await self.service.initialize()
        logger.info("TechSync started")

        yield

        logger.info("Shutting down TechSync...")
        await self.service.close()
        logger.info("TechSync shutdown complete")


def create_app(config: Optional[Dict[str, Any]] = None,
               service: Optional[SyncService] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    if config is None:
        config = load_config()
    return TechSyncApp(config, service=service).app


def main():
    """Main entry point"""
    try:
        config = load_config()
        setup_logging(config)

        app = create_app(config)

        api_config = config.get('api', {})
        host = api_config.get('host', '0.0.0.0')
        port = int(api_config.get('port', 8080))

        logger.info(f"Starting TechSync on {host}:{port}")

        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level=str(config.get('logging', {}).get('level', 'info')).lower(),
            access_log=True
        )

    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    except Exception as e:
        logger.error(f"Failed to start TechSync: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
