"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI, Request

from relayscan.config import ScanSettings
from relayscan.worker.coordinator import ScanCoordinator


def get_coordinator(request: Request) -> ScanCoordinator:
    """Dependency returning the app's scan coordinator."""
    return request.app.state.coordinator


def create_app(coordinator: ScanCoordinator | None = None) -> FastAPI:
    """Create FastAPI application.

    Args:
        coordinator: Coordinator to serve. Built from environment
            settings when omitted.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="relayscan API",
        description="Relay pair scheduling and bandwidth aggregation",
        version="0.1.0",
    )

    if coordinator is None:
        coordinator = ScanCoordinator.from_settings(ScanSettings.from_env())
    app.state.coordinator = coordinator

    # Include routes
    from relayscan.api.routes import bandwidth, slices

    app.include_router(slices.router, prefix="/api")
    app.include_router(bandwidth.router, prefix="/api")

    # Health check endpoint
    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    return app
