"""
Custody Ledger API Application Factory
"""

from fastapi import FastAPI

from .ledger import router as ledger_router
from .host import router as host_router
from .. import __version__


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Custody Ledger API",
        description="Custodial value ledger with capped deposits and withdrawals",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.include_router(ledger_router, prefix="/ledger", tags=["Ledger"])
    app.include_router(host_router, prefix="/host", tags=["Host"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "custody_ledger_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Custody Ledger API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "ledger": "/ledger",
                "host": "/host"
            }
        }

    return app


app = create_app()
