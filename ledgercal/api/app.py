"""
FastAPI application factory for the ledger server.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ledgercal import __version__
from ledgercal.api import routes_accounts, routes_histories, routes_reports, routes_transactions
from ledgercal.database.db_manager import DatabaseManager
from ledgercal.utils.constants import (
    APP_NAME,
    DB_FILE,
    SERVER_EXPANSION_MONTHS,
)

logger = logging.getLogger(__name__)


def create_app(
    db_path: str | None = None,
    expansion_months: int = SERVER_EXPANSION_MONTHS,
) -> FastAPI:
    db_path = db_path or DB_FILE
    # Create schema and seed the default account before serving requests
    db = DatabaseManager(db_path)
    db.initialize()
    db.close()

    app = FastAPI(title=APP_NAME, version=__version__)
    app.state.db_path = db_path
    app.state.expansion_months = expansion_months

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(LookupError)
    async def not_found_handler(request: Request, exc: LookupError):
        return JSONResponse(status_code=404, content={"error": str(exc).strip("'\"")})

    @app.exception_handler(Exception)
    async def server_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(routes_accounts.router)
    app.include_router(routes_transactions.router)
    app.include_router(routes_reports.router)
    app.include_router(routes_histories.router)

    @app.get("/api/health")
    def health():
        return {"status": "ok", "version": __version__}

    return app
