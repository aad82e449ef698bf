import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stockledger.api import reports, stock
from stockledger.config import settings
from stockledger.database import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()
    logger.info("%s started (database: %s)", settings.APP_NAME, settings.DATABASE_URL.split("://")[0])
    yield


app = FastAPI(
    title="Stock Ledger API",
    description="Approval-gated stock ledger: movements, derived inventory, and reconciliation",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return JSON for unhandled exceptions so the dashboard can show the error."""
    logger.error("Unhandled error: %s\n%s", exc, traceback.format_exc())
    return JSONResponse(status_code=500, content={"detail": str(exc)})


app.include_router(stock.router, prefix="/api/v1")
app.include_router(reports.router, prefix="/api/v1")


@app.get("/api/v1/config")
def get_config():
    """Expose public config for the dashboard."""
    return {
        "default_location": settings.DEFAULT_LOCATION,
        "low_stock_threshold": settings.LOW_STOCK_THRESHOLD,
    }


@app.get("/health")
def health():
    return {"status": "ok"}
