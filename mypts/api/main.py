"""
mypts.api.main — FastAPI application entry point
==================================================

Run with::

    uvicorn mypts.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

load_dotenv()

from mypts.api.deps import get_context  # noqa: E402
from mypts.api.routes.activities import router as activities_router  # noqa: E402
from mypts.api.routes.admin import router as admin_router  # noqa: E402
from mypts.api.routes.public import router as public_router  # noqa: E402
from mypts.errors import (  # noqa: E402
    ConcurrencyConflict,
    InsufficientBalance,
    MyPtsError,
    NotFound,
    ReserveExhausted,
    ValidationError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[MyPtsError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFound: status.HTTP_404_NOT_FOUND,
    InsufficientBalance: status.HTTP_409_CONFLICT,
    ConcurrencyConflict: status.HTTP_409_CONFLICT,
    ReserveExhausted: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the economy context."""
    ctx = get_context()
    logger.info("MyPts API started — engine ready (%s)", ctx.engine.url.database)
    yield
    logger.info("MyPts API shutting down")


app = FastAPI(
    title="MyPts Economy API",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(MyPtsError)
async def mypts_error_handler(request: Request, exc: MyPtsError) -> JSONResponse:
    code = next(
        (status_code for cls, status_code in ERROR_STATUS.items() if isinstance(exc, cls)),
        status.HTTP_400_BAD_REQUEST,
    )
    return JSONResponse(
        status_code=code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


app.include_router(public_router, prefix="/api")
app.include_router(activities_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
