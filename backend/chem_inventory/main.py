"""FastAPI application entrypoint for the chemical inventory API."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import config, crud, schemas
from .database import get_db, init_db
from .errors import InventoryError, PersistenceFailure
from .routers import bottles, chemicals, locations, lookup

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("chem_inventory")

app = FastAPI(title="Chemical Inventory API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def _create_tables() -> None:
    """Ensure the schema and the global id counter exist before serving requests."""
    init_db()
    logger.info("Database schema ensured")


@app.exception_handler(InventoryError)
async def _inventory_error_handler(request: Request, exc: InventoryError) -> JSONResponse:
    if isinstance(exc, PersistenceFailure):
        # Detail is already logged where it happened; clients get a generic message
        payload = {"code": exc.code, "error": "Internal server error"}
    else:
        payload = exc.to_payload()
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(payload))


@app.exception_handler(RequestValidationError)
async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    payload = {
        "code": "invalid_argument",
        "error": "Request validation failed",
        "errors": jsonable_encoder(exc.errors()),
    }
    return JSONResponse(status_code=400, content=payload)


api = APIRouter(prefix="/api")


@api.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@api.get("/stats", response_model=schemas.Stats, tags=["stats"])
def stats(db: Session = Depends(get_db)):
    return crud.get_stats(db)


api.include_router(chemicals.router)
api.include_router(bottles.router)
api.include_router(locations.router)
api.include_router(lookup.router)
app.include_router(api)


@app.get("/")
def read_root():
    return {"message": "Inventory System Online"}
