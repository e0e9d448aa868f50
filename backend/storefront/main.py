import logging
import os
from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.api.health import router as health_router
from storefront.api.routes_cart import router as cart_router
from storefront.config import settings
from storefront.db import init_db
from storefront.schemas.cart_schema import Failure
from storefront.services.backup_service import JsonBackupService
from storefront.services.cart_service import CartError
from storefront.utils.log import configure_logging

configure_logging(settings.LOG_LEVEL)
log = logging.getLogger("storefront.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    init_db(reset=os.environ.get("RESET_DB", "0") in ("1", "true", "True"))

    # keep the JSON mirror of the catalogue fresh
    scheduler = BackgroundScheduler()
    if settings.JSON_BACKUP_SYNC_SECONDS > 0:
        backup = JsonBackupService()

        def sync_job():
            try:
                backup.sync_all()
            except Exception:
                log.exception("Scheduled JSON sync failed")

        scheduler.add_job(
            sync_job,
            "interval",
            seconds=settings.JSON_BACKUP_SYNC_SECONDS,
            id="json_backup_sync",
            max_instances=1,
            coalesce=True,
        )
    scheduler.start()

    try:
        yield
    finally:
        scheduler.shutdown(wait=False)


app = FastAPI(title="Storefront - Cart API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _failure(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=Failure(message=message).model_dump(),
        headers=headers,
    )


@app.exception_handler(CartError)
async def cart_error_handler(request: Request, exc: CartError):
    return _failure(exc.status_code, str(exc))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _failure(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    return _failure(422, f"Invalid request: {where} {first.get('msg', '')}".strip())


app.include_router(health_router, prefix="/api", tags=["health"])

app.include_router(cart_router, tags=["cart"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("storefront.main:app", host=settings.APP_HOST, port=settings.APP_PORT)
