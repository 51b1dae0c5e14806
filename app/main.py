from contextlib import asynccontextmanager
import logging
import traceback

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text

import app.models  # noqa: F401  # registers Room/Participant on Base.metadata
from app.database import Base, SessionLocal, engine
from app.routers import invitations as invitations_router
from app.routers import rooms as rooms_router
from app.routers import webhooks as webhooks_router
from app.services.errors import RoomServiceError
from app.services.media import close_media_client
from app.utils.logging_config import setup_logging

logger = logging.getLogger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    Base.metadata.create_all(bind=engine)
    logger.info("Huddle started; room tables are ready.")
    try:
        yield
    finally:
        await close_media_client()
        logger.info("Huddle stopped; media client closed.")


app = FastAPI(
    title="Huddle",
    description="Room lifecycle and participant admission for video meetings",
    lifespan=lifespan,
)

app.include_router(rooms_router.router)
app.include_router(invitations_router.router)
app.include_router(webhooks_router.router)


def _log_failure(request: Request, status_code: int, message: str) -> None:
    where = f"{request.method} {request.url.path}"
    if status_code >= 500:
        logger.error(f"{where} -> {status_code}: {message}\n{traceback.format_exc()}")
    else:
        logger.info(f"{where} -> {status_code}: {message}")


@app.exception_handler(RoomServiceError)
async def room_service_error_handler(request: Request, exc: RoomServiceError):
    _log_failure(request, exc.status_code, f"{exc.code} ({exc.message})")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    _log_failure(request, exc.status_code, str(exc.detail))
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = [error["msg"] for error in exc.errors()]
    logger.warning(f"{request.method} {request.url.path} rejected: {messages}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": messages},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    _log_failure(request, 500, f"unhandled {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal Server Error. Please check logs."},
    )


@app.get("/health", tags=["healthcheck"])
async def health_check():
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error(f"Health check could not reach the database: {exc}")
        raise HTTPException(status_code=503, detail="Database unavailable")
    finally:
        db.close()
    return {"status": "healthy", "database": "connected"}
