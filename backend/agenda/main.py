# backend/agenda/main.py

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .database import engine
from .models.generated import Base
from .redis_client import redis_client
from .routers import appointments, availability
from .services.completion_checker import completion_checker_loop
from .services.reminder_checker import reminder_checker_loop
from .services.scheduling import SchedulingError

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError:
        logger.exception("Database initialization failed. Check DATABASE_URL.")

    tasks = []
    if settings.checkers_enabled:
        tasks.append(asyncio.create_task(reminder_checker_loop()))
        tasks.append(asyncio.create_task(completion_checker_loop()))

    yield

    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


app = FastAPI(title="Agenda API", lifespan=lifespan)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "Database unavailable", "code": "database_unavailable"},
    )


@app.get("/health")
def health():
    try:
        redis_ok = redis_client.ping()
    except RedisError:
        redis_ok = False
    return {"redis": redis_ok}


app.include_router(availability.router)
app.include_router(appointments.router)
