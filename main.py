from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from circulation import models  # noqa: F401
from circulation.config import get_config
from circulation.database import Base, engine
from circulation.exceptions import (
    ConcurrencyConflict,
    ConsistencyViolation,
    NotFoundError,
    PreconditionFailed,
)
from circulation.logging import get_logger, setup_logging
from circulation.routes import router

config = get_config()
setup_logging(config.log_level, config.log_format)
logger = get_logger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="School Library Circulation")
app.include_router(router)


@app.exception_handler(NotFoundError)
def handle_not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PreconditionFailed)
def handle_precondition_failed(request: Request, exc: PreconditionFailed):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ConcurrencyConflict)
def handle_conflict(request: Request, exc: ConcurrencyConflict):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ConsistencyViolation)
def handle_consistency_violation(request: Request, exc: ConsistencyViolation):
    logger.error("Consistency violation on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
