import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from country_api.config import settings
from country_api.database import init_db
from country_api.errors import CountryAPIError, UpstreamUnavailable
from country_api.logging import RequestLoggingMiddleware, init_logging
from country_api.routes import countries

logger = logging.getLogger("country_api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Country Currency & Exchange API",
    version="1.0.0",
    description=(
        "REST API to explore countries, currencies, population, and simple GDP estimates.\n\n"
        "Features:\n"
        "- Refresh from Rest Countries and open exchange rates (base USD)\n"
        "- Filter by region and currency, sort by estimated GDP or name\n"
        "- Lightweight status and a generated summary image"
    ),
    lifespan=lifespan,
)

# Initialize logging and middleware
init_logging()
app.add_middleware(RequestLoggingMiddleware)

app.include_router(countries.router, prefix="/countries", tags=["Countries"])


@app.get("/")
def root():
    return {"message": "Country Currency & Exchange API running. Visit /docs for API documentation."}


# -------------------------------
# Unified error response handlers
# -------------------------------
@app.exception_handler(CountryAPIError)
async def country_api_error_handler(request: Request, exc: CountryAPIError):
    logger.error("%s: %s %s -> %s | %s", type(exc).__name__, request.method, request.url.path, exc.status_code, exc.message)
    if isinstance(exc, UpstreamUnavailable):
        body = {"error": exc.error, "details": exc.message}
    else:
        body = {"error": exc.message}
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning("HTTPException: %s %s -> %s | detail=%s", request.method, request.url.path, exc.status_code, exc.detail)
    if exc.status_code == 404:
        return JSONResponse(status_code=404, content={"error": "Endpoint not found"})
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error("ValidationError: %s %s | errors=%s", request.method, request.url.path, exc.errors())
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error: %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(exc)})


def run() -> None:
    import uvicorn

    uvicorn.run("country_api.main:app", host="0.0.0.0", port=settings.PORT)
