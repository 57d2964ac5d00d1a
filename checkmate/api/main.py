import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from checkmate.api.v1.endpoints import router as v1_router
from checkmate.core.cache import init_global_cache
from checkmate.core.config import config
from checkmate.core.errors import CheckmateError

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

GENERIC_ERROR = "An error occurred while processing your request."

app = FastAPI(
    title=config.PROJECT_NAME,
    version=config.VERSION,
    openapi_url=f"{config.API_PREFIX}/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(v1_router)


@app.exception_handler(CheckmateError)
async def checkmate_error_handler(request: Request, exc: CheckmateError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        location = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        message = f"Invalid request: {location + ' ' if location else ''}{errors[0].get('msg', 'is invalid')}".strip()
    else:
        message = "Invalid request body"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": GENERIC_ERROR})


@app.on_event("startup")
async def startup_event():
    if config.LLM_CACHE_ENABLED:
        init_global_cache(semantic=config.LLM_CACHE_SEMANTIC)


@app.get("/")
async def root():
    return {"message": "Welcome to the Checkmate Backend API! Check /docs for API documentation."}


@app.get("/health")
async def health_check():
    return {
        "status": "operational",
        "message": "The Checkmate Backend API is running smoothly.",
        "version": config.VERSION
    }
