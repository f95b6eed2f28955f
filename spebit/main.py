import logging
import os
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import HTTPException as FastAPIHTTPException
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles

from spebit.core.config import (
    LOG_LEVEL,
    PRICE_ALERT_THRESHOLD,
    STORAGE_PUBLIC_URL,
    STORAGE_ROOT,
)
from spebit.core.rate_limiter import limiter, custom_rate_limit_handler
from slowapi.errors import RateLimitExceeded
from spebit.core.exceptions import CustomHTTPException
from spebit.core.price_monitor import PriceMonitor
from spebit.core.realtime import RealtimeHub
from spebit.core.schemas import BaseResponse
from spebit.core.storage import LocalObjectStorage
from spebit.routes import admins, users, websocket

# <========== Logging ==========>
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Spebit Crypto Exchange",
    version="1.0.0",
    default_response_model=BaseResponse,
    description="API for buying cryptocurrency with manual payment verification",
    responses={
        400: {"model": BaseResponse},
        401: {"model": BaseResponse},
        403: {"model": BaseResponse},
        404: {"model": BaseResponse},
        409: {"model": BaseResponse},
        422: {"model": BaseResponse},
        429: {"model": BaseResponse},
        500: {"model": BaseResponse},
    },
)

# <========== Application services ==========>
app.state.realtime = RealtimeHub()
app.state.storage = LocalObjectStorage(STORAGE_ROOT, STORAGE_PUBLIC_URL)
app.state.price_monitor = PriceMonitor(app.state.realtime, PRICE_ALERT_THRESHOLD)

# <========== Gzip Middleware ==========>
app.add_middleware(GZipMiddleware, minimum_size=1000)  # Compress responses > 1KB

# <========== CORS Configuration ==========>
allowed_origins = os.getenv("ALLOWED_ORIGINS", "*").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# <========== Rate limiting middleware ==========>
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, custom_rate_limit_handler)


# <========== API routes ==========>
app.include_router(
    users.router,
    prefix="/api/v1/users",
    tags=["User"],
    responses={404: {"description": "Not found"}},
)
app.include_router(
    admins.router,
    prefix="/api/v1/admins",
    tags=["Admin"],
    responses={404: {"description": "Not found"}},
)
app.include_router(websocket.router, tags=["Realtime"])

# <========== Payment screenshots ==========>
os.makedirs(STORAGE_ROOT, exist_ok=True)
app.mount(STORAGE_PUBLIC_URL, StaticFiles(directory=STORAGE_ROOT), name="storage")


# <========== Exception Handlers ==========>
# Custom exception handler
@app.exception_handler(CustomHTTPException)
async def custom_http_exception_handler(request: Request, exc: CustomHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": exc.detail.get("success", False),
            "message": exc.detail.get("message", "An error occurred"),
            "data": exc.detail.get("data", {}),
            "status_code": exc.status_code,
        },
    )


# Generic HTTPException handler for rate limiting and other cases
@app.exception_handler(FastAPIHTTPException)
async def http_exception_handler(request: Request, exc: FastAPIHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": (
                exc.detail.get("message")
                if isinstance(exc.detail, dict)
                else str(exc.detail)
            ),
            "data": exc.detail.get("data") if isinstance(exc.detail, dict) else None,
            "status_code": exc.status_code,
        },
        headers=exc.headers,
    )


# Request body and query validation
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "message": "Validation error",
            "data": {"errors": errors},
            "status_code": status.HTTP_422_UNPROCESSABLE_ENTITY,
        },
    )


# <========== System Endpoints ==========>
# Health check endpoint with rate limit
@app.get("/health", tags=["System"], response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_PUBLIC", "1000/hour"))
async def health_check(request: Request):
    return {
        "success": True,
        "message": "System is healthy",
        "status_code": status.HTTP_200_OK,
    }


# Root endpoint with rate limit
@app.get("/", response_model=BaseResponse, tags=["System"])
@limiter.limit(os.getenv("RATE_LIMIT_PUBLIC", "1000/hour"))
async def root(request: Request):
    return {
        "success": True,
        "message": "Welcome to Spebit API. Access /docs or /redoc for documentation.",
        "data": {
            "version": app.version,
            "documentation": {"swagger": "/docs", "redoc": "/redoc"},
        },
        "status_code": status.HTTP_200_OK,
    }


# <========== Application Startup ==========>
if __name__ == "__main__":
    port = int(os.getenv("PORT", 8000))
    # The realtime hub lives in-process; status watchers need a single worker
    workers = int(os.getenv("WORKERS", 1))
    if workers > 1:
        logger.warning("Realtime status watchers only see changes made by their own worker")
    uvicorn.run(
        "spebit.main:app",
        host="0.0.0.0",
        port=port,
        workers=workers,
        reload=os.getenv("RELOAD", "false").lower() == "true",
    )
