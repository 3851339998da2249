from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
import io
import structlog
import time
from contextlib import asynccontextmanager

from codec import decode_transactions
from config import get_settings
from errors import EngineError
from logging_config import configure_logging
from models import ReportResponse, ErrorResponse, HealthResponse
from repositories import create_ledger_repository
from services import get_transaction_service

settings = get_settings()
configure_logging(settings)

logger = structlog.get_logger()

# Rate limiting
limiter = Limiter(key_func=get_remote_address)


class ServiceStats:
    def __init__(self):
        self.batches_processed = 0
        self.records_applied = 0
        self.records_rejected = 0


# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Ledger API")
    yield
    # Shutdown
    logger.info("Shutting down Ledger API")

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Batch ledger engine: deposits, withdrawals, disputes, resolves and chargebacks",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.state.stats = ServiceStats()

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=settings.allowed_methods,
    allow_headers=settings.allowed_headers,
)

# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        client_ip=request.client.host if request.client else None
    )

    response = await call_next(request)

    process_time = time.time() - start_time
    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time=round(process_time, 4)
    )

    return response

# Health check endpoint
@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Check API health and get processing statistics"
)
async def health_check(request: Request):
    stats = request.app.state.stats
    return HealthResponse(
        status="healthy",
        batches_processed=stats.batches_processed,
        records_applied=stats.records_applied,
        records_rejected=stats.records_rejected
    )

# Batch processing endpoint
@app.post(
    "/transactions/batch",
    response_model=ReportResponse,
    status_code=status.HTTP_200_OK,
    summary="Process Transaction Batch",
    description="Apply a CSV batch (type, client, tx, amount) to a fresh ledger and return final balances",
    responses={
        200: {"description": "Batch processed, report returned"},
        413: {"description": "Batch larger than the configured limit"},
        422: {"description": "Malformed CSV record, nothing applied"},
        429: {"description": "Rate limit exceeded"},
        500: {"description": "Internal server error"}
    }
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def process_batch(request: Request):
    body = await request.body()
    if len(body) > settings.max_request_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Batch too large"
        )

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Batch must be UTF-8 encoded CSV"
        )

    # Each batch runs against its own ledger; nothing is shared across requests.
    service = get_transaction_service(create_ledger_repository())
    try:
        records = list(decode_transactions(io.StringIO(text, newline=""), settings))
    except EngineError as e:
        logger.warning("Batch rejected", error=str(e), error_code=e.error_code)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )

    summary = await service.process_async(records)

    stats = request.app.state.stats
    stats.batches_processed += 1
    stats.records_applied += summary.applied
    stats.records_rejected += summary.rejected

    return ReportResponse(
        accounts=service.report(),
        records_applied=summary.applied,
        records_rejected=summary.rejected
    )

# Global exception handler
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            detail=exc.detail,
            error_code=f"HTTP_{exc.status_code}"
        ).model_dump(mode="json")
    )

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        error=str(exc),
        url=str(request.url),
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            detail="Internal server error",
            error_code="INTERNAL_ERROR"
        ).model_dump(mode="json")
    )

# Root endpoint
@app.get("/", include_in_schema=False)
async def root():
    return {"message": settings.app_name, "docs": "/docs"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
