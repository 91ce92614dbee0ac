import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import config, models
from .database import engine
from .errors import PetPulseError
from .routers import adoptions, appointments, inventory, payments, schedule

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

# Create tables
models.Base.metadata.create_all(bind=engine)

os.makedirs(config.UPLOAD_DIR, exist_ok=True)

app = FastAPI(title="PetPulse Booking API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PetPulseError)
async def petpulse_error_handler(request: Request, exc: PetPulseError):
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Request body/query validation failures are reported as 400 with one message per field"""
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query")),
            "message": error.get("msg"),
        }
        for error in exc.errors()
    ]
    logger.warning(f"Validation error for {request.url.path}: {errors}")
    return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"❌ Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Fixed paths first, "/api/{service}/..." last
app.include_router(schedule.router)
app.include_router(inventory.router)
app.include_router(payments.router)
app.include_router(adoptions.router)
app.include_router(appointments.router)


@app.get("/")
async def root():
    return {"name": config.APP_NAME, "status": "ok"}


@app.get("/health")
async def health():
    """Health check"""
    return {"status": "healthy"}
