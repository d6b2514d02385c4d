# Load environment variables FIRST before any other imports
from dotenv import load_dotenv
load_dotenv()

import os
import logging
import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mcatprep import __version__
from mcatprep.database import engine, Base
from mcatprep.routers import auth, questions, tests, payments, webhooks
from mcatprep.services.exceptions import DomainError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize Sentry for error monitoring
sentry_dsn = os.getenv("SENTRY_DSN")
if sentry_dsn:
    sentry_sdk.init(
        dsn=sentry_dsn,
        traces_sample_rate=0.1,
        environment=os.getenv("ENVIRONMENT", "development"),
    )

# Create database tables
Base.metadata.create_all(bind=engine)

# OpenAPI tag metadata for organized documentation
tags_metadata = [
    {
        "name": "auth",
        "description": "Registration, login and membership status.",
    },
    {
        "name": "tests",
        "description": "Timed practice tests: assembly, timer, answers and scoring.",
    },
    {
        "name": "questions",
        "description": "Question availability per subject and unit.",
    },
    {
        "name": "payments",
        "description": "One-off plan purchases and renewals.",
    },
    {
        "name": "webhooks",
        "description": "Stripe payment events.",
    },
]

app = FastAPI(
    title="MCAT Prep API",
    description="Timed MCAT-style practice exams with trial and paid memberships.",
    version=__version__,
    openapi_tags=tags_metadata,
)

# SECURITY: Explicitly list allowed origins - no wildcards
ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",  # Vite dev server
]

# Allow additional origins from environment (for preview deploys)
extra_origins = os.getenv("CORS_ALLOWED_ORIGINS", "")
if extra_origins:
    ALLOWED_ORIGINS.extend([o.strip() for o in extra_origins.split(",") if o.strip()])

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "Accept"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """Map service-layer errors to their HTTP status and structured body."""
    logger.info(
        "%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# Include routers
app.include_router(auth.router)  # Authentication & membership
app.include_router(tests.router)  # Test sessions
app.include_router(questions.router)  # Question bank
app.include_router(payments.router)  # Plan payments
app.include_router(webhooks.router)  # Stripe webhooks


@app.get("/")
def root():
    return {
        "message": "MCAT Prep API",
        "version": __version__,
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    return {"status": "healthy"}
