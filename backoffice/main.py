"""
Advisory Back Office - Backend API
Administration API for staff, clients, tasks, billing and website operations
"""
import logging
import time
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)

from backoffice.api import (  # noqa: E402
    admin_users,
    auth,
    billable_modules,
    bookings,
    charges,
    compliance,
    coupons,
    customers,
    dashboard,
    departments,
    entities,
    entity_groups,
    influencers,
    invoices,
    notifications,
    payments,
    permissions,
    reconcile,
    service_pricing,
    task_categories,
    task_templates,
    tasks,
)
from backoffice.core.config import settings  # noqa: E402
from backoffice.core.database import get_db_connection_with_retry  # noqa: E402
from backoffice.core.errors import register_exception_handlers  # noqa: E402
from backoffice.core.rate_limit import RateLimitMiddleware  # noqa: E402

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.API_DESCRIPTION,
    debug=settings.API_DEBUG,
)

app.add_middleware(RateLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["*"],
)

register_exception_handlers(app)

# Staff and access control
app.include_router(auth.router)
app.include_router(admin_users.router)
app.include_router(permissions.router)
app.include_router(departments.router)

# Task management and billing
app.include_router(entities.router)
app.include_router(entity_groups.router)
app.include_router(compliance.router)
app.include_router(task_categories.router)
app.include_router(billable_modules.router)
app.include_router(task_templates.router)
app.include_router(tasks.router)
app.include_router(charges.router)
app.include_router(reconcile.router)
app.include_router(invoices.router)
app.include_router(notifications.router)
app.include_router(dashboard.router)

# Website operations
app.include_router(coupons.router)
app.include_router(customers.router)
app.include_router(influencers.router)
app.include_router(bookings.router)
app.include_router(payments.router)
app.include_router(service_pricing.router)


@app.get("/")
async def root():
    """Root endpoint - API status"""
    return {
        "message": settings.API_TITLE,
        "status": "online",
        "version": settings.API_VERSION,
        "description": settings.API_DESCRIPTION,
    }


@app.get("/health")
async def health():
    """Health check endpoint for monitoring - tests database connectivity"""
    start_time = time.time()

    db_status = "unknown"
    db_latency_ms = None
    db_error = None

    try:
        conn = get_db_connection_with_retry(max_retries=1, retry_delay=0.5)
        cursor = conn.cursor()

        db_start = time.time()
        cursor.execute("SELECT 1")
        cursor.fetchone()
        db_latency_ms = round((time.time() - db_start) * 1000, 2)

        cursor.close()
        conn.close()
        db_status = "connected"
    except Exception as e:
        db_status = "disconnected"
        db_error = str(e)
        logger.warning(f"Health check could not reach the database: {e}")

    total_latency_ms = round((time.time() - start_time) * 1000, 2)

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "service": "backoffice-api",
        "version": settings.API_VERSION,
        "database": {
            "status": db_status,
            "latency_ms": db_latency_ms,
            "error": db_error,
        },
        "total_latency_ms": total_latency_ms,
    }
