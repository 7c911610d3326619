"""
Spoonfeed API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Create tables if not present (PostgreSQL)
  3. Connect to Redis (refresh sessions)
  4. Initialise MinIO client & bucket (review media, avatars, list covers)
  5. Start the Google Places HTTP client
  6. Expose Prometheus /metrics endpoint
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import IntegrityError

from spoonfeed.clients.places_client import places_client
from spoonfeed.clients.redis_client import close_redis, init_redis
from spoonfeed.clients.storage_client import init_storage
from spoonfeed.config import settings
from spoonfeed.database import init_db
from spoonfeed.routers import auth, feed, gatekeeping, lists, restaurants, reviews, users
from spoonfeed.telemetry import instrument_app, setup_tracing

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of all external connections."""
    logger.info("Starting Spoonfeed API (env=%s)", settings.environment)

    await init_db()
    await init_redis()
    init_storage()                  # boto3 is sync
    await places_client.start()
    if not places_client.enabled:
        logger.warning("GOOGLE_MAPS_API_KEY not set — restaurant discovery disabled")

    logger.info("All services connected. API ready.")
    yield

    logger.info("Shutting down...")
    await places_client.stop()
    await close_redis()


app = FastAPI(
    title="Spoonfeed API",
    description=(
        "Social restaurant reviews: rated, tagged, media-rich reviews, "
        "curated lists and a newest-first feed."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(restaurants.router, prefix="/restaurants", tags=["Restaurants"])
app.include_router(reviews.router, prefix="/reviews", tags=["Reviews"])
app.include_router(lists.router, prefix="/lists", tags=["Lists"])
app.include_router(feed.router, prefix="/feed", tags=["Feed"])
app.include_router(gatekeeping.router, prefix="/gatekeeping", tags=["Gatekeeping"])


# ── Constraint races ───────────────────────────────────────────────────────
@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    # Two requests inserted the same relation row at once; the loser sees a duplicate
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": "This already exists"},
    )


# ── Prometheus metrics endpoint ────────────────────────────────────────────
# Scraped by Prometheus
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}
