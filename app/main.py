from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
import sys

from app.config import get_settings
from app.routers import change_orders

# Configure loguru
logger.remove()
logger.add(sys.stderr, format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}", level="INFO")

app = FastAPI(
    title="Ordino Change Orders API",
    description="Change order lifecycle, signatures, PDF generation and client dispatch",
    version="1.0.0",
)

# Middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.app_base_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(change_orders.project_router)
app.include_router(change_orders.router)


@app.get("/health")
async def health_check():
    return {"status": "ok", "version": "1.0.0"}


@app.get("/health/detailed")
async def detailed_health_check():
    """Detailed health check with dependency status."""
    health = {
        "status": "ok",
        "version": "1.0.0",
        "dependencies": {},
    }

    # Check Supabase
    try:
        from app.database import get_supabase
        db = get_supabase()
        db.table("change_orders").select("id").limit(1).execute()
        health["dependencies"]["supabase"] = "ok"
    except Exception as e:
        health["dependencies"]["supabase"] = f"error: {str(e)[:100]}"
        health["status"] = "degraded"

    # Check Redis
    try:
        import redis
        r = redis.from_url(settings.redis_url)
        r.ping()
        health["dependencies"]["redis"] = "ok"
    except Exception as e:
        health["dependencies"]["redis"] = f"error: {str(e)[:100]}"
        health["status"] = "degraded"

    # Check Resend API key is set
    health["dependencies"]["resend"] = (
        "ok" if settings.resend_api_key else "not configured"
    )

    return health
