"""
REST API main application.
Entry point for the FastAPI REST server.
"""

from fastapi import FastAPI
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from cafe_api.core.cors import configure_cors
from cafe_api.core.lifespan import lifespan
from cafe_api.core.middlewares import register_middlewares
from cafe_api.routers import (
    cart_router,
    loyalty_router,
    orders_router,
    personalisation_router,
    sessions_router,
)
from cafe_shared.config.settings import settings
from cafe_shared.infrastructure.db import SessionLocal
from cafe_shared.rate_limit import limiter, rate_limit_exceeded_handler


app = FastAPI(
    title="Cafe Ordering API",
    description="Dine-in sessions, shared carts, orders and loyalty",
    version="0.1.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

register_middlewares(app)
configure_cors(app)

app.include_router(sessions_router)
app.include_router(cart_router)
app.include_router(orders_router)
app.include_router(loyalty_router)
app.include_router(personalisation_router)


@app.get("/api/health")
def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "service": "cafe-api",
        "environment": settings.environment,
    }


@app.get("/api/health/detailed")
def detailed_health_check():
    """Health check that verifies database connectivity."""
    from fastapi.responses import JSONResponse

    checks = {
        "service": "cafe-api",
        "environment": settings.environment,
        "dependencies": {},
    }
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        checks["dependencies"]["database"] = {"status": "healthy"}
        checks["status"] = "healthy"
    except SQLAlchemyError as e:
        checks["dependencies"]["database"] = {"status": "unhealthy", "error": str(e)}
        checks["status"] = "degraded"
        return JSONResponse(content=checks, status_code=503)
    return checks


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("cafe_api.main:app", host="0.0.0.0", port=settings.rest_api_port)
