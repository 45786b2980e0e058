import logging
import sys

from dotenv import load_dotenv

# Load environment variables from .env file before settings are read
load_dotenv()

from fastapi import FastAPI

from app.core.config import settings
from app.exception_handlers import register_exception_handlers
from app.lifespan import lifespan
from app.middleware.logging import LoggingMiddleware
from app.middleware.request_id import RequestIDMiddleware
from app.routers import booking_payments, driver_charging, enode_link

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

# Use a consistent logger name for app-level logs
logger = logging.getLogger("plogo")


def create_app() -> FastAPI:
    app = FastAPI(title="Plogo Charging Backend", version="1.0.0", lifespan=lifespan)

    @app.get("/healthz")
    def healthz():
        """Liveness probe; does not touch the database or Enode."""
        return {"ok": True, "service": "plogo-backend"}

    # Last added runs first: RequestID wraps Logging
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(driver_charging.router)
    app.include_router(booking_payments.router)
    app.include_router(enode_link.router)
    return app


app = create_app()
