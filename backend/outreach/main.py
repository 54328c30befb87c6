"""Main FastAPI application - wires the push services together."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .database import close_db, create_engine, create_session_factory, init_db
from .routers import agent_router, devices_router, jobs_router, notifications_router
from .services.content import ContentGenerator
from .services.delivery import DeliveryService
from .services.gateway import GatewayClient
from .services.registry import DeviceRegistry
from .services.scheduler import OutreachScheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
# httpx logs every request URL at INFO, and APNs URLs end in the device token
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

SERVICE_NAME = "outreach-push"


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[GatewayClient] = None,
    content: Optional[ContentGenerator] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    The gateway and content generator are built from settings at startup
    unless passed in. A missing or invalid APNs key aborts startup.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan - startup and shutdown."""
        logger.info("Starting outreach push service")

        # Fatal on a bad signing key, before anything else is opened
        push_gateway = gateway or GatewayClient.from_settings(settings)
        generator = content or ContentGenerator(
            settings.content_endpoint_url,
            timeout_seconds=settings.content_timeout_seconds,
        )

        engine = create_engine(settings)
        await init_db(engine, settings)
        logger.info("Database initialized")

        registry = DeviceRegistry(create_session_factory(engine))
        delivery = DeliveryService(
            registry,
            push_gateway,
            prune_invalid_tokens=settings.prune_invalid_tokens,
        )
        scheduler = OutreachScheduler(
            delivery,
            generator,
            timezone_name=settings.scheduler_timezone,
            morning_time=(settings.morning_hour, settings.morning_minute),
            evening_time=(settings.evening_hour, settings.evening_minute),
        )

        app.state.registry = registry
        app.state.delivery = delivery
        app.state.scheduler = scheduler

        scheduler.start()

        yield

        # Shutdown
        scheduler.stop()
        await scheduler.drain()
        await push_gateway.aclose()
        await generator.aclose()
        await close_db(engine)
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Outreach Push",
        description="Proactive push notifications over APNs",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(devices_router)
    app.include_router(notifications_router)
    app.include_router(agent_router)
    app.include_router(jobs_router)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": SERVICE_NAME}

    return app


# Create the application instance
app = create_app()


def run():
    """Console entry point."""
    import uvicorn

    settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
