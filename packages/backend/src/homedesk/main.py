"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance with its own realtime core wired onto app.state:

    EventBus         ← who is connected, fan-out
    AutomationEngine ← rules → actions, broadcasts through the bus
    EventPublisher   ← routes hand it their service outbox after commit
    Gateway          ← drives each WebSocket against the bus

Nothing here is a module global, so tests build a fresh app (and a fresh
database) per test. Lifespan starts and stops the optional Redis relay.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import async_sessionmaker

from homedesk import __version__
from homedesk.api import api_router
from homedesk.automation.engine import AutomationEngine
from homedesk.config import settings
from homedesk.events.publisher import EventPublisher
from homedesk.realtime.bus import EventBus
from homedesk.realtime.gateway import Gateway
from homedesk.services.automation_service import SqlRuleStore
from homedesk.services.stats_service import stats_snapshot

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` at shutdown.
    """
    logger.info(
        "homedesk.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    redis = None
    listener: Optional[asyncio.Task] = None
    if settings.redis_url:
        from redis.asyncio import from_url

        from homedesk.realtime.relay import RedisRelay

        try:
            redis = from_url(settings.redis_url)
            await redis.ping()
            relay = RedisRelay(redis, channel_prefix=settings.relay_channel_prefix)
            app.state.bus.relay = relay
            listener = asyncio.create_task(relay.listen(app.state.bus.deliver))
            logger.info("homedesk.relay_started", url=settings.redis_url, instance=relay.instance_id)
        except Exception as e:
            # The relay is optional: without it, events reach only this process's sockets.
            logger.warning("homedesk.redis_unavailable", error=str(e))
            app.state.bus.relay = None
            if redis is not None:
                await redis.aclose()
                redis = None

    yield

    logger.info("homedesk.shutdown")

    if listener is not None:
        listener.cancel()
        try:
            await listener
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning("homedesk.relay_listener_failed", error=str(e))
    if redis is not None:
        await redis.aclose()

    db_engine = getattr(app.state, "db_engine", None)
    if db_engine is not None:
        await db_engine.dispose()


def create_app(session_factory: Optional[async_sessionmaker] = None) -> FastAPI:
    """Build and return the FastAPI application.

    ``session_factory`` overrides the configured database (tests pass an
    in-memory SQLite factory).
    """
    app = FastAPI(
        title="HomeDesk",
        description="Realtime dashboard events and automations for home-service businesses",
        version=__version__,
        lifespan=lifespan,
    )

    if session_factory is None:
        from homedesk.db.engine import async_session_factory, engine

        session_factory = async_session_factory
        app.state.db_engine = engine

    bus = EventBus(send_timeout=settings.send_timeout_seconds)
    engine_ = AutomationEngine(
        bus,
        SqlRuleStore(session_factory),
        fetch_timeout=settings.rule_fetch_timeout_seconds,
    )
    app.state.session_factory = session_factory
    app.state.bus = bus
    app.state.engine = engine_
    app.state.publisher = EventPublisher(bus, engine_)
    app.state.gateway = Gateway(bus, snapshot=stats_snapshot(session_factory))

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RequestId → handler

    from homedesk.middleware.request_id import RequestIdMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Mount API routes
    app.include_router(api_router)

    # Mount WebSocket route
    from homedesk.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: homedesk.main:app)
app = create_app()
