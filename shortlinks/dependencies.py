"""Service wiring and FastAPI dependency injection.

One ``ServiceManager`` is constructed per application in the lifespan handler
and stored on ``app.state``. It owns every client handle (database engines, the
Redis client, HTTP clients) and passes them by reference into the engine
components, so no component reaches for a process-wide global.

Ownership Diagram
=================
::
    ServiceManager
    ├─ Database (request DSN) ──► LinkStore ──┬─► LinkAllocator
    │                                         ├─► Resolver ◄── ClickRecorder ◄── GeoLocator
    │                                         └─► StatsAggregator
    ├─ Database (privileged DSN) ─► LinkStore ──► ExpiryReaper
    ├─ redis.Redis ──► LinkCache (shared by all of the above)
    └─ httpx.AsyncClient ×2 ──► IdentityVerifier, GeoLocator
"""

import logging
import time
import uuid
from dataclasses import dataclass, field

import httpx
import redis.asyncio as redis
from fastapi import Depends, Request

from shortlinks.allocator import LinkAllocator
from shortlinks.cache import LinkCache, create_redis_client
from shortlinks.clicks import ClickRecorder, GeoLocator, RequestMetadata
from shortlinks.config import Settings
from shortlinks.crypto import URLCipher
from shortlinks.database import Database
from shortlinks.errors import Unauthorized
from shortlinks.identity import IdentityVerifier, bearer_token
from shortlinks.reaper import ExpiryReaper
from shortlinks.resolver import Resolver
from shortlinks.stats import StatsAggregator
from shortlinks.store import LinkStore

__all__ = [
    "ServiceManager",
    "RequestContext",
    "get_service_manager",
    "get_request_context",
    "get_request_metadata",
    "get_current_user",
]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Owns shared resources and the engine components built on them."""

    def __init__(
        self,
        settings: Settings,
        redis_client: redis.Redis | None = None,
        identity_client: httpx.AsyncClient | None = None,
        geo_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.logger = self._setup_logger()

        self.database = Database(settings.DATABASE_URL, echo=settings.APP_ENV == "development")
        if settings.reaper_database_url == settings.DATABASE_URL:
            self.reaper_database = self.database
        else:
            self.reaper_database = Database(settings.reaper_database_url)

        self.cache_client = redis_client or create_redis_client(settings.REDIS_URL)
        self.identity_client = identity_client or httpx.AsyncClient(timeout=settings.IDENTITY_TIMEOUT_SECONDS)
        self.geo_client = geo_client or httpx.AsyncClient(timeout=settings.GEOIP_TIMEOUT_SECONDS)

        self.cache = LinkCache(
            self.cache_client,
            read_timeout=settings.CACHE_READ_TIMEOUT_SECONDS,
            write_timeout=settings.CACHE_WRITE_TIMEOUT_SECONDS,
            logger=self.logger.getChild("cache"),
        )
        self.store = LinkStore(
            self.database.sessions,
            timeout=settings.STORE_TIMEOUT_SECONDS,
            logger=self.logger.getChild("store"),
        )
        self.reaper_store = LinkStore(
            self.reaper_database.sessions,
            timeout=settings.REAPER_STORE_TIMEOUT_SECONDS,
            logger=self.logger.getChild("store.reaper"),
        )
        self.cipher = URLCipher(settings.URL_ENCRYPTION_SECRET)

        self.identity = IdentityVerifier(
            self.identity_client,
            settings.SUPABASE_URL,
            settings.SUPABASE_ANON_KEY,
            logger=self.logger.getChild("identity"),
        )
        self.recorder = ClickRecorder(
            self.store,
            geo=GeoLocator(self.geo_client, settings.GEOIP_URL, logger=self.logger.getChild("geo")),
            timeout=settings.CLICK_RECORD_TIMEOUT_SECONDS,
            logger=self.logger.getChild("clicks"),
        )
        self.allocator = LinkAllocator(
            self.store, self.cache, self.cipher, settings, logger=self.logger.getChild("allocator")
        )
        self.resolver = Resolver(
            self.store,
            self.cache,
            self.cipher,
            self.recorder,
            cache_ttl_seconds=settings.LINK_CACHE_TTL_SECONDS,
            logger=self.logger.getChild("resolver"),
        )
        self.stats = StatsAggregator(
            self.store,
            self.cache,
            cache_ttl_seconds=settings.STATS_CACHE_TTL_SECONDS,
            logger=self.logger.getChild("stats"),
        )
        self.reaper = ExpiryReaper(
            self.reaper_store,
            self.cache,
            interval_seconds=settings.REAPER_INTERVAL_SECONDS,
            batch_size=settings.REAPER_BATCH_SIZE,
            logger=self.logger.getChild("reaper"),
        )

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("shortlinks")
        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger

    async def initialize(self) -> None:
        """Create tables and start background work."""
        if self.settings.CREATE_TABLES:
            await self.database.create_all()
        if self.settings.REAPER_ENABLED:
            self.reaper.start()
        self.logger.info(f"{self.settings.APP_NAME} services initialized")

    async def cleanup(self) -> None:
        """Stop background work and release every owned client."""
        await self.reaper.stop()
        await self.recorder.drain()
        await self.identity_client.aclose()
        await self.geo_client.aclose()
        await self.cache_client.aclose()
        await self.database.dispose()
        if self.reaper_database is not self.database:
            await self.reaper_database.dispose()
        self.logger.info(f"{self.settings.APP_NAME} services closed")


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request tracking on top of the shared service manager.

    Attributes:
        services: Application-owned service manager
        metadata: Headers and peer address handed to the click recorder
        request_id: Unique identifier for this request
        trace_id: Correlation ID for distributed tracing
        start_time: Request start timestamp
    """

    services: ServiceManager
    metadata: RequestMetadata
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: str | None = None
    start_time: float = field(default_factory=time.time)

    @property
    def settings(self) -> Settings:
        return self.services.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger with request context attached to every record."""
        return logging.LoggerAdapter(
            self.services.logger,
            {
                "request_id": self.request_id,
                "trace_id": self.trace_id or self.request_id,
                "client_ip": self.metadata.peer_address,
            },
        )

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def get_service_manager(request: Request) -> ServiceManager:
    return request.app.state.services


def get_request_metadata(request: Request) -> RequestMetadata:
    return RequestMetadata(
        headers=dict(request.headers),
        peer_address=request.client.host if request.client else None,
    )


def get_request_context(
    request: Request,
    services: ServiceManager = Depends(get_service_manager),
    metadata: RequestMetadata = Depends(get_request_metadata),
) -> RequestContext:
    return RequestContext(
        services=services,
        metadata=metadata,
        trace_id=request.headers.get("x-trace-id"),
    )


async def get_current_user(
    request: Request,
    services: ServiceManager = Depends(get_service_manager),
) -> str:
    """Verified user id for the request's bearer token."""
    token = bearer_token(request.headers.get("authorization"))
    try:
        return await services.identity.verify(token)
    except Unauthorized:
        services.logger.warning("Rejected request with unverifiable bearer token")
        raise
