"""Click capture that never delays the redirect.

Flow Diagram — dispatch() / record()
====================================
::
    Resolver                       detached task
    ────────                       ─────────────
    dispatch(code, meta) ──spawn──► record(code, meta)
    return destination              │
    (no await)                      ▼
                             ┌──────────────┐
                             │ client IP    │ X-Forwarded-For first hop,
                             │ normalise    │ else peer; unwrap ::ffff:
                             └──────┬───────┘
                                    ▼
                             ┌──────────────┐
                             │ parse UA     │ device / browser / OS
                             └──────┬───────┘
                                    ▼
                             ┌──────────────┐
                             │ geolocate    │ skipped ("Local") for
                             │ (httpx)      │ loopback/private IPs
                             └──────┬───────┘
                                    ▼
                             ┌──────────────┐
                             │ insert event │
                             └──────┬───────┘
                                    ▼
                         any failure → log, never raise

Key Behaviours
===============
- Each recording runs under its own deadline; a slow store or geo service
  cannot stall the task that spawned it.
- Events may be lost under store pressure; that is the accepted tradeoff.
- The recorder holds a strong reference to every in-flight task so none are
  garbage collected mid-flight; ``drain()`` awaits them (shutdown, tests).
"""

import asyncio
import ipaddress
import logging
from dataclasses import dataclass, field

import httpx
from user_agents import parse as parse_ua

from shortlinks.enums import ClickOutcome, DeviceType
from shortlinks.metrics import CLICK_EVENTS_TOTAL
from shortlinks.models import ClickEvent, utcnow
from shortlinks.store import LinkStore

__all__ = [
    "ClickRecorder",
    "GeoLocator",
    "ParsedUserAgent",
    "RequestMetadata",
    "extract_client_ip",
    "is_local_address",
    "parse_user_agent",
]

LOCAL_LABEL = "Local"


@dataclass
class RequestMetadata:
    """The parts of an inbound request the click recorder needs."""

    headers: dict[str, str] = field(default_factory=dict)
    peer_address: str | None = None

    def header(self, name: str) -> str | None:
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None


@dataclass
class ParsedUserAgent:
    device_type: str
    browser: str
    os: str


def _normalize_ip(raw: str | None) -> str | None:
    if not raw:
        return None
    candidate = raw.strip()
    try:
        address = ipaddress.ip_address(candidate)
    except ValueError:
        return candidate or None
    if isinstance(address, ipaddress.IPv6Address):
        if address.ipv4_mapped is not None:
            return str(address.ipv4_mapped)
        if address.is_loopback:
            return "127.0.0.1"
    return str(address)


def extract_client_ip(metadata: RequestMetadata) -> str | None:
    forwarded = metadata.header("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return _normalize_ip(first_hop)
    return _normalize_ip(metadata.peer_address)


def is_local_address(ip: str | None) -> bool:
    if not ip:
        return False
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return address.is_loopback or address.is_private


def parse_user_agent(user_agent: str | None) -> ParsedUserAgent:
    ua = parse_ua(user_agent or "")
    if ua.is_bot:
        device = DeviceType.BOT
    elif ua.is_tablet:
        device = DeviceType.TABLET
    elif ua.is_mobile:
        device = DeviceType.MOBILE
    elif ua.is_pc:
        device = DeviceType.DESKTOP
    else:
        device = DeviceType.OTHER
    return ParsedUserAgent(
        device_type=str(device),
        browser=ua.browser.family or "Other",
        os=ua.os.family or "Other",
    )


class GeoLocator:
    """Best-effort IP geolocation against an ip-api compatible endpoint."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url_template: str,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._client = client
        self._url_template = url_template
        self._logger = logger or logging.getLogger("shortlinks.geo")

    async def locate(self, ip: str | None) -> tuple[str | None, str | None]:
        """Return ``(country, city)``; both None when the lookup fails."""
        if not ip:
            return None, None
        if is_local_address(ip):
            return LOCAL_LABEL, LOCAL_LABEL
        try:
            response = await self._client.get(
                self._url_template.format(ip=ip),
                params={"fields": "status,country,city"},
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            self._logger.debug(f"Geolocation failed for {ip}: {exc}")
            return None, None
        if payload.get("status") != "success":
            return None, None
        return payload.get("country") or None, payload.get("city") or None


class ClickRecorder:
    def __init__(
        self,
        store: LinkStore,
        geo: GeoLocator | None = None,
        timeout: float = 5.0,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._store = store
        self._geo = geo
        self._timeout = timeout
        self._logger = logger or logging.getLogger("shortlinks.clicks")
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, short_code: str, metadata: RequestMetadata | None = None) -> asyncio.Task:
        """Schedule ``record`` without awaiting it."""
        task = asyncio.create_task(self.record(short_code, metadata or RequestMetadata()))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def record(self, short_code: str, metadata: RequestMetadata) -> bool:
        """Persist one click event. Never raises; returns whether it was stored."""
        try:
            await asyncio.wait_for(self._record(short_code, metadata), timeout=self._timeout)
        except TimeoutError:
            CLICK_EVENTS_TOTAL.labels(outcome=ClickOutcome.TIMEOUT).inc()
            self._logger.warning(f"Click recording timed out for {short_code}")
            return False
        except Exception as exc:
            CLICK_EVENTS_TOTAL.labels(outcome=ClickOutcome.FAILED).inc()
            self._logger.error(f"Click recording failed for {short_code}: {exc}")
            return False
        CLICK_EVENTS_TOTAL.labels(outcome=ClickOutcome.RECORDED).inc()
        return True

    async def _record(self, short_code: str, metadata: RequestMetadata) -> None:
        ip = extract_client_ip(metadata)
        user_agent = metadata.header("user-agent")
        parsed = parse_user_agent(user_agent)
        country, city = (None, None)
        if self._geo is not None:
            country, city = await self._geo.locate(ip)

        event = ClickEvent(
            short_code=short_code,
            clicked_at=utcnow(),
            ip_address=ip,
            user_agent=user_agent,
            device_type=parsed.device_type,
            browser=parsed.browser,
            os=parsed.os,
            referrer=metadata.header("referer") or None,
            country=country,
            city=city,
        )
        await self._store.insert_click_event(event)
        self._logger.debug(f"Click recorded for {short_code}", extra={"operation": "record_click"})

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
