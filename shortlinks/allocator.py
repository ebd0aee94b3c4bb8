"""Link allocation: duplicate detection and collision-safe code assignment.

Flow Diagram — Allocate
=======================
::
    ┌─────────────────┐
    │ allocate(dest,  │
    │ owner, verified)│
    └────────┬────────┘
             ▼
    ┌─────────────────┐   owner != verified
    │ Identity check  │──────────────────────► IdentityMismatch
    └────────┬────────┘
             ▼
    ┌─────────────────┐   active link exists
    │ Duplicate check │──────────────────────► return existing code
    │ (digest, owner) │
    └────────┬────────┘
             ▼
    ┌─────────────────┐
    │ Candidate code  │ custom alias, or generated
    └────────┬────────┘
             ▼
    ┌─────────────────┐   taken + custom ──► AliasTaken
    │ Collision loop  │   taken + generated ─► regenerate (max attempts)
    │ find_by_code +  │   attempts spent ───► AllocationExhausted
    │ conditional     │
    │ insert          │
    └────────┬────────┘
             ▼
    ┌─────────────────┐
    │ Cache plaintext │ (24h, best-effort)
    └────────┬────────┘
             ▼
        LinkResult

How to Use
===========
**Step 1 — Build once at startup**::
    allocator = LinkAllocator(store, cache, cipher, settings, logger)

**Step 2 — Allocate**::
    result = await allocator.allocate(
        "https://example.com", owner_id=user_id, verified_owner_id=user_id
    )
    print(result.short_url)

Key Behaviours
===============
- Same (destination, owner) pair returns the same code; no second record.
- A custom alias is exact: a collision fails immediately, never retries.
- Generated-code collisions stay invisible to the caller within the bound.
- The insert is conditional on the code's absence (unique constraint), which
  closes the race between concurrent allocations that both passed the read.
- Destinations are encrypted at rest; passwords are stored as bcrypt hashes,
  computed in a worker thread.
- Non-fatal errors from the cache prime are logged; fatal ones propagate.
"""

import asyncio
import datetime
import logging
import time
from collections.abc import Callable

from shortlinks.cache import LinkCache, link_key
from shortlinks.codegen import generate_short_code
from shortlinks.config import Settings
from shortlinks.crypto import URLCipher, hash_password
from shortlinks.enums import RequestStatus
from shortlinks.errors import (
    AliasTaken,
    AllocationExhausted,
    DuplicateDestination,
    IdentityMismatch,
    LinkError,
)
from shortlinks.metrics import LINK_CREATION_DURATION, LINK_CREATION_REQUESTS_TOTAL
from shortlinks.models import Link, utcnow
from shortlinks.schemas import LinkResult
from shortlinks.store import LinkStore

__all__ = ["LinkAllocator"]


class LinkAllocator:
    """Owns creation of new short links."""

    def __init__(
        self,
        store: LinkStore,
        cache: LinkCache,
        cipher: URLCipher,
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._cipher = cipher
        self._settings = settings
        self._logger = logger or logging.getLogger("shortlinks.allocator")

    async def allocate(
        self,
        destination: str,
        owner_id: str,
        verified_owner_id: str,
        password: str | None = None,
        custom_alias: str | None = None,
    ) -> LinkResult:
        """Create (or return the existing) short link for ``destination``.

        Args:
            destination: Plaintext destination URL.
            owner_id: Owner the caller claims to act for.
            verified_owner_id: Owner returned by the identity service.
            password: Optional link password, hashed before storage.
            custom_alias: Optional caller-chosen code.

        Returns:
            LinkResult: Code, destination and composed short URL.

        Raises:
            IdentityMismatch: ``owner_id`` differs from ``verified_owner_id``.
            AliasTaken: ``custom_alias`` is already in use.
            AllocationExhausted: No free generated code within the attempt bound.
            StoreError: The durable store failed or timed out.
        """
        custom_alias = custom_alias or None
        start_time = time.perf_counter()
        try:
            result = await self._allocate(destination, owner_id, verified_owner_id, password, custom_alias)
        except DuplicateDestination as dup:
            LINK_CREATION_DURATION.observe(time.perf_counter() - start_time)
            LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.DUPLICATE).inc()
            self._logger.info(
                f"Destination already shortened for owner, returning {dup.short_code}",
                extra={"operation": "allocate", "short_code": dup.short_code},
            )
            return self._result(dup.short_code, destination)
        except (IdentityMismatch, AliasTaken) as exc:
            LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.REJECTED).inc()
            self._logger.warning(f"Allocation rejected: {exc}", extra={"operation": "allocate"})
            raise
        except LinkError as exc:
            LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            self._logger.error(f"Allocation failed: {exc}", extra={"operation": "allocate"})
            raise

        duration = time.perf_counter() - start_time
        LINK_CREATION_DURATION.observe(duration)
        LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        self._logger.info(
            f"Link created: {result.short_code} in {duration:.3f}s",
            extra={"operation": "allocate", "short_code": result.short_code},
        )
        return result

    async def _allocate(
        self,
        destination: str,
        owner_id: str,
        verified_owner_id: str,
        password: str | None,
        custom_alias: str | None,
    ) -> LinkResult:
        if owner_id != verified_owner_id:
            raise IdentityMismatch()

        now = utcnow()
        digest = self._cipher.digest(destination)
        existing = await self._store.find_by_destination_and_owner(digest, verified_owner_id, now)
        if existing is not None:
            raise DuplicateDestination(short_code=existing.short_code)

        # Alias pre-read runs before hashing; the conditional insert still guards the race
        if custom_alias is not None and await self._store.find_by_code(custom_alias) is not None:
            raise AliasTaken(short_code=custom_alias)

        password_hash = None
        if password:
            password_hash = await asyncio.to_thread(hash_password, password, self._settings.PASSWORD_HASH_ROUNDS)
        encrypted = self._cipher.encrypt(destination)
        expires_at = self._expiry_from(now)

        short_code = await self._insert_with_unique_code(
            custom_alias,
            lambda code: Link(
                short_code=code,
                long_url=encrypted,
                destination_digest=digest,
                user_id=verified_owner_id,
                custom_alias=custom_alias is not None,
                password_hash=password_hash,
                is_active=True,
                created_at=now,
                expires_at=expires_at,
            ),
        )

        try:
            await self._cache.set(link_key(short_code), destination, self._settings.LINK_CACHE_TTL_SECONDS)
        except LinkError as exc:
            if exc.fatal:
                raise
            self._logger.warning(f"Could not prime cache for {short_code}: {exc}")

        return self._result(short_code, destination)

    async def _insert_with_unique_code(self, custom_alias: str | None, build: Callable[[str], Link]) -> str:
        if custom_alias is not None:
            if not await self._store.insert_link(build(custom_alias)):
                raise AliasTaken(short_code=custom_alias)
            return custom_alias

        attempts = self._settings.MAX_ALLOCATION_ATTEMPTS
        for attempt in range(1, attempts + 1):
            candidate = generate_short_code(self._settings.SHORT_CODE_LENGTH)
            if await self._store.find_by_code(candidate) is not None:
                self._logger.warning(f"Generated code collision on attempt {attempt}: {candidate}")
                continue
            if await self._store.insert_link(build(candidate)):
                return candidate
            self._logger.warning(f"Generated code lost insert race on attempt {attempt}: {candidate}")

        raise AllocationExhausted(f"No free short code after {attempts} attempts")

    def _expiry_from(self, now: datetime.datetime) -> datetime.datetime | None:
        ttl = self._settings.LINK_TTL_SECONDS
        if not ttl or ttl <= 0:
            return None
        return now + datetime.timedelta(seconds=ttl)

    def _result(self, short_code: str, destination: str) -> LinkResult:
        return LinkResult(
            short_code=short_code,
            long_url=destination,
            short_url=f"{self._settings.SHORT_URL_DOMAIN.rstrip('/')}/{short_code}",
        )
