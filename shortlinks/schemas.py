"""Pydantic schemas for the short-link engine.

This module defines request payloads, result types returned by the engine
components, and the serialized stats snapshot kept in the cache.

Schema Overview
===============
::
    LinkCreate  ──► LinkAllocator.allocate() ──► LinkResult
    (long_url,                                   (short_code,
     custom_alias,                                long_url,
     password,                                    short_url)
     owner_id)

    StatsAggregator.get_stats() ──► StatsSnapshot
                                    ├─ total_clicks
                                    ├─ clicks_last_7_days / clicks_last_30_days
                                    ├─ clicks_by_date: [DailyClicks]
                                    └─ top_*: [RankedValue] (10 max each)

Key Behaviours
===============
- Destinations must be absolute http(s) URLs.
- Custom aliases allow letters, digits, dashes and underscores, and may not
  shadow the app's own top-level routes (RESERVED_ALIASES).
- Passwords are capped at 72 bytes, the bcrypt input limit.
- StatsSnapshot round-trips through JSON for the stats cache.

Classes:
    LinkCreate:  Input schema for shortening requests.
    LinkResult:  Output of a successful allocation.
    DailyClicks:  One histogram bucket.
    RankedValue:  One entry of a top-10 ranking.
    StatsSnapshot:  Aggregated click statistics for one code.
    HealthResponse:  Output schema for health checks.
"""

import datetime

import validators
from pydantic import BaseModel, Field, field_validator

from shortlinks.enums import HealthStatus

__all__ = [
    "RESERVED_ALIASES",
    "LinkCreate",
    "LinkResult",
    "DailyClicks",
    "RankedValue",
    "StatsSnapshot",
    "HealthResponse",
]

# First path segments the app serves itself; an alias here could never redirect
RESERVED_ALIASES = frozenset({"api", "health", "metrics", "docs", "redoc"})


class LinkCreate(BaseModel):
    long_url: str = Field(..., description="The original long URL", examples=["https://example.com"])
    custom_alias: str | None = Field(
        None,
        min_length=3,
        max_length=32,
        pattern=r"^[A-Za-z0-9_-]+$",
        description="Custom short alias (alphanumeric, dashes, underscores only)",
    )
    password: str | None = Field(None, min_length=1, description="Optional password protection for the URL")
    owner_id: str | None = Field(None, description="Owner to create the link for; defaults to the caller")

    @field_validator("long_url")
    @classmethod
    def validate_long_url(cls, v: str) -> str:
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("long_url must start with http:// or https://")
        if not validators.url(v):
            raise ValueError("long_url must be a valid URL")
        return v

    @field_validator("custom_alias")
    @classmethod
    def validate_custom_alias(cls, v: str | None) -> str | None:
        if v is not None and v.lower() in RESERVED_ALIASES:
            raise ValueError(f"custom_alias '{v}' is reserved")
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str | None) -> str | None:
        if v is not None and len(v.encode("utf-8")) > 72:
            raise ValueError("password must be at most 72 bytes")
        return v


class LinkResult(BaseModel):
    short_code: str
    long_url: str
    short_url: str


class DailyClicks(BaseModel):
    date: datetime.date
    clicks: int


class RankedValue(BaseModel):
    value: str
    clicks: int


class StatsSnapshot(BaseModel):
    short_code: str
    total_clicks: int
    clicks_last_7_days: int
    clicks_last_30_days: int
    clicks_by_date: list[DailyClicks]
    top_countries: list[RankedValue]
    top_referrers: list[RankedValue]
    top_devices: list[RankedValue]
    top_browsers: list[RankedValue]
    top_os: list[RankedValue]
    generated_at: datetime.datetime


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus
