"""
Pydantic response schemas for the Odds Hub API.

Using explicit schemas instead of raw dicts keeps the OpenAPI docs accurate
and pins the serialized shape of every view.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------

class QuoteResponse(BaseModel):
    source: str
    normalized_source: str
    sport: str
    event: str
    market: str
    selection: str
    price: float = Field(..., gt=0, description="Decimal odds")
    timestamp: datetime
    confidence: float = Field(..., ge=0.0, le=1.0)


class CollectResponse(BaseModel):
    sport: str
    sources: Dict[str, List[QuoteResponse]]


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

class SourcePrice(BaseModel):
    source: str
    price: float


class GroupStatsResponse(BaseModel):
    event: str
    market: str
    selection: str
    min: float
    max: float
    mean: float
    variance: float = Field(..., ge=0.0)
    count: int
    best_source: str
    prices: List[SourcePrice] = []


class ArbitrageEntryResponse(BaseModel):
    event: str
    market: str
    selection: str
    source: str
    price: float
    advantage: float = Field(..., ge=0.0)


class AggregationSummary(BaseModel):
    available_events: int
    avg_variance: float
    best_opportunities: List[ArbitrageEntryResponse]


class AggregatedOddsResponse(BaseModel):
    timestamp: datetime
    sport: str
    total_sources: int
    total_quotes: int
    sources: Dict[str, List[QuoteResponse]]
    aggregated: Dict[str, GroupStatsResponse]
    summary: AggregationSummary


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

class RateLimitStatusResponse(BaseModel):
    requests_last_minute: int
    limit: int
    available: int


class NormalizationStats(BaseModel):
    status: str
    model: Optional[str] = None
    remote_calls: int
    remote_failures: int
    fallback_calls: int


class SourceStatsResponse(BaseModel):
    total_sources: int
    enabled_sources: int
    rate_limit_status: Dict[str, RateLimitStatusResponse]
    normalization: NormalizationStats


class IntegrationResponse(BaseModel):
    success: bool
    normalized_name: str
    message: str
