"""
FastAPI application for Odds Hub
Exposes multi-source odds collection, aggregation and source status
"""

from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import datetime, timezone
from typing import Optional
import logging
import os

from odds_hub import __version__
from odds_hub.services.collector import OddsCollector, get_odds_collector
from odds_hub.schemas import (
    AggregatedOddsResponse,
    CollectResponse,
    IntegrationResponse,
    SourceStatsResponse,
)

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="Odds Hub",
    description="Multi-source sports odds aggregation",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("ALLOWED_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _parse_sources(
    collector: OddsCollector, sources: Optional[str]
) -> Optional[list]:
    """Split a comma-separated ``sources`` filter; 400 if it matches nothing."""
    if sources is None:
        return None
    names = [s.strip() for s in sources.split(",") if s.strip()]
    if not names or not collector.resolve_sources(names):
        raise HTTPException(
            status_code=400,
            detail=f"No enabled source matches filter: {sources!r}",
        )
    return names


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    return {
        "app": "Odds Hub",
        "version": __version__,
        "status": "operational",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health")
async def health_check(collector: OddsCollector = Depends(get_odds_collector)):
    """Health check endpoint"""
    stats = collector.source_stats()
    health = {
        "status": "healthy",
        "total_sources": stats["total_sources"],
        "enabled_sources": stats["enabled_sources"],
        "normalization": stats["normalization"]["status"],
    }
    if stats["enabled_sources"] == 0:
        health["status"] = "degraded"
    return health


# ============================================================================
# ODDS
# ============================================================================

@app.get("/api/odds/{sport}", response_model=CollectResponse)
def get_odds(
    sport: str,
    sources: Optional[str] = Query(None, description="Comma-separated source names"),
    collector: OddsCollector = Depends(get_odds_collector),
):
    """Collect current odds from every enabled source."""
    names = _parse_sources(collector, sources)
    quotes_by_source = collector.collect(sport, sources=names)
    return {
        "sport": sport,
        "sources": {
            name: [q.to_dict() for q in quotes]
            for name, quotes in quotes_by_source.items()
        },
    }


@app.get("/api/odds/{sport}/aggregated", response_model=AggregatedOddsResponse)
def get_aggregated_odds(
    sport: str,
    sources: Optional[str] = Query(None, description="Comma-separated source names"),
    region: Optional[str] = Query(None, description='Region tag, e.g. "au"'),
    collector: OddsCollector = Depends(get_odds_collector),
):
    """Collect and aggregate odds: per-outcome spread stats and best prices."""
    names = _parse_sources(collector, sources)
    return collector.aggregated_odds(sport, sources=names, region=region)


# ============================================================================
# SOURCES
# ============================================================================

@app.get("/api/sources/stats", response_model=SourceStatsResponse)
async def get_source_stats(collector: OddsCollector = Depends(get_odds_collector)):
    """Source counts, per-source rate-limit usage and normalizer usage."""
    return collector.source_stats()


@app.post("/api/sources/{name}/integrate", response_model=IntegrationResponse)
def integrate_source(name: str, collector: OddsCollector = Depends(get_odds_collector)):
    """Normalize a source name and confirm it is configured."""
    return collector.integrate_source(name)


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
