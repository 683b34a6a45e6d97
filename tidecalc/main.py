import logging
import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional

import numpy as np
from fastapi import FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from .exceptions import WorldTidesError
from .tide_calculator import TideCalculator
from .tide_service import WorldTidesTideService
from .worldtides import parse_constituents

logger = logging.getLogger(__name__)

# Longest window accepted by the offline prediction endpoint (seconds)
MAX_PREDICT_LENGTH = 366 * 86400


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        return response


class ConstituentIn(BaseModel):
    """One constituent as published by WorldTides."""

    name: str = Field(..., description="Constituent name, e.g. 'M2'")
    real: float = Field(..., description="Real part of the complex amplitude (meters)")
    imaginary: float = Field(..., description="Imaginary part of the complex amplitude (meters)")


class PredictRequest(BaseModel):
    """Offline prediction request: constituents plus a time window."""

    constituents: List[ConstituentIn] = Field(..., description="Constituents for one location")
    start: float = Field(..., description="Window start in seconds since 1970-01-01T00:00:00Z")
    length: float = Field(86400.0, gt=0, le=MAX_PREDICT_LENGTH, description="Window length in seconds")
    datum_offset: float = Field(0.0, description="Offset in meters added to every height")
    interval: Optional[Literal[15, 30, 60]] = Field(
        None, description="Optional interval in minutes for tide heights"
    )


app = FastAPI(
    title="WorldTides Calculator API",
    description="High/low tides and tide heights from WorldTides harmonic constituents",
    version="1.0.0",
)

# Set up rate limiter
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add security headers middleware
app.add_middleware(SecurityHeadersMiddleware)

# Initialize services
tide_service = WorldTidesTideService()


def _iso_utc(time: float) -> str:
    return datetime.fromtimestamp(time, timezone.utc).replace(microsecond=0).isoformat()


@app.get("/api/v1/tides")
@limiter.limit("60/minute")
def get_tides(
    request: Request,
    lat: float = Query(..., ge=-90, le=90, description="Latitude in degrees"),
    lon: float = Query(..., ge=-180, le=180, description="Longitude in degrees"),
    days: int = Query(7, ge=1, le=365, description="Number of days to predict"),
    date: Optional[str] = Query(
        None,
        description="Optional start date (YYYY-MM-DD). If not provided, current date is used.",
    ),
    interval: Optional[Literal["15", "30", "60"]] = Query(
        None,
        description="Optional interval in minutes (15, 30, or 60). If not provided, returns only high/low tides.",
    ),
    datum: Optional[str] = Query(
        None,
        pattern="^[A-Za-z0-9]{1,8}$",
        description="Vertical datum requested from WorldTides, e.g. 'LAT', 'MSL' or 'MLLW'",
    ),
    datum_offset: Optional[float] = Query(
        None,
        description="Optional manual offset in meters added to every height (overrides datum)",
    ),
):
    """
    Get tide predictions for a location.

    By default, returns high/low tide events (extrema only).

    If `interval` is specified (15, 30, or 60 minutes), returns tide heights
    at regular intervals merged with the high/low events. Only the events
    have a `type` field ("high" or "low").
    """
    try:
        # Parse date or use None for current date
        start_date = None
        if date:
            try:
                start_date = datetime.fromisoformat(date)
                if start_date.tzinfo is None:
                    start_date = start_date.replace(tzinfo=timezone.utc)
            except ValueError:
                raise HTTPException(
                    400, "Invalid date format. Please use ISO 8601 format (YYYY-MM-DD)"
                )

        if interval is None:
            return tide_service.predict_tides(
                lat, lon, days, datum=datum, datum_offset=datum_offset, start_date=start_date
            )

        heights, events = tide_service.get_tides_with_extrema(
            lat=lat,
            lon=lon,
            days=days,
            interval_minutes=int(interval),
            datum=datum,
            datum_offset=datum_offset,
            start_date=start_date,
        )
        # Offsets change across DST, so sort on parsed datetimes
        return sorted(heights + events, key=lambda x: datetime.fromisoformat(x["datetime"]))
    except ValueError as e:
        raise HTTPException(400, detail=str(e))
    except WorldTidesError as e:
        logger.warning(f"WorldTides request failed: {e}")
        raise HTTPException(502, detail=f"Tide data provider error: {e}")
    except HTTPException:
        raise
    except Exception:
        error_id = uuid.uuid4().hex[:8]
        logger.exception(f"Error {error_id} in get_tides")
        raise HTTPException(500, detail=f"Internal error (ref: {error_id})")


@app.post("/api/v1/predict")
@limiter.limit("60/minute")
def predict(request: Request, body: PredictRequest):
    """
    Compute high/low tides (and optionally a tide curve) from constituents
    supplied by the caller. No call to WorldTides is made.

    Times in the response are epoch seconds plus the matching UTC ISO 8601
    string. Heights include `datum_offset`.
    """
    try:
        constituents = parse_constituents(
            [c.model_dump() for c in body.constituents], strict=True
        )
        calculator = TideCalculator(constituents, datum_offset=body.datum_offset)

        extremes = [
            {
                "type": e.type,
                "time": e.time,
                "datetime": _iso_utc(e.time),
                "height": round(e.height, 3),
            }
            for e in calculator.extremes(body.start, body.length, corrected=True)
        ]

        heights = []
        if body.interval is not None:
            step = body.interval * 60.0
            times = body.start + np.arange(int(body.length // step) + 1) * step
            heights = [
                {"time": float(t), "datetime": _iso_utc(t), "height": round(float(h), 3)}
                for t, h in zip(times, calculator.heights(times, corrected=True))
            ]

        return {"extremes": extremes, "heights": heights}
    except ValueError as e:
        raise HTTPException(400, detail=str(e))
    except Exception:
        error_id = uuid.uuid4().hex[:8]
        logger.exception(f"Error {error_id} in predict")
        raise HTTPException(500, detail=f"Internal error (ref: {error_id})")


@app.get("/health")
async def health():
    return {"status": "healthy", "provider": "WorldTides", "constituents": "harmonic"}
