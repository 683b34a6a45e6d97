"""
WorldTides Tide Service - Harmonic tide prediction from provider constituents

This module predicts high/low tides and tide curves for any sea location.
The tidal constituents of a location are retrieved once from WorldTides and
cached; every prediction after that is computed locally by TideCalculator.

Key features:
- Worldwide coverage (anything WorldTides has constituents for)
- Automatic timezone detection from coordinates
- Ternary-search refinement of high/low tide times (sub-minute)
- Heights referenced to the datum requested from the provider, or to a
  custom offset

Output format matches the rest of the API: ISO 8601 local times without
microseconds, heights in metres and feet rounded to millimetres.
"""
import logging
import threading
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
from zoneinfo import ZoneInfo
from timezonefinder import TimezoneFinder

from . import config
from .tide_calculator import TideCalculator, TideExtreme
from .worldtides import ConstituentResponse, fetch_constituents

logger = logging.getLogger(__name__)

FEET_PER_METRE = 3.28084
SECONDS_PER_DAY = 86400


class WorldTidesTideService:
    """
    Service for predicting tides from WorldTides constituents.

    Constituents are cached per location and datum, so repeated requests for
    the same place cost one API call.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        fetcher: Callable[..., ConstituentResponse] = fetch_constituents,
        cache_size: Optional[int] = None,
    ):
        """
        Initialize the WorldTides Tide Service.

        Args:
            api_key: WorldTides API key (defaults to WORLDTIDES_API_KEY)
            fetcher: Function retrieving constituents, fetch_constituents by default
            cache_size: Number of locations to keep in memory
        """
        self.api_key = api_key
        self._fetcher = fetcher
        self._cache_size = cache_size or config.CACHE_SIZE
        self._cache: "OrderedDict[Tuple, ConstituentResponse]" = OrderedDict()
        self._lock = threading.Lock()

        # Cache TimezoneFinder instance (loads data on first use)
        self._tz_finder = TimezoneFinder()

    def _get_timezone(self, lat: float, lon: float, timezone_str: Optional[str] = None) -> ZoneInfo:
        """
        Get timezone for coordinates, with auto-detection if not specified.

        Args:
            lat: Latitude in degrees
            lon: Longitude in degrees
            timezone_str: Optional timezone string (e.g., 'America/Los_Angeles')

        Returns:
            ZoneInfo object for the timezone
        """
        if timezone_str is None:
            timezone_str = self._tz_finder.timezone_at(lat=lat, lng=lon)
            if timezone_str is None:
                timezone_str = 'UTC'
        try:
            return ZoneInfo(timezone_str)
        except (ValueError, KeyError):
            logger.warning(f"Unknown timezone {timezone_str!r}, falling back to UTC")
            return ZoneInfo('UTC')

    def get_constituents(self, lat: float, lon: float, datum: Optional[str] = None) -> ConstituentResponse:
        """
        Get the constituents for a location, from cache or from WorldTides.

        Raises:
            ValueError: If the provider has no constituents for the location
            WorldTidesError: If the API call fails
        """
        key = (round(lat, 4), round(lon, 4), datum.upper() if datum else None)
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
                return self._cache[key]

        response = self._fetcher(lat, lon, api_key=self.api_key, datum=datum)
        if not response.constituents:
            raise ValueError(f"No tide data available for location ({lat}, {lon})")

        with self._lock:
            self._cache[key] = response
            while len(self._cache) > self._cache_size:
                self._cache.popitem(last=False)
        return response

    def _get_calculator(
        self,
        lat: float,
        lon: float,
        datum: Optional[str],
        datum_offset: Optional[float],
    ) -> Tuple[TideCalculator, str]:
        """Tide calculator for a location and the datum label to report."""
        response = self.get_constituents(lat, lon, datum)
        if datum_offset is not None:
            # Manual offset replaces the provider datum
            return TideCalculator(response.constituents, datum_offset=datum_offset, datum='custom'), 'custom'

        if response.datum_offset is None:
            # No offset from the provider: heights stay relative to MSL whatever was requested
            return response.calculator(), 'msl'
        return response.calculator(), (response.datum or datum or 'msl').lower()

    @staticmethod
    def _start_time(start_date: Optional[datetime], tz: ZoneInfo) -> datetime:
        """Local midnight of start_date (or today) in the location timezone."""
        if start_date is not None:
            # Use the date portion in local timezone (ignore time/tz from input)
            return datetime(
                start_date.year, start_date.month, start_date.day,
                hour=0, minute=0, second=0, microsecond=0, tzinfo=tz
            )
        now = datetime.now(tz)
        return now.replace(hour=0, minute=0, second=0, microsecond=0)

    @staticmethod
    def _format_height(time: float, height_m: float, tz: ZoneInfo, datum: str) -> Dict:
        event_time = datetime.fromtimestamp(time, tz).replace(microsecond=0)
        return {
            'datetime': event_time.isoformat(),
            'height_m': round(float(height_m), 3),
            'height_ft': round(float(height_m) * FEET_PER_METRE, 3),
            'datum': datum,
        }

    def _format_extreme(self, extreme: TideExtreme, tz: ZoneInfo, datum: str) -> Dict:
        event = {'type': extreme.type}
        event.update(self._format_height(extreme.time, extreme.height, tz, datum))
        return event

    @staticmethod
    def _validate(days: int, interval_minutes: Optional[int] = None):
        if days < 1:
            raise ValueError("days must be at least 1")
        if interval_minutes is not None and interval_minutes not in (15, 30, 60):
            raise ValueError("interval_minutes must be 15, 30, or 60")

    def predict_tides(
        self,
        lat: float,
        lon: float,
        days: int = 7,
        timezone_str: Optional[str] = None,
        datum: Optional[str] = None,
        datum_offset: Optional[float] = None,
        start_date: Optional[datetime] = None
    ) -> List[Dict]:
        """
        Predict tide events (high and low tides) for a given location.

        Args:
            lat: Latitude in degrees
            lon: Longitude in degrees
            days: Number of days to predict
            timezone_str: Timezone string (e.g., 'America/Los_Angeles') or None for auto-detect
            datum: Datum requested from WorldTides (e.g. 'LAT', 'MSL'). None uses the provider default.
            datum_offset: Optional manual offset in meters added to the heights (overrides datum)
            start_date: Optional start date. If not provided, uses current date.

        Returns:
            List of tide event dictionaries with keys:
            - type: 'high' or 'low'
            - datetime: ISO 8601 datetime string
            - height_m: Height in meters (relative to the datum)
            - height_ft: Height in feet (relative to the datum)
            - datum: The datum reference used for this prediction
        """
        self._validate(days)
        tz = self._get_timezone(lat, lon, timezone_str)
        start_time = self._start_time(start_date, tz)
        calculator, datum_used = self._get_calculator(lat, lon, datum, datum_offset)

        extremes = calculator.extremes(start_time.timestamp(), days * SECONDS_PER_DAY, corrected=True)
        return [self._format_extreme(e, tz, datum_used) for e in extremes]

    def _interval_heights(
        self,
        calculator: TideCalculator,
        start_time: datetime,
        days: int,
        interval_minutes: int,
        tz: ZoneInfo,
        datum_used: str,
    ) -> List[Dict]:
        # +1 to include end point
        num_points = days * 24 * 60 // interval_minutes + 1
        times = start_time.timestamp() + np.arange(num_points) * interval_minutes * 60.0
        heights = calculator.heights(times, corrected=True)
        return [self._format_height(t, h, tz, datum_used) for t, h in zip(times, heights)]

    def get_tide_heights(
        self,
        lat: float,
        lon: float,
        days: int = 7,
        interval_minutes: int = 30,
        timezone_str: Optional[str] = None,
        datum: Optional[str] = None,
        datum_offset: Optional[float] = None,
        start_date: Optional[datetime] = None
    ) -> List[Dict]:
        """
        Get tide heights at regular intervals (tide curve data).

        Args:
            lat: Latitude in degrees
            lon: Longitude in degrees
            days: Number of days to predict
            interval_minutes: Time between readings (15, 30, or 60 minutes)
            timezone_str: Timezone string or None for auto-detect
            datum: Datum requested from WorldTides. None uses the provider default.
            datum_offset: Optional manual offset in meters (overrides datum)
            start_date: Optional start date. If not provided, uses current date.

        Returns:
            List of dictionaries with keys datetime, height_m, height_ft, datum
        """
        self._validate(days, interval_minutes)
        tz = self._get_timezone(lat, lon, timezone_str)
        start_time = self._start_time(start_date, tz)
        calculator, datum_used = self._get_calculator(lat, lon, datum, datum_offset)

        return self._interval_heights(calculator, start_time, days, interval_minutes, tz, datum_used)

    def get_tides_with_extrema(
        self,
        lat: float,
        lon: float,
        days: int = 7,
        interval_minutes: int = 30,
        timezone_str: Optional[str] = None,
        datum: Optional[str] = None,
        datum_offset: Optional[float] = None,
        start_date: Optional[datetime] = None,
    ) -> Tuple[List[Dict], List[Dict]]:
        """
        Get both tide heights at intervals AND high/low extrema.

        Returns:
            Tuple of (interval_heights, extrema_events)
        """
        self._validate(days, interval_minutes)
        tz = self._get_timezone(lat, lon, timezone_str)
        start_time = self._start_time(start_date, tz)
        calculator, datum_used = self._get_calculator(lat, lon, datum, datum_offset)

        interval_heights = self._interval_heights(calculator, start_time, days, interval_minutes, tz, datum_used)
        extremes = calculator.extremes(start_time.timestamp(), days * SECONDS_PER_DAY, corrected=True)
        extrema_events = [self._format_extreme(e, tz, datum_used) for e in extremes]

        return interval_heights, extrema_events
