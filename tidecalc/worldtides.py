"""
WorldTides API client.

Retrieves the tidal constituents for the sea location closest to a point
from www.worldtides.info and parses them into a typed response. Once the
constituents are known, heights and high/low tides for that location can be
computed locally with TideCalculator, without further API calls.

Expected response (fields other than 'constituents' are optional):

    {
      "status": 200,
      "copyright": "...",
      "requestLat": 52.0, "requestLon": 4.0,
      "responseLat": 52.01, "responseLon": 3.99,
      "atlas": "FES",
      "datum": "LAT",
      "datumOffset": 1.23,
      "constituents": [{"name": "M2", "real": 0.41, "imaginary": -0.52}, ...],
      "heights": [{"dt": 1700000000, "date": "...", "height": 0.12}, ...],
      "extremes": [{"dt": 1700000000, "date": "...", "height": 0.9, "type": "High"}, ...]
    }
"""
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import config
from .amplitude import ComplexAmplitude
from .constituents import TidalConstant, lookup
from .exceptions import UnknownConstituent, WorldTidesError
from .tide_calculator import TideCalculator, TideExtreme

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Location:
    """Requested point and the sea location the constituents belong to."""
    request_lat: Optional[float] = None
    request_lon: Optional[float] = None
    response_lat: Optional[float] = None
    response_lon: Optional[float] = None
    atlas: Optional[str] = None


@dataclass(frozen=True)
class HeightSample:
    """Height published by the API at a given time."""
    dt: int
    height: float
    date: Optional[str] = None


@dataclass(frozen=True)
class ExtremeSample:
    """High or low tide published by the API."""
    dt: int
    height: float
    type: str
    date: Optional[str] = None

    def to_tide_extreme(self) -> TideExtreme:
        return TideExtreme(time=float(self.dt), height=self.height, is_high=self.type == 'high')


@dataclass
class ConstituentResponse:
    """Parsed WorldTides constituents response."""
    location: Location
    constituents: Dict[TidalConstant, ComplexAmplitude]
    copyright: str = ''
    datum: Optional[str] = None
    # None when the API did not send an offset (heights stay relative to MSL)
    datum_offset: Optional[float] = None
    heights: List[HeightSample] = field(default_factory=list)
    extremes: List[ExtremeSample] = field(default_factory=list)

    @property
    def datum_label(self) -> str:
        """Datum the corrected heights refer to, lower case."""
        if self.datum_offset is None:
            return 'msl'
        return (self.datum or 'msl').lower()

    def calculator(self) -> TideCalculator:
        """Tide calculator for this location, using the response datum offset."""
        return TideCalculator(
            self.constituents,
            datum_offset=self.datum_offset or 0.0,
            datum=self.datum_label,
        )

    def published_extremes(self, start: float, length: float) -> List[TideExtreme]:
        """High/low tides published with the response that fall in [start, start + length)."""
        return [
            e.to_tide_extreme() for e in self.extremes
            if start <= e.dt < start + length
        ]


def safe_read_response(response, max_size: Optional[int] = None) -> bytes:
    """
    Safely read HTTP response with size limit to prevent memory exhaustion.

    Args:
        response: urllib response object
        max_size: Maximum allowed response size in bytes

    Returns:
        Response body as bytes

    Raises:
        WorldTidesError: If response exceeds size limit
    """
    if max_size is None:
        max_size = config.MAX_RESPONSE_SIZE

    # Check Content-Length header if available
    content_length = response.headers.get('Content-Length')
    if content_length and int(content_length) > max_size:
        raise WorldTidesError(f"Response too large: {content_length} bytes (max: {max_size})")

    # Read with size limit (read one extra byte to detect overflow)
    data = response.read(max_size + 1)
    if len(data) > max_size:
        raise WorldTidesError(f"Response exceeded size limit of {max_size} bytes")

    return data


def build_url(
    lat: float,
    lon: float,
    api_key: str,
    datum: Optional[str] = None,
    base_url: Optional[str] = None,
) -> str:
    """Build the constituents request URL."""
    params = {'lat': lat, 'lon': lon}
    if datum:
        params['datum'] = datum
    params['key'] = api_key
    return f"{base_url or config.WORLDTIDES_API_URL}?constituents&{urllib.parse.urlencode(params)}"


def _optional_float(data: Dict[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    return None if value is None else float(value)


def _parse_amplitude(entry: Dict[str, Any]) -> ComplexAmplitude:
    if 'real' in entry and 'imaginary' in entry:
        return ComplexAmplitude(float(entry['real']), float(entry['imaginary']))
    if 'amplitude' in entry and 'phase' in entry:
        return ComplexAmplitude.from_polar(float(entry['amplitude']), float(entry['phase']))
    raise WorldTidesError(f"Constituent {entry.get('name')!r} has neither real/imaginary nor amplitude/phase")


def parse_constituents(entries: List[Dict[str, Any]], strict: bool = False) -> Dict[TidalConstant, ComplexAmplitude]:
    """
    Convert constituent entries into a constituent mapping.

    Unknown constituent names are dropped with a warning, or raise
    UnknownConstituent when strict is True. A name listed twice keeps its
    first value.
    """
    constituents = {}
    for entry in entries:
        name = entry.get('name')
        try:
            constant = lookup(name)
        except UnknownConstituent:
            if strict:
                raise
            logger.warning(f"Dropping unknown constituent {name!r}")
            continue

        if constant in constituents:
            logger.warning(f"Duplicate constituent {name!r}, keeping the first value")
            continue
        constituents[constant] = _parse_amplitude(entry)

    return constituents


def parse_response(data: Dict[str, Any], strict: bool = False) -> ConstituentResponse:
    """
    Parse a decoded WorldTides JSON document.

    Raises:
        WorldTidesError: If the API reported an error or the document is malformed
        UnknownConstituent: If strict and a constituent is not in the catalog
    """
    if not isinstance(data, dict):
        raise WorldTidesError("Malformed WorldTides response: expected a JSON object")

    status = data.get('status')
    if status is not None and status != 200:
        raise WorldTidesError(data.get('error', f"WorldTides returned status {status}"), status_code=status)

    entries = data.get('constituents')
    if not isinstance(entries, list):
        raise WorldTidesError("WorldTides response contains no constituents")

    try:
        location = Location(
            request_lat=_optional_float(data, 'requestLat'),
            request_lon=_optional_float(data, 'requestLon'),
            response_lat=_optional_float(data, 'responseLat'),
            response_lon=_optional_float(data, 'responseLon'),
            atlas=data.get('atlas'),
        )
        constituents = parse_constituents(entries, strict=strict)
        heights = [
            HeightSample(dt=int(h['dt']), height=float(h['height']), date=h.get('date'))
            for h in data.get('heights', [])
        ]
        extremes = [
            ExtremeSample(dt=int(e['dt']), height=float(e['height']),
                          type=str(e['type']).lower(), date=e.get('date'))
            for e in data.get('extremes', [])
        ]
        datum_offset = _optional_float(data, 'datumOffset')
    except (KeyError, TypeError, ValueError) as e:
        if isinstance(e, UnknownConstituent):
            raise
        raise WorldTidesError(f"Malformed WorldTides response: {e}") from e

    return ConstituentResponse(
        location=location,
        constituents=constituents,
        copyright=data.get('copyright', ''),
        datum=data.get('datum'),
        datum_offset=datum_offset,
        heights=heights,
        extremes=extremes,
    )


def fetch_constituents(
    lat: float,
    lon: float,
    api_key: Optional[str] = None,
    datum: Optional[str] = None,
    timeout: Optional[float] = None,
    strict: bool = False,
) -> ConstituentResponse:
    """
    Retrieve the constituents for the sea location closest to (lat, lon).

    Args:
        lat: Latitude in degrees
        lon: Longitude in degrees
        api_key: WorldTides API key (defaults to WORLDTIDES_API_KEY)
        datum: Requested vertical datum, e.g. 'LAT' or 'MSL'
        timeout: Request timeout in seconds
        strict: Raise on constituents missing from the catalog instead of dropping them

    Returns:
        Parsed ConstituentResponse

    Raises:
        WorldTidesError: On missing key, network failure, non-200 response or malformed body
    """
    api_key = api_key or config.WORLDTIDES_API_KEY
    if not api_key:
        raise WorldTidesError("No WorldTides API key configured (set WORLDTIDES_API_KEY)")
    if timeout is None:
        timeout = config.API_TIMEOUT_SECONDS

    url = build_url(lat, lon, api_key, datum=datum)
    logger.info(f"Fetching WorldTides constituents for ({lat}, {lon}), datum={datum}")

    try:
        with urllib.request.urlopen(url, timeout=timeout) as response:
            body = safe_read_response(response)
    except urllib.error.HTTPError as e:
        detail = e.read(4096).decode('utf-8', errors='replace').strip()
        raise WorldTidesError(
            f"Server returned HTTP response code {e.code} ({e.reason}): {detail}",
            status_code=e.code,
        ) from e
    except (urllib.error.URLError, OSError) as e:
        raise WorldTidesError(f"WorldTides request failed: {e}") from e

    try:
        data = json.loads(body.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise WorldTidesError(f"Malformed WorldTides response: {e}") from e

    return parse_response(data, strict=strict)
