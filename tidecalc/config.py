"""
Runtime configuration for the tide calculator.

Values are read from the environment (a local .env file is loaded first)
and fall back to the defaults below.
"""
import logging
import os

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load environment variables from .env file
load_dotenv()


def _get_float_env(key: str, default: float) -> float:
    """Get a float value from environment variable or use default."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            logger.warning(f"Ignoring non-numeric {key}={value!r}, using {default}")
    return default


def _get_int_env(key: str, default: int) -> int:
    """Get an int value from environment variable or use default."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            logger.warning(f"Ignoring non-integer {key}={value!r}, using {default}")
    return default


# =============================================================================
# WorldTides API
# =============================================================================

# Get your API key from https://www.worldtides.info/
# Environment variable: WORLDTIDES_API_KEY
WORLDTIDES_API_KEY = os.environ.get('WORLDTIDES_API_KEY', '')

# Environment variable: WORLDTIDES_API_URL
WORLDTIDES_API_URL = os.environ.get('WORLDTIDES_API_URL', 'https://www.worldtides.info/api/v3')

# Timeout for API requests (in seconds)
# Environment variable: WORLDTIDES_API_TIMEOUT
API_TIMEOUT_SECONDS = _get_float_env('WORLDTIDES_API_TIMEOUT', 10.0)

# Maximum response size accepted from the API (1 MB)
# Environment variable: WORLDTIDES_MAX_RESPONSE_SIZE
MAX_RESPONSE_SIZE = _get_int_env('WORLDTIDES_MAX_RESPONSE_SIZE', 1 * 1024 * 1024)


# =============================================================================
# Extremum search
# =============================================================================

# Refinement stops once the bracket around a high/low is this narrow (seconds)
# Environment variable: TIDE_TIME_TOLERANCE_SECONDS
TIME_TOLERANCE_SECONDS = _get_float_env('TIDE_TIME_TOLERANCE_SECONDS', 30.0)

# Hard cap on refinement steps per extremum
# Environment variable: TIDE_MAX_REFINE_ITERATIONS
MAX_REFINE_ITERATIONS = _get_int_env('TIDE_MAX_REFINE_ITERATIONS', 100)

# Coarsest sampling step of the extremum scan (seconds)
# Environment variable: TIDE_MAX_SAMPLE_STEP_SECONDS
MAX_SAMPLE_STEP_SECONDS = _get_float_env('TIDE_MAX_SAMPLE_STEP_SECONDS', 600.0)


# =============================================================================
# Service
# =============================================================================

# Number of locations whose constituents are kept in memory
# Environment variable: TIDE_CACHE_SIZE
CACHE_SIZE = _get_int_env('TIDE_CACHE_SIZE', 128)
